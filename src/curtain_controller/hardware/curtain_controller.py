import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from curtain_controller.config import CurtainSettings, curtain_settings
from curtain_controller.core.errors import ControllerClosedError, InvariantViolation
from curtain_controller.hardware.debouncer import Debouncer
from curtain_controller.hardware.motor import MotorDirection, MotorDriver
from curtain_controller.hardware.pin_watcher import PinEdgeWatcher

logger = logging.getLogger(__name__)


class MotionState(Enum):
    IDLE = "idle"
    MOVING = "moving"


@dataclass
class MotionRequest:
    target: float
    done: asyncio.Future


class CurtainController:
    """Drives the curtain motor toward requested positions using open-loop timing.

    A single coordinating task owns the position estimate and is the only code
    that commands the motor. It takes motion requests one at a time and keeps
    listening for hard stops while idle, so a switch pressed by hand still
    corrects the estimate.
    """

    def __init__(
        self,
        settings: CurtainSettings | None = None,
        watcher: PinEdgeWatcher | None = None,
        motor: MotorDriver | None = None,
    ):
        self.settings: CurtainSettings = settings or curtain_settings
        self._watcher = watcher or PinEdgeWatcher(self.settings.watcher)
        self._motor = motor or MotorDriver(
            self.settings.pins.motor_left,
            self.settings.pins.motor_right,
            active_high=self.settings.motion.motor_active_high,
        )
        self._debouncers = {
            pin: Debouncer(self.settings.switch.debounce_seconds)
            for pin in self.settings.limit_switches
        }
        self._position = self.settings.motion.initial_position
        self._state = MotionState.IDLE

        self._requests: asyncio.Queue[MotionRequest] = asyncio.Queue()
        self._hard_stops: asyncio.Queue[int] = asyncio.Queue()
        self._stop_get: asyncio.Task | None = None
        self._request_get: asyncio.Task | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task] = []
        self._close_task: asyncio.Task | None = None
        self._closed = False
        self._closed_event = asyncio.Event()
        self._failure: BaseException | None = None

    @property
    def position(self) -> float:
        """Current position estimate, exact only right after a hard stop."""
        return self._position

    @property
    def state(self) -> MotionState:
        return self._state

    @property
    def motor_direction(self) -> MotorDirection:
        return self._motor.direction

    def move_duration(self, target: float) -> float:
        """Seconds of travel budgeted for reaching ``target`` from the current estimate."""
        return abs(target - self._position) * self.settings.motion.full_traversal_seconds

    def move_direction(self, target: float) -> MotorDirection:
        # At either limit the curtain always leaves in a fixed direction, whatever the target
        if self._position == 1:
            return MotorDirection.CLOCKWISE
        if self._position == 0:
            return MotorDirection.COUNTERCLOCKWISE
        if target > self._position:
            return MotorDirection.CLOCKWISE
        return MotorDirection.COUNTERCLOCKWISE

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Register the limit switches and start the coordinating tasks.

        Raises:
            ResourceError: If a limit switch input cannot be set up
        """
        if self._tasks:
            raise RuntimeError("Controller already started")
        if self._closed:
            raise ControllerClosedError("Controller is closed")

        self._loop = asyncio.get_running_loop()
        for pin in self.settings.limit_switches:
            self._watcher.add_pin(pin)

        self._tasks = [
            asyncio.create_task(self._translate(), name="curtain-translate"),
            asyncio.create_task(self._coordinate(), name="curtain-coordinate"),
        ]
        for task in self._tasks:
            task.add_done_callback(self._on_task_done)
        logger.info(f"Curtain controller started at position {self._position:.2f}")

    async def move_to(self, target: float) -> float:
        """
        Move the curtain to ``target`` and wait until the motion has fully finished.

        Args:
            target: Position between 0 (closed) and 1 (open)

        Returns:
            The position estimate once the motor has stopped and settled

        Raises:
            ValueError: If target is outside [0, 1]
            ControllerClosedError: If the controller was closed
        """
        if not 0.0 <= target <= 1.0:
            raise ValueError(f"Target position must be between 0 and 1, got {target}")
        if self._closed:
            raise self._failure or ControllerClosedError("Controller is closed")
        if not self._tasks:
            raise RuntimeError("Controller not started. Call start() first.")

        done = asyncio.get_running_loop().create_future()
        await self._requests.put(MotionRequest(target, done))
        # A caller giving up does not abort a motion that is already queued
        return await asyncio.shield(done)

    def move_to_threadsafe(self, target: float, timeout: float | None = None) -> float:
        """Blocking ``move_to`` for callers running outside the controller's event loop."""
        if self._loop is None:
            raise RuntimeError("Controller not started. Call start() first.")
        future = asyncio.run_coroutine_threadsafe(self.move_to(target), self._loop)
        return future.result(timeout)

    async def open(self) -> float:
        return await self.move_to(1.0)

    async def close_curtain(self) -> float:
        return await self.move_to(0.0)

    async def close(self) -> None:
        """Stop all tasks and release the motor outputs and watched inputs."""
        if self._close_task is None:
            self._close_task = asyncio.create_task(self._shutdown())
        await asyncio.shield(self._close_task)

    async def wait_closed(self) -> None:
        """Wait until the controller has shut down, re-raising a fatal error if one occurred."""
        await self._closed_event.wait()
        if self._failure is not None:
            raise self._failure

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Coordinating loop
    # ------------------------------------------------------------------

    async def _translate(self) -> None:
        active_level = self.settings.switch.active_level
        while True:
            event = await self._watcher.watch_async()
            debouncer = self._debouncers.get(event.pin)
            if debouncer is None:
                raise InvariantViolation(f"Edge reported for unexpected gpio {event.pin}")
            if debouncer.push(event.level) and event.level == active_level:
                logger.info(f"Limit switch on gpio {event.pin} pressed")
                await self._hard_stops.put(event.pin)

    async def _coordinate(self) -> None:
        while True:
            if self._stop_get is None:
                self._stop_get = asyncio.create_task(self._hard_stops.get())
            if self._request_get is None:
                self._request_get = asyncio.create_task(self._requests.get())

            done, _ = await asyncio.wait(
                {self._stop_get, self._request_get},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._stop_get in done:
                pin = self._stop_get.result()
                self._stop_get = None
                logger.info("Hard stop reached while idle")
                self._reckon(pin)
            if self._request_get in done:
                request = self._request_get.result()
                self._request_get = None
                await self._service(request)

    async def _service(self, request: MotionRequest) -> None:
        self._state = MotionState.MOVING
        try:
            await self._move(request.target)
        except asyncio.CancelledError:
            if not request.done.done():
                request.done.set_exception(self._failure or ControllerClosedError("Controller closed during motion"))
            raise
        except Exception as e:
            if not request.done.done():
                request.done.set_exception(e)
            raise
        finally:
            self._state = MotionState.IDLE
        if not request.done.done():
            request.done.set_result(self._position)

    async def _move(self, target: float) -> None:
        direction = self.move_direction(target)
        duration = self.move_duration(target)
        logger.info(f"Moving from {self._position:.2f} to {target:.2f}: {direction.value} for {duration:.1f} seconds")

        if self._stop_get is None:
            self._stop_get = asyncio.create_task(self._hard_stops.get())

        start = self._loop.time()
        self._motor.move(direction)
        try:
            done, _ = await asyncio.wait({self._stop_get}, timeout=duration)
        finally:
            self._motor.stop()
        elapsed = self._loop.time() - start

        if done:
            pin = self._stop_get.result()
            self._stop_get = None
            logger.info(f"Hard stop reached after {elapsed:.1f} seconds")
            self._reckon(pin)
        else:
            logger.info(f"Travel timer expired after {elapsed:.1f} seconds, position estimate stays {self._position:.2f}")

        await asyncio.sleep(self.settings.motion.settle_seconds)

    def _reckon(self, pin: int) -> None:
        position = self.settings.limit_switches.get(pin)
        if position is None:
            raise InvariantViolation(f"Unrecognized hard stop reached on gpio {pin}")
        self._position = position
        logger.info(f"Position updated from hard stop, new position = {self._position:.2f}")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        logger.critical(f"Controller task {task.get_name()} failed: {type(exc).__name__}: {exc}", exc_info=exc)
        if self._failure is None:
            self._failure = exc
        if self._close_task is None:
            self._close_task = asyncio.create_task(self._shutdown())

    async def _shutdown(self) -> None:
        self._closed = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        # A request the coordinating loop had already dequeued but not yet serviced
        pending = []
        if self._request_get is not None and self._request_get.done() and not self._request_get.cancelled():
            pending.append(self._request_get.result())
        getters = [getter for getter in (self._stop_get, self._request_get) if getter is not None]
        for getter in getters:
            getter.cancel()
        await asyncio.gather(*getters, return_exceptions=True)

        error = self._failure or ControllerClosedError("Controller closed")
        while not self._requests.empty():
            pending.append(self._requests.get_nowait())
        for request in pending:
            if not request.done.done():
                request.done.set_exception(error)

        try:
            self._motor.close()
        except Exception as e:
            logger.error(f"Failed to release motor outputs: {e}", exc_info=True)
        await asyncio.to_thread(self._watcher.close)
        self._closed_event.set()
        logger.info("Curtain controller closed")
