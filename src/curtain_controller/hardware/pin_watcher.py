"""Edge watcher for digital inputs exposed through the sysfs GPIO interface."""
import asyncio
import logging
import queue
import select
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO

import culsans
from tenacity import Retrying, retry_if_exception_type, stop_after_delay, wait_fixed

from curtain_controller.config import WatcherConfig, watcher_config
from curtain_controller.core.errors import InvariantViolation, ResourceError

logger = logging.getLogger(__name__)

# Blocks until some of the given descriptors are ready or the timeout elapses,
# returning the ready ones.
WaitFunction = Callable[[list[int], float], list[int]]


def wait_for_edges(fds: list[int], timeout: float) -> list[int]:
    """Multiplexed wait for sysfs edges, which are reported as exceptional conditions."""
    _, _, ready = select.select([], [], fds, timeout)
    return ready


def parse_level(data: bytes) -> bool:
    if data == b"0":
        return False
    if data == b"1":
        return True
    raise InvariantViolation(f"Read inconsistent value in pin value file: {data!r}")


@dataclass(frozen=True)
class PinEvent:
    """A level change observed on a watched pin."""
    pin: int
    level: bool


@dataclass
class WatchedInput:
    pin: int
    file: BinaryIO
    fd: int
    level: bool | None = None


class _Action(Enum):
    ADD = "add"
    REMOVE = "remove"
    CLOSE = "close"


@dataclass
class _Command:
    action: _Action
    pin: int = 0
    file: BinaryIO | None = None


class PinEdgeWatcher:
    """
    Watches a dynamic set of sysfs GPIO inputs from one background thread.

    The poll thread blocks on a multiplexed wait over every registered value file,
    bounded by ``poll_interval`` so that queued add/remove/close commands are
    applied promptly. Each ready file is re-read from offset 0 and the resulting
    ``PinEvent`` is offered to a bounded queue read by exactly one consumer via
    ``watch()`` or ``watch_async()``.

    When the consumer lags and the queue is full, new events are dropped rather
    than stalling the poll loop. Edges keep coming and the debounced consumer
    only needs the latest levels, so availability wins over completeness here.
    """

    def __init__(self, config: WatcherConfig | None = None, wait: WaitFunction = wait_for_edges):
        self.config: WatcherConfig = config or watcher_config
        self._wait = wait
        self._inputs: dict[int, WatchedInput] = {}
        self._commands: queue.SimpleQueue[_Command] = queue.SimpleQueue()
        self._events = culsans.Queue(maxsize=self.config.notify_queue_size)
        self._lock = threading.Lock()
        self._closed = False
        self._failure: BaseException | None = None
        self._thread = threading.Thread(target=self._run, name="pin-edge-watcher", daemon=True)
        self._thread.start()

    @property
    def root(self) -> Path:
        return Path(self.config.sysfs_root)

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------

    def add_pin(self, pin: int) -> None:
        """Export and configure ``pin`` as an edge-triggered input and start watching it.

        Raises:
            ResourceError: If the pin cannot be exported, configured or opened
            RuntimeError: If the watcher is closed
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Pin watcher is closed")
            value_file = self._open_pin(pin)
            self._commands.put(_Command(_Action.ADD, pin, value_file))
        logger.info(f"Watching gpio {pin}")

    def remove_pin(self, pin: int) -> None:
        """Stop watching ``pin`` and close its value file. Unknown pins are ignored."""
        with self._lock:
            if self._closed:
                return
            self._commands.put(_Command(_Action.REMOVE, pin))

    def watch(self, timeout: float | None = None) -> PinEvent:
        """Block until the next edge notification.

        Raises:
            TimeoutError: If ``timeout`` elapses first
            CurtainError: The poll thread's fatal error, once it has stopped
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = self.config.poll_interval
            if deadline is not None:
                wait = min(wait, max(0.0, deadline - time.monotonic()))
            try:
                return self._events.sync_q.get(timeout=wait)
            except queue.Empty:
                if self._failure is not None:
                    raise self._failure
                if deadline is not None and time.monotonic() >= deadline:
                    raise TimeoutError("No pin event within timeout")

    async def watch_async(self) -> PinEvent:
        """Awaitable variant of ``watch()`` for an asyncio consumer."""
        while True:
            try:
                return await asyncio.wait_for(self._events.async_q.get(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                if self._failure is not None:
                    raise self._failure

    def close(self) -> None:
        """Stop the poll thread and release every value file, registered or still queued."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._commands.put(_Command(_Action.CLOSE))
        self._thread.join(timeout=self.config.poll_interval * 2)
        if self._thread.is_alive():
            logger.warning("Pin watcher thread did not stop in time")
        else:
            logger.info("Pin watcher closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _open_pin(self, pin: int) -> BinaryIO:
        pin_dir = self.root / f"gpio{pin}"
        try:
            if not pin_dir.exists():
                (self.root / "export").write_text(str(pin))

            # The pin directory and its attribute permissions appear asynchronously after export
            for attempt in Retrying(
                stop=stop_after_delay(self.config.export_timeout),
                wait=wait_fixed(0.01),
                retry=retry_if_exception_type(OSError),
                reraise=True,
            ):
                with attempt:
                    (pin_dir / "direction").write_text("in")
                    (pin_dir / "edge").write_text("both")

            return open(pin_dir / "value", "rb", buffering=0)
        except OSError as e:
            logger.error(f"Failed to set up gpio {pin}: {e}")
            raise ResourceError(f"Failed to set up gpio {pin} under {self.root}: {e}") from e

    # ------------------------------------------------------------------
    # Poll thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        failure = None
        try:
            running = True
            while running:
                running = self._drain_commands()
                if not running:
                    break
                if self._inputs:
                    for fd in self._wait(list(self._inputs), self.config.poll_interval):
                        self._read(fd)
                else:
                    # Nothing to multiplex over, so wait on the command queue for the same interval
                    try:
                        command = self._commands.get(timeout=self.config.poll_interval)
                    except queue.Empty:
                        continue
                    running = self._apply(command)
        except Exception as e:
            logger.critical(f"Pin watcher failed: {type(e).__name__}: {e}", exc_info=True)
            failure = e
        finally:
            self._release_all()
            self._failure = failure

    def _drain_commands(self) -> bool:
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return True
            if not self._apply(command):
                return False

    def _apply(self, command: _Command) -> bool:
        if command.action is _Action.ADD:
            self._register(command.pin, command.file)
        elif command.action is _Action.REMOVE:
            fd = self._fd_for(command.pin)
            if fd is not None:
                self._release(fd)
                logger.info(f"Stopped watching gpio {command.pin}")
        elif command.action is _Action.CLOSE:
            return False
        return True

    def _register(self, pin: int, value_file: BinaryIO) -> None:
        if self._fd_for(pin) is not None:
            logger.warning(f"gpio {pin} is already watched, ignoring duplicate registration")
            value_file.close()
            return
        fd = value_file.fileno()
        self._inputs[fd] = WatchedInput(pin=pin, file=value_file, fd=fd)

    def _fd_for(self, pin: int) -> int | None:
        for fd, watched in self._inputs.items():
            if watched.pin == pin:
                return fd
        return None

    def _read(self, fd: int) -> None:
        watched = self._inputs.get(fd)
        if watched is None:
            return
        watched.file.seek(0)
        data = watched.file.read(1)
        if not data:
            logger.info(f"Value file of gpio {watched.pin} reached end of stream, no longer watching it")
            self._release(fd)
            return

        watched.level = parse_level(data)
        self._publish(PinEvent(watched.pin, watched.level))

    def _publish(self, event: PinEvent) -> None:
        try:
            self._events.sync_q.put_nowait(event)
        except queue.Full:
            logger.warning(f"Edge notification queue full, dropping {event=}")

    def _release(self, fd: int) -> None:
        watched = self._inputs.pop(fd)
        watched.file.close()

    def _release_all(self) -> None:
        with self._lock:
            self._closed = True
            # Registrations queued before the close was seen still own an open file
            while True:
                try:
                    command = self._commands.get_nowait()
                except queue.Empty:
                    break
                if command.file is not None:
                    command.file.close()
        for fd in list(self._inputs):
            self._release(fd)
