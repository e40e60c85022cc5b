"""Pytest configuration for curtain controller tests."""
import asyncio
import os
import sys
import threading
import time
from pathlib import Path

import pytest

src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from gpiozero import Device
from gpiozero.pins.mock import MockFactory

from curtain_controller.config import CurtainSettings, MotionConfig, PinConfig, SwitchConfig, WatcherConfig
from curtain_controller.hardware.motor import MotorDirection
from curtain_controller.hardware.pin_watcher import PinEvent

SWITCH_LEFT = 17
SWITCH_RIGHT = 27


class ScriptedEdges:
    """Multiplexed wait driven by the test: a value file is only reported ready after trigger()."""

    def __init__(self):
        self._condition = threading.Condition()
        self._pending: set[int] = set()
        self._serving_calls: list[int] = []
        self.calls = 0

    def trigger(self, path: Path) -> None:
        with self._condition:
            self._pending.add(os.stat(path).st_ino)
            self._condition.notify_all()

    def wait_processed(self, count: int, timeout: float = 2.0) -> bool:
        """Wait until ``count`` triggers were reported and the poll loop finished handling them."""
        def processed():
            return len(self._serving_calls) >= count and self.calls > self._serving_calls[count - 1]

        with self._condition:
            return self._condition.wait_for(processed, timeout=timeout)

    def _ready(self, fds: list[int]) -> list[int]:
        return [fd for fd in fds if os.fstat(fd).st_ino in self._pending]

    def __call__(self, fds: list[int], timeout: float) -> list[int]:
        with self._condition:
            self.calls += 1
            self._condition.notify_all()
            self._condition.wait_for(lambda: self._ready(fds), timeout=timeout)
            ready = self._ready(fds)
            for fd in ready:
                self._pending.discard(os.fstat(fd).st_ino)
            if ready:
                self._serving_calls.append(self.calls)
            return ready


class FakeWatcher:
    """Stands in for PinEdgeWatcher, delivering events pushed by the test."""

    def __init__(self):
        self.added: list[int] = []
        self.closed = False
        self._events: asyncio.Queue[PinEvent] = asyncio.Queue()

    def add_pin(self, pin: int) -> None:
        self.added.append(pin)

    def remove_pin(self, pin: int) -> None:
        self.added.remove(pin)

    def emit(self, pin: int, level: bool) -> None:
        self._events.put_nowait(PinEvent(pin, level))

    async def watch_async(self) -> PinEvent:
        return await self._events.get()

    def close(self) -> None:
        self.closed = True


class RecordingMotor:
    """Records every motor command with a monotonic timestamp."""

    def __init__(self):
        self.direction = MotorDirection.STOP
        self.commands: list[tuple[MotorDirection, float]] = []
        self.closed = False

    def move(self, direction: MotorDirection) -> None:
        self.direction = direction
        self.commands.append((direction, time.monotonic()))

    def stop(self) -> None:
        self.move(MotorDirection.STOP)

    def close(self) -> None:
        self.closed = True

    @property
    def directions(self) -> list[MotorDirection]:
        return [direction for direction, _ in self.commands]


def make_settings(
    full_traversal_seconds: float = 0.3,
    settle_seconds: float = 0.05,
    initial_position: float = 0.0,
    debounce_seconds: float = 0.0,
    sysfs_root: str = "/sys/class/gpio",
) -> CurtainSettings:
    return CurtainSettings(
        pins=PinConfig(motor_left=22, motor_right=23, switch_left=SWITCH_LEFT, switch_right=SWITCH_RIGHT),
        motion=MotionConfig(
            full_traversal_seconds=full_traversal_seconds,
            settle_seconds=settle_seconds,
            initial_position=initial_position,
        ),
        switch=SwitchConfig(debounce_seconds=debounce_seconds, active_level=False),
        watcher=WatcherConfig(sysfs_root=sysfs_root, poll_interval=0.05, notify_queue_size=8, export_timeout=0.1),
    )


async def wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def mock_pin_factory():
    """Route gpiozero devices to mock pins for non-Raspberry Pi systems."""
    previous = Device.pin_factory
    factory = MockFactory()
    Device.pin_factory = factory
    yield factory
    factory.reset()
    Device.pin_factory = previous


@pytest.fixture
def sysfs_root(tmp_path):
    """A fake /sys/class/gpio with both limit switches already exported and released."""
    root = tmp_path / "gpio"
    root.mkdir()
    (root / "export").write_text("")
    for pin in (SWITCH_LEFT, SWITCH_RIGHT):
        pin_dir = root / f"gpio{pin}"
        pin_dir.mkdir()
        (pin_dir / "direction").write_text("out")
        (pin_dir / "edge").write_text("none")
        (pin_dir / "value").write_bytes(b"1\n")
    return root


@pytest.fixture
def edges():
    return ScriptedEdges()
