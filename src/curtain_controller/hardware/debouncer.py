"""Level debouncing for a single digital input."""
import time
from collections.abc import Callable


class Debouncer:
    """Suppresses rapid level flips on one input.

    The first level pushed always emits. Afterwards a level only emits when it
    differs from the last emitted one and at least ``window`` seconds have passed
    since that emission. Repeats of the emitted level never emit and never reset
    the window.
    """

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic):
        if window < 0:
            raise ValueError("Debounce window must be non-negative")
        self.window = window
        self._clock = clock
        self.last_emit_time: float | None = None
        self.last_emit_level: bool | None = None

    def _update(self, now: float, level: bool) -> None:
        self.last_emit_time = now
        self.last_emit_level = level

    def push(self, level: bool) -> bool:
        """Feed one observed level, returning True if it should be reported."""
        now = self._clock()
        if self.last_emit_time is None:
            self._update(now, level)
            return True

        if level == self.last_emit_level:
            return False

        if now - self.last_emit_time >= self.window:
            self._update(now, level)
            return True

        return False
