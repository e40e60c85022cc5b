"""Line-oriented curtain commands read from a terminal."""
import logging
import sys
import threading
from typing import TextIO

from curtain_controller.core.errors import CurtainError

logger = logging.getLogger(__name__)

COMMANDS = {"open": 1.0, "close": 0.0}


def parse_command(line: str) -> float | None:
    """Turn ``open``, ``close`` or a number into a target position. Blank lines give None."""
    text = line.strip().lower()
    if not text:
        return None
    if text in COMMANDS:
        return COMMANDS[text]
    position = float(text)
    if not 0.0 <= position <= 1.0:
        raise ValueError(f"Position must be between 0 and 1, got {position}")
    return position


class TerminalCommandReader:
    """Reads commands from a stream in a background thread and forwards them to the controller."""

    def __init__(self, controller, stream: TextIO | None = None):
        self.controller = controller
        self.stream = stream or sys.stdin
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="terminal-commands", daemon=True)
        self._thread.start()
        logger.info("Accepting curtain commands on the terminal: open, close or a position between 0 and 1")

    def stop(self) -> None:
        # A blocked readline cannot be interrupted, the daemon thread exits with the process
        self._stopped.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        for line in self.stream:
            if self._stopped.is_set():
                break
            try:
                position = parse_command(line)
            except ValueError as e:
                logger.warning(f"Ignoring terminal command {line.strip()!r}: {e}")
                continue
            if position is None:
                continue

            try:
                reached = self.controller.move_to_threadsafe(position)
            except CurtainError as e:
                logger.info(f"Controller stopped ({e}), no longer reading terminal commands")
                break
            logger.info(f"Terminal move finished at position {reached:.2f}")
        logger.info("Terminal command reader finished")
