"""Two-terminal motor bridge driven through gpiozero outputs."""
import logging
from enum import Enum

from gpiozero import DigitalOutputDevice

logger = logging.getLogger(__name__)


class MotorDirection(Enum):
    STOP = "stop"
    CLOCKWISE = "clockwise"
    COUNTERCLOCKWISE = "counterclockwise"


class MotorDriver:
    """
    Reversible DC motor on an H-bridge with two inputs.

    Stop drives both terminals to their inactive level. Clockwise activates
    the left terminal only, counterclockwise the right terminal only, so the
    two terminals are never active together.
    """

    def __init__(self, left_pin: int, right_pin: int, *, active_high: bool = False, pin_factory=None):
        self.left = DigitalOutputDevice(left_pin, active_high=active_high, initial_value=False, pin_factory=pin_factory)
        try:
            self.right = DigitalOutputDevice(right_pin, active_high=active_high, initial_value=False, pin_factory=pin_factory)
        except Exception:
            self.left.close()
            raise
        self.direction = MotorDirection.STOP
        logger.info(f"Motor bridge ready on pins {left_pin=}, {right_pin=} ({active_high=})")

    def move(self, direction: MotorDirection) -> None:
        if direction is MotorDirection.STOP:
            self.stop()
        elif direction is MotorDirection.CLOCKWISE:
            self.clockwise()
        elif direction is MotorDirection.COUNTERCLOCKWISE:
            self.counterclockwise()
        else:
            raise ValueError(f"Unrecognized motor direction: {direction!r}")

    def clockwise(self) -> None:
        self.right.off()
        self.left.on()
        self.direction = MotorDirection.CLOCKWISE
        logger.debug("Motor turning clockwise")

    def counterclockwise(self) -> None:
        self.left.off()
        self.right.on()
        self.direction = MotorDirection.COUNTERCLOCKWISE
        logger.debug("Motor turning counterclockwise")

    def stop(self) -> None:
        self.left.off()
        self.right.off()
        self.direction = MotorDirection.STOP
        logger.debug("Motor stopped")

    def close(self) -> None:
        """Stop the motor and release both output pins."""
        if self.left.closed and self.right.closed:
            return
        try:
            self.stop()
        finally:
            self.left.close()
            self.right.close()
            logger.info("Motor outputs released")
