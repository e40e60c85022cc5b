"""Exception hierarchy for the curtain controller."""


class CurtainError(Exception):
    """Base class for every error raised by the curtain controller."""


class ResourceError(CurtainError):
    """A GPIO pseudo-file could not be exported, configured or opened."""


class InvariantViolation(CurtainError):
    """Hardware reported something the controller has no model for.

    Raised for an unrecognized level byte in a value file or a hard stop on a pin
    that is not one of the two limit switches. These indicate a wiring or logic
    error, never a transient condition.
    """


class ControllerClosedError(CurtainError, RuntimeError):
    """The controller was closed and no longer services motion requests."""
