"""
Exceptions raised by the regiment logger.
"""


class RegimentlogError(Exception):
    """Base class for all regiment logger errors."""


class DecodeError(RegimentlogError):
    """Telemetry payload is not a usable BPM value."""


class PersistenceError(RegimentlogError):
    """A database read or write failed."""


class LockContentionError(RegimentlogError):
    """The active piece register could not be acquired in time."""


class SubscriptionError(RegimentlogError):
    """The telemetry listener could not connect or subscribe to its topic."""
