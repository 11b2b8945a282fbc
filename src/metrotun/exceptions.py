"""Exception types raised by the tunnel supervisor."""


class MetrotunError(Exception):
    """Base class for metrotun errors."""


class SpawnError(MetrotunError):
    """The tunnel process could not be started.

    Raised when the executable cannot be found or run, or the working
    directory does not exist.
    """


class CleanupError(MetrotunError):
    """A best-effort cleanup step failed. Never surfaced to API callers."""
