"""Exception types raised by the activity store."""

from __future__ import annotations


class ChronflowError(Exception):
    """Base class for recoverable tracker errors."""


class MalformedHeartbeatError(ChronflowError, ValueError):
    """A heartbeat failed validation at the append boundary."""


class StoreCorruptionError(ChronflowError):
    """The persisted store could not be parsed or validated."""

    def __init__(self, message: str, *, reason: str, backup_path: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.backup_path = backup_path


class StoreWriteError(ChronflowError, OSError):
    """Writing the store to disk failed."""


class RelocationError(ChronflowError):
    """Moving the store to a new directory failed or was refused."""
