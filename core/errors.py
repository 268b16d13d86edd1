"""
Tracker Errors

Domain exceptions raised by the tracker. HTTP-level failures live in
core.resilience; these cover configuration, user input and run control.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for tracker errors with a user-facing message."""

    pass


class ConfigurationError(TrackerError):
    """Raised at startup when required configuration is missing."""

    pass


class InvalidRowError(TrackerError):
    """Raised when a manually supplied row number is unusable."""

    def __init__(self, message: str, row_input: object = None):
        super().__init__(message)
        self.row_input = row_input


class InvalidLinkError(TrackerError):
    """Raised when a tracking link carries no beatmap id or is already tracked."""

    pass


class RunLockHeldError(TrackerError):
    """Raised when another run currently holds the record tables."""

    def __init__(self, lock_name: str, holder: Optional[str] = None):
        message = f"Another run is already using '{lock_name}'"
        if holder:
            message += f" (held by {holder})"
        super().__init__(message)
        self.lock_name = lock_name
        self.holder = holder


class BatchFetchError(TrackerError):
    """
    Raised when a batched upstream fetch fails at the transport layer.

    Fatal for the current run. The original exception is chained as
    __cause__.
    """

    def __init__(self, kind: str, chunk_index: int, beatmap_id: str, error: Exception):
        super().__init__(
            f"{kind} fetch failed in chunk {chunk_index} for beatmap {beatmap_id}: "
            f"{type(error).__name__}: {error}"
        )
        self.kind = kind
        self.chunk_index = chunk_index
        self.beatmap_id = beatmap_id
