"""Error taxonomy for the trade filter engine.

None of these are fatal to the process:

    ValidationError: malformed value object; recovered locally by the
        validator, which drops the offending field.
    FetchError: record source failed; surfaced as the orchestrator's
        ERROR state while the last good view is kept.
    StaleResponseError: response for a superseded request; discarded.
    StorageError: persistence backend unavailable or over quota;
        persistence is skipped for the session.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(EngineError, ValueError):
    """A value object was constructed with an invalid field."""

    def __init__(self, field: str, reason: str, value: object = None) -> None:
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"{field}: {reason} ({value!r})")


class FetchError(EngineError):
    """The external record source could not satisfy a query."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class StaleResponseError(EngineError):
    """A response arrived for a request that a newer intent superseded."""

    def __init__(self, seq: int, current_seq: int) -> None:
        self.seq = seq
        self.current_seq = current_seq
        super().__init__(f"response #{seq} superseded by #{current_seq}")


class StorageError(EngineError):
    """Client-side storage is unavailable or refused the write."""


class QuotaExceededError(StorageError):
    """The storage backend is full."""
