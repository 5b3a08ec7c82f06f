"""Exceptions that abort a whole sync pass.

Scoped failures (one organizer, one meeting) never surface as exceptions
to the caller; they are recorded on tagged outcomes and counters.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for errors fatal to a sync pass."""


class EventFetchError(SyncError):
    """The viewer's calendar window could not be fetched."""

    def __init__(self, message: str, pages_fetched: int = 0) -> None:
        super().__init__(message)
        self.pages_fetched = pages_fetched


class SyncTimeoutError(SyncError):
    """The pass exceeded its overall time budget; outstanding calls were cancelled."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Sync pass exceeded {timeout_seconds:g}s budget")
        self.timeout_seconds = timeout_seconds
