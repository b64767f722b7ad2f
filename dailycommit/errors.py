"""Error taxonomy for commit sync."""

from __future__ import annotations


class DailyCommitError(Exception):
    """Base class for errors surfaced to sync callers."""


class AuthenticationError(DailyCommitError):
    """Credential missing, expired, or rejected by the host. Fatal for a sync."""

    def __init__(self, message: str = "Authentication expired. Please log in again.", *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CollectionFailedError(DailyCommitError):
    """Every repository failed to fetch, so the sync has no usable data."""

    def __init__(self, message: str, *, failures: list[str] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or []


class StorageError(DailyCommitError):
    """Persisted read or write of a snapshot or badge ledger failed."""


class SyncInProgressError(DailyCommitError):
    """A sync for the same user is already running."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Sync already in progress for user {user_id}")
        self.user_id = user_id
