# --- Custom Exceptions for the Persistence Adapter ---
from typing import Optional


class StorageError(Exception):
    """Base exception for profile storage operations."""
    pass


class BackendUnavailable(StorageError):
    """The remote backend is not configured or cannot be created. Callers fall back to local storage."""
    pass


class WriteRejected(StorageError):
    """The backend refused a write (schema mismatch or constraint violation)."""
    def __init__(self, message="Write rejected by backend.", unknown_field: Optional[str] = None, original_exception=None):
        super().__init__(message)
        self.unknown_field = unknown_field
        self.original_exception = original_exception


class ReadFailed(StorageError):
    """Fetching profiles failed. Surfaced to callers as an empty list."""
    pass
