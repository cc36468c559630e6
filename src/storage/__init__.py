# Profile persistence adapter. Backends live in .local and .sql; .factory picks one.
from .exceptions import StorageError, BackendUnavailable, WriteRejected, ReadFailed
from .base import ProfileStore, ChangeListeners, OPTIONAL_FIELDS

__all__ = [
    "StorageError",
    "BackendUnavailable",
    "WriteRejected",
    "ReadFailed",
    "ProfileStore",
    "ChangeListeners",
    "OPTIONAL_FIELDS",
]
