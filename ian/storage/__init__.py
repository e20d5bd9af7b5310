"""
Job persistence.

Two backends behind one async contract: a flat key-value store
(KeyValueStorage) and a directory tree with trash and restore
(DirectoryStorage).
"""

from ian.storage.base import (
    StorageBackend,
    StorageError,
    StorageNotConfigured,
    StoragePermissionError,
    TrashEntry,
    TrashEntryNotFound,
    TrashNotSupported,
)
from ian.storage.factory import export_jobs, open_storage
from ian.storage.filesystem import DirectoryStorage
from ian.storage.kv import KeyValueStorage

__all__ = [
    "StorageBackend",
    "StorageError",
    "StorageNotConfigured",
    "StoragePermissionError",
    "TrashEntry",
    "TrashEntryNotFound",
    "TrashNotSupported",
    "DirectoryStorage",
    "KeyValueStorage",
    "open_storage",
    "export_jobs",
]
