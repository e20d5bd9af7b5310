"""
Storage backend contract.

Two interchangeable backends implement it: KeyValueStorage (everything in
one diskcache store) and DirectoryStorage (a user-chosen directory tree
with trash and restore). Trash operations only exist on the directory
backend; the base class raises TrashNotSupported for them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, TypeVar

from ian.grading.models import GradingJob
from ian.lib.constants import PERMISSION_DENIED_MESSAGE
from ian.lib.types import Job

T = TypeVar("T", Job, GradingJob)


class StorageError(Exception):
    """Base class for storage failures."""
    pass


class StoragePermissionError(StorageError):
    """Write access to the storage root is missing or was revoked."""

    def __init__(self, message: str = PERMISSION_DENIED_MESSAGE):
        super().__init__(message)


class StorageNotConfigured(StorageError):
    """No usable storage location is configured."""
    pass


class TrashNotSupported(StorageError):
    """The active backend has no trash."""
    pass


class TrashEntryNotFound(StorageError):
    """No trash entry with the given ID."""
    pass


@dataclass(frozen=True)
class TrashEntry:
    id: str  # Directory name under .trash, e.g. JOB-20250101-093000_1735724400000
    original_id: str
    trashed_at: datetime


def sort_newest_first(items: Iterable[T]) -> list[T]:
    """Sort jobs by created_at, newest first (ties broken by ID for stable order)."""
    return sorted(items, key=lambda item: (item.created_at, item.id), reverse=True)


class StorageBackend(ABC):
    """Async persistence for jobs, grading jobs and settings."""

    name = "base"

    @abstractmethod
    async def save_job(self, job: Job) -> None: ...

    @abstractmethod
    async def load_job(self, job_id: str) -> Optional[Job]:
        """Return the job, or None if it doesn't exist (or can't be read)."""

    @abstractmethod
    async def load_all_jobs(self) -> list[Job]:
        """All jobs, newest first."""

    @abstractmethod
    async def delete_job(self, job_id: str) -> Optional[str]:
        """Delete a job. Returns the trash entry ID when the backend keeps one."""

    @abstractmethod
    async def save_grading_job(self, job: GradingJob) -> None: ...

    @abstractmethod
    async def load_grading_job(self, job_id: str) -> Optional[GradingJob]: ...

    @abstractmethod
    async def load_all_grading_jobs(self) -> list[GradingJob]: ...

    @abstractmethod
    async def delete_grading_job(self, job_id: str) -> None: ...

    @abstractmethod
    async def get_setting(self, key: str) -> Any:
        """Saved value for key, or None."""

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None: ...

    async def list_trash(self) -> list[TrashEntry]:
        raise TrashNotSupported(f"The {self.name} backend has no trash")

    async def restore_job(self, trash_id: str) -> str:
        raise TrashNotSupported(f"The {self.name} backend has no trash")

    async def purge_trash(self, trash_id: str) -> None:
        raise TrashNotSupported(f"The {self.name} backend has no trash")

    async def close(self) -> None:
        pass

    def describe(self) -> str:
        return self.name
