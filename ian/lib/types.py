"""
Core data types for document-pipeline jobs.

Jobs are persisted as JSON using camelCase keys so that directory trees
and key-value exports stay readable by every release. Python code works
with the snake_case dataclasses below; to_dict()/from_dict() translate.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .constants import JOB_ID_PREFIX, STATUS_NEW


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_job_id(prefix: str = JOB_ID_PREFIX, existing: Iterable[str] = (),
                    now: Optional[datetime] = None) -> str:
    """Generate a time-derived ID such as JOB-20250101-093000.

    IDs created within the same second get a numeric suffix (-2, -3, ...)
    so an ID already present in `existing` is never handed out again.
    """
    now = now or datetime.now()
    base = f"{prefix}-{now.strftime('%Y%m%d-%H%M%S')}"
    taken = set(existing)
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


@dataclass
class ReferenceFile:
    """Textual content backing a reference; supersedes folder names in prompts."""
    name: str
    path: str
    content: str
    type: str = "text/plain"

    def to_dict(self) -> dict:
        return {"name": self.name, "path": self.path, "content": self.content, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict) -> "ReferenceFile":
        return cls(
            name=data.get("name", ""),
            path=data.get("path", data.get("name", "")),
            content=data.get("content", ""),
            type=data.get("type", "text/plain"),
        )


@dataclass(frozen=True)
class VersionSnapshot:
    """Frozen capture of a job at the moment a newer version superseded it."""
    version: int
    created_at: str
    description: str
    status: str
    outputs: dict[str, str]
    reference_folders: list[str] = field(default_factory=list)
    reference_files: list[ReferenceFile] = field(default_factory=list)
    change_reason: Optional[str] = None
    changelog: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "createdAt": self.created_at,
            "description": self.description,
            "status": self.status,
            "referenceFolders": list(self.reference_folders),
            "referenceFiles": [f.to_dict() for f in self.reference_files],
            "outputs": dict(self.outputs),
        }
        if self.change_reason is not None:
            data["changeReason"] = self.change_reason
        if self.changelog is not None:
            data["changelog"] = self.changelog
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "VersionSnapshot":
        return cls(
            version=int(data["version"]),
            created_at=data.get("createdAt", ""),
            description=data.get("description", ""),
            status=data.get("status", STATUS_NEW),
            outputs=dict(data.get("outputs") or {}),
            reference_folders=list(data.get("referenceFolders") or []),
            reference_files=[ReferenceFile.from_dict(f) for f in data.get("referenceFiles") or []],
            change_reason=data.get("changeReason"),
            changelog=data.get("changelog"),
        )


@dataclass
class Job:
    """One versioned document-generation task and its accumulated outputs."""
    id: str
    title: str
    description: str
    created_at: str
    updated_at: str
    status: str = STATUS_NEW
    version: int = 1
    reference_folders: list[str] = field(default_factory=list)
    reference_files: list[ReferenceFile] = field(default_factory=list)
    outputs: dict[str, str] = field(default_factory=dict)
    version_history: list[VersionSnapshot] = field(default_factory=list)
    change_reason: Optional[str] = None
    current_step: Optional[str] = None
    changelog: Optional[str] = None

    @classmethod
    def create(cls, title: str, description: str, reference_folders: Iterable[str] = (),
               reference_files: Iterable[ReferenceFile] = (), existing_ids: Iterable[str] = ()) -> "Job":
        """Create a fresh version-1 job with a new ID."""
        ts = now_iso()
        return cls(
            id=generate_job_id(JOB_ID_PREFIX, existing_ids),
            title=title,
            description=description,
            created_at=ts,
            updated_at=ts,
            reference_folders=list(reference_folders),
            reference_files=list(reference_files),
        )

    @property
    def previous_snapshot(self) -> Optional[VersionSnapshot]:
        return self.version_history[-1] if self.version_history else None

    def snapshot(self) -> VersionSnapshot:
        """Deep-copy the current state into a VersionSnapshot."""
        return VersionSnapshot(
            version=self.version,
            created_at=self.updated_at or self.created_at,
            description=self.description,
            status=self.status,
            outputs=copy.deepcopy(self.outputs),
            reference_folders=list(self.reference_folders),
            reference_files=copy.deepcopy(self.reference_files),
            change_reason=self.change_reason,
            changelog=self.changelog,
        )

    def metadata_dict(self) -> dict[str, Any]:
        """All persisted fields except outputs."""
        data = self.to_dict()
        del data["outputs"]
        return data

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "referenceFolders": list(self.reference_folders),
            "referenceFiles": [f.to_dict() for f in self.reference_files],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "status": self.status,
            "version": self.version,
            "outputs": dict(self.outputs),
            "versionHistory": [s.to_dict() for s in self.version_history],
        }
        if self.change_reason is not None:
            data["changeReason"] = self.change_reason
        if self.current_step is not None:
            data["currentStep"] = self.current_step
        if self.changelog is not None:
            data["changelog"] = self.changelog
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", data.get("createdAt", "")),
            status=data.get("status", STATUS_NEW),
            version=int(data.get("version", 1)),
            reference_folders=list(data.get("referenceFolders") or []),
            reference_files=[ReferenceFile.from_dict(f) for f in data.get("referenceFiles") or []],
            outputs=dict(data.get("outputs") or {}),
            version_history=[VersionSnapshot.from_dict(s) for s in data.get("versionHistory") or []],
            change_reason=data.get("changeReason"),
            current_step=data.get("currentStep"),
            changelog=data.get("changelog"),
        )
