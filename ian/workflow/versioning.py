"""
Job versions.

A new version freezes the current job into version_history, folds in the
new reference material and clears outputs. It is not run here; the
pipeline has to be started separately.
"""

import copy
import logging
from typing import Iterable, Optional, Union

from ian.lib.constants import STATUS_RUNNING
from ian.lib.types import Job, ReferenceFile, now_iso
from .fsm import InvalidTransition, JobFSM

logger = logging.getLogger(__name__)

NewReference = Union[str, ReferenceFile]


class VersionLimitReached(Exception):
    """The license caps how many versions a job may have."""

    def __init__(self, job_id: str, max_versions: int):
        self.job_id = job_id
        self.max_versions = max_versions
        super().__init__(f"{job_id} already has {max_versions} versions (license limit)")


def merge_reference_folders(existing: list[str], new: Iterable[str]) -> list[str]:
    """Append new folder names, keeping order and dropping duplicates."""
    merged = list(existing)
    for folder in new:
        if folder not in merged:
            merged.append(folder)
    return merged


def merge_reference_files(existing: list[ReferenceFile], new: Iterable[ReferenceFile]) -> list[ReferenceFile]:
    """Append new files; a file with the same path replaces the older copy."""
    merged = list(existing)
    for ref in new:
        for i, current in enumerate(merged):
            if current.path == ref.path:
                merged[i] = ref
                break
        else:
            merged.append(ref)
    return merged


def create_version(job: Job, change_reason: str, new_references: Optional[Iterable[NewReference]] = None,
                   max_versions: Optional[int] = None) -> Job:
    """
    Supersede the job's current state with a new, unrun version.

    The input job is left untouched; the returned job carries the snapshot.

    Args:
        job: Job to version
        change_reason: Why the new version exists; appended to the description
        new_references: Folder names (str) and/or ReferenceFile objects to add
        max_versions: Optional cap on the number of versions

    Raises:
        InvalidTransition: if the job is currently running
        VersionLimitReached: if max_versions would be exceeded
    """
    if job.status == STATUS_RUNNING:
        raise InvalidTransition(job.status, "new_version", job.id)
    if max_versions is not None and job.version >= max_versions:
        raise VersionLimitReached(job.id, max_versions)

    new_job = copy.deepcopy(job)
    new_job.version_history.append(job.snapshot())

    folders = [r for r in new_references or [] if isinstance(r, str)]
    files = [r for r in new_references or [] if isinstance(r, ReferenceFile)]
    new_job.reference_folders = merge_reference_folders(new_job.reference_folders, folders)
    new_job.reference_files = merge_reference_files(new_job.reference_files, files)

    next_version = job.version + 1
    if change_reason:
        new_job.description = f"{job.description}\n\n--- Version {next_version} Updates ---\n{change_reason}"
    new_job.change_reason = change_reason or None

    JobFSM(new_job).fire("new_version")
    new_job.version = next_version
    new_job.outputs = {}
    new_job.changelog = None
    new_job.current_step = None
    new_job.updated_at = now_iso()

    logger.info(f"Created version {next_version} of {job.id} ({len(folders)} folders, {len(files)} files added)")
    return new_job
