"""
Directory-tree backend.

Layout under the chosen root:

    .ian-config.json                      {version, createdAt, lastAccess}
    jobs/<id>/job.json                    job fields except outputs, plus outputFiles
    jobs/<id>/outputs/<file>.md           one file per non-empty output
    jobs/<id>/references/files.json       reference file contents
    grading-jobs/<id>/job.json            (older releases wrote grading/<id>/job.json)
    settings/<key>.json
    .trash/<id>_<epoch ms>/...            full copy of a deleted job

Metadata and output files are separate writes with no atomic commit. A
job.json naming an output file that was never written loads without it;
an output file nobody references is ignored.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ian.grading.models import GradingJob
from ian.lib.steps import OUTPUT_FILES
from ian.lib.types import Job, now_iso
from ian.lib.validate import ValidationError, validate, validate_before_write

from .base import (
    StorageBackend,
    StorageError,
    StoragePermissionError,
    TrashEntry,
    TrashEntryNotFound,
    sort_newest_first,
)
from .handles import PERMISSION_GRANTED, DirectoryHandle, RootDirectoryHandle, check_entry_name, copy_tree

logger = logging.getLogger(__name__)

ROOT_CONFIG_FILE = ".ian-config.json"
ROOT_CONFIG_VERSION = 1
JOBS_DIR = "jobs"
SETTINGS_DIR = "settings"
TRASH_DIR = ".trash"
JOB_FILE = "job.json"
OUTPUTS_DIR = "outputs"
REFERENCES_DIR = "references"
REFERENCE_FILES = "files.json"


@dataclass(frozen=True)
class LocationResolver:
    """A directory (relative to the root) where grading jobs may live."""
    directory: str
    legacy: bool = False


# Tried in order; the first location holding an ID wins
GRADING_LOCATIONS = (
    LocationResolver("grading-jobs"),
    LocationResolver("grading", legacy=True),
)


class DirectoryStorage(StorageBackend):
    """Jobs stored as a directory tree under a user-chosen root."""

    name = "filesystem"

    def __init__(self, root: RootDirectoryHandle, grading_locations=GRADING_LOCATIONS):
        self.root = root
        self.grading_locations = tuple(grading_locations)

    @classmethod
    async def open(cls, path: Path, create: bool = True) -> "DirectoryStorage":
        """Open (and initialize) a storage root.

        Raises:
            StoragePermissionError: if the directory isn't writable
            StorageError: if it doesn't exist and create is False
        """
        path = Path(path).expanduser()
        if not path.is_dir():
            if not create:
                raise StorageError(f"Storage directory not found: {path}")
            path.mkdir(parents=True, exist_ok=True)

        root = RootDirectoryHandle(path)
        if await root.request_permission() != PERMISSION_GRANTED:
            raise StoragePermissionError()

        storage = cls(root)
        await storage.initialize()
        return storage

    def describe(self) -> str:
        return f"filesystem ({self.root.path})"

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    async def _ensure_writable(self) -> None:
        if await self.root.query_permission() != PERMISSION_GRANTED:
            raise StoragePermissionError()

    async def _get_dir(self, *parts: str, create: bool = False) -> Optional[DirectoryHandle]:
        """Walk down from the root; None if a part is missing and create is False."""
        handle: DirectoryHandle = self.root
        try:
            for part in parts:
                handle = await handle.get_directory_handle(part, create=create)
        except FileNotFoundError:
            return None
        return handle

    async def _read_text(self, handle: DirectoryHandle, name: str) -> Optional[str]:
        try:
            return await handle.get_file_text(name)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {handle.path / name}: {e}")
            return None

    async def _read_json(self, handle: Optional[DirectoryHandle], name: str) -> Any:
        if handle is None:
            return None
        text = await self._read_text(handle, name)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt JSON in {handle.path / name}: {e}")
            return None

    async def _write_json(self, handle: DirectoryHandle, name: str, data: Any) -> None:
        await handle.write_file(name, json.dumps(data, indent=2))

    async def _list_dirs(self, *parts: str) -> list[str]:
        handle = await self._get_dir(*parts)
        if handle is None:
            return []
        try:
            return await handle.list_directories()
        except OSError as e:
            logger.warning(f"Failed to list {handle.path}: {e}")
            return []

    # ─────────────────────────────────────────────────────────────────────
    # Root
    # ─────────────────────────────────────────────────────────────────────

    async def initialize(self) -> dict:
        """Create the top-level layout and stamp .ian-config.json."""
        await self._ensure_writable()
        for directory in (JOBS_DIR, self.grading_locations[0].directory, SETTINGS_DIR):
            await self.root.get_directory_handle(directory, create=True)

        config = await self._read_json(self.root, ROOT_CONFIG_FILE)
        now = now_iso()
        try:
            if config is not None:
                validate(config, "storage_config")
        except ValidationError as e:
            logger.warning(f"Replacing invalid {ROOT_CONFIG_FILE}: {e}")
            config = None

        if config is None:
            config = {"version": ROOT_CONFIG_VERSION, "createdAt": now, "lastAccess": now}
            logger.info(f"Initialized storage root {self.root.path}")
        else:
            config["lastAccess"] = now

        validate_before_write(config, "storage_config", str(self.root.path / ROOT_CONFIG_FILE))
        await self._write_json(self.root, ROOT_CONFIG_FILE, config)
        return config

    async def read_root_config(self) -> Optional[dict]:
        return await self._read_json(self.root, ROOT_CONFIG_FILE)

    # ─────────────────────────────────────────────────────────────────────
    # Jobs
    # ─────────────────────────────────────────────────────────────────────

    async def save_job(self, job: Job) -> None:
        await self._ensure_writable()

        # Empty outputs are not written; they load back as absent
        outputs = {name: content for name, content in job.outputs.items() if content}
        metadata = job.metadata_dict()
        metadata["outputFiles"] = list(outputs)
        validate_before_write(metadata, "job", f"{JOBS_DIR}/{job.id}/{JOB_FILE}")

        job_dir = await self._get_dir(JOBS_DIR, check_entry_name(job.id), create=True)
        await self._write_json(job_dir, JOB_FILE, metadata)

        if outputs:
            outputs_dir = await job_dir.get_directory_handle(OUTPUTS_DIR, create=True)
            await asyncio.gather(*(
                outputs_dir.write_file(name, content) for name, content in outputs.items()
            ))

        if job.reference_files:
            references_dir = await job_dir.get_directory_handle(REFERENCES_DIR, create=True)
            await self._write_json(references_dir, REFERENCE_FILES, [f.to_dict() for f in job.reference_files])

        logger.debug(f"Saved {job.id} ({len(outputs)} output files)")

    async def load_job(self, job_id: str) -> Optional[Job]:
        try:
            check_entry_name(job_id)
        except ValueError:
            return None

        job_dir = await self._get_dir(JOBS_DIR, job_id)
        metadata = await self._read_json(job_dir, JOB_FILE)
        if not isinstance(metadata, dict):
            return None

        outputs: dict[str, str] = {}
        output_files = []
        for name in metadata.pop("outputFiles", None) or []:
            if name in OUTPUT_FILES:
                output_files.append(name)
            else:
                logger.warning(f"Ignoring unknown output file {name!r} listed by job {job_id}")
        outputs_dir = await self._get_dir(JOBS_DIR, job_id, OUTPUTS_DIR) if output_files else None
        if outputs_dir is not None:
            contents = await asyncio.gather(*(self._read_text(outputs_dir, name) for name in output_files))
            for name, content in zip(output_files, contents):
                if content is not None:
                    outputs[name] = content
        metadata["outputs"] = outputs

        reference_files = await self._read_json(await self._get_dir(JOBS_DIR, job_id, REFERENCES_DIR),
                                                REFERENCE_FILES)
        if isinstance(reference_files, list):
            metadata["referenceFiles"] = reference_files

        try:
            return Job.from_dict(metadata)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Unreadable job {job_id}: {e}")
            return None

    async def load_all_jobs(self) -> list[Job]:
        job_ids = await self._list_dirs(JOBS_DIR)
        jobs = await asyncio.gather(*(self.load_job(job_id) for job_id in job_ids))
        return sort_newest_first(job for job in jobs if job is not None)

    async def delete_job(self, job_id: str) -> str:
        """Move a job into .trash. Returns the trash entry ID."""
        await self._ensure_writable()
        check_entry_name(job_id)

        jobs_dir = await self._get_dir(JOBS_DIR)
        source = await self._get_dir(JOBS_DIR, job_id)
        if jobs_dir is None or source is None:
            raise StorageError(f"Job {job_id} not found")

        trash_dir = await self.root.get_directory_handle(TRASH_DIR, create=True)
        existing = set(await trash_dir.list_directories())
        timestamp = int(time.time() * 1000)
        while f"{job_id}_{timestamp}" in existing:
            timestamp += 1
        trash_id = f"{job_id}_{timestamp}"

        target = await trash_dir.get_directory_handle(trash_id, create=True)
        await copy_tree(source, target)
        await jobs_dir.remove_entry(job_id, recursive=True)
        logger.info(f"Moved {job_id} to trash as {trash_id}")
        return trash_id

    # ─────────────────────────────────────────────────────────────────────
    # Trash
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def parse_trash_id(trash_id: str) -> tuple[str, int]:
        """Split '<job id>_<epoch ms>'.

        Raises:
            ValueError: if the name has no numeric timestamp suffix
        """
        original_id, sep, timestamp = trash_id.rpartition("_")
        if not sep or not original_id or not timestamp.isdigit():
            raise ValueError(f"Not a trash entry name: {trash_id}")
        return original_id, int(timestamp)

    async def list_trash(self) -> list[TrashEntry]:
        entries = []
        for name in await self._list_dirs(TRASH_DIR):
            try:
                original_id, timestamp = self.parse_trash_id(name)
            except ValueError:
                logger.warning(f"Ignoring unexpected trash entry: {name}")
                continue
            entries.append(TrashEntry(
                id=name,
                original_id=original_id,
                trashed_at=datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc),
            ))
        return sorted(entries, key=lambda e: e.trashed_at, reverse=True)

    async def _get_trash_entry(self, trash_id: str) -> tuple[DirectoryHandle, DirectoryHandle]:
        try:
            check_entry_name(trash_id)
        except ValueError as e:
            raise TrashEntryNotFound(str(e)) from None
        trash_dir = await self._get_dir(TRASH_DIR)
        entry = await self._get_dir(TRASH_DIR, trash_id)
        if trash_dir is None or entry is None:
            raise TrashEntryNotFound(f"Trash entry not found: {trash_id}")
        return trash_dir, entry

    async def restore_job(self, trash_id: str) -> str:
        """Copy a trash entry back under its original ID. Returns that ID."""
        await self._ensure_writable()
        trash_dir, entry = await self._get_trash_entry(trash_id)
        try:
            original_id, _ = self.parse_trash_id(trash_id)
        except ValueError as e:
            raise TrashEntryNotFound(str(e)) from None

        target = await self._get_dir(JOBS_DIR, original_id, create=True)
        await copy_tree(entry, target)
        await trash_dir.remove_entry(trash_id, recursive=True)
        logger.info(f"Restored {original_id} from {trash_id}")
        return original_id

    async def purge_trash(self, trash_id: str) -> None:
        """Permanently delete a trash entry."""
        await self._ensure_writable()
        trash_dir, _ = await self._get_trash_entry(trash_id)
        await trash_dir.remove_entry(trash_id, recursive=True)
        logger.info(f"Purged {trash_id}")

    # ─────────────────────────────────────────────────────────────────────
    # Grading jobs
    # ─────────────────────────────────────────────────────────────────────

    async def save_grading_job(self, job: GradingJob) -> None:
        await self._ensure_writable()
        data = job.to_dict()
        primary = self.grading_locations[0].directory
        validate_before_write(data, "grading_job", f"{primary}/{job.id}/{JOB_FILE}")
        job_dir = await self._get_dir(primary, check_entry_name(job.id), create=True)
        await self._write_json(job_dir, JOB_FILE, data)

    async def _load_grading_from(self, location: LocationResolver, job_id: str) -> Optional[GradingJob]:
        data = await self._read_json(await self._get_dir(location.directory, job_id), JOB_FILE)
        if not isinstance(data, dict):
            return None
        try:
            return GradingJob.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Unreadable grading job {location.directory}/{job_id}: {e}")
            return None

    async def load_grading_job(self, job_id: str) -> Optional[GradingJob]:
        try:
            check_entry_name(job_id)
        except ValueError:
            return None
        for location in self.grading_locations:
            job = await self._load_grading_from(location, job_id)
            if job is not None:
                if location.legacy:
                    logger.debug(f"Loaded {job_id} from legacy location {location.directory}/")
                return job
        return None

    async def load_all_grading_jobs(self) -> list[GradingJob]:
        found: dict[str, GradingJob] = {}
        for location in self.grading_locations:
            pending = [job_id for job_id in await self._list_dirs(location.directory) if job_id not in found]
            jobs = await asyncio.gather(*(self._load_grading_from(location, job_id) for job_id in pending))
            for job_id, job in zip(pending, jobs):
                if job is not None:
                    found[job_id] = job
        return sort_newest_first(found.values())

    async def delete_grading_job(self, job_id: str) -> None:
        await self._ensure_writable()
        check_entry_name(job_id)
        removed = False
        for location in self.grading_locations:
            parent = await self._get_dir(location.directory)
            if parent is not None and await self._get_dir(location.directory, job_id) is not None:
                await parent.remove_entry(job_id, recursive=True)
                removed = True
        if not removed:
            raise StorageError(f"Grading job {job_id} not found")

    # ─────────────────────────────────────────────────────────────────────
    # Settings
    # ─────────────────────────────────────────────────────────────────────

    async def get_setting(self, key: str) -> Any:
        return await self._read_json(await self._get_dir(SETTINGS_DIR), f"{check_entry_name(key)}.json")

    async def set_setting(self, key: str, value: Any) -> None:
        await self._ensure_writable()
        settings_dir = await self._get_dir(SETTINGS_DIR, create=True)
        name = f"{check_entry_name(key)}.json"
        if value is None:
            if await self._read_text(settings_dir, name) is not None:
                await settings_dir.remove_entry(name)
            return
        await self._write_json(settings_dir, name, value)
