"""
Flat key-value backend.

Each collection (all jobs, all grading jobs) is one JSON value in a
diskcache store, so every save rewrites and every load parses the whole
collection. Fine for a handful of jobs; the directory backend exists for
anything larger.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from diskcache import Cache

from ian.grading.models import GradingJob
from ian.lib.types import Job
from ian.lib.validate import validate_before_write

from .base import StorageBackend, sort_newest_first

logger = logging.getLogger(__name__)

KEY_PREFIX = "ian:"
JOBS_KEY = f"{KEY_PREFIX}jobs"
GRADING_JOBS_KEY = f"{KEY_PREFIX}grading-jobs"


def settings_key(key: str) -> str:
    return f"{KEY_PREFIX}settings:{key}"


class KeyValueStorage(StorageBackend):
    """Jobs, grading jobs and settings in a diskcache.Cache."""

    name = "kv"

    def __init__(self, directory: Optional[Path] = None, cache: Optional[Cache] = None):
        if cache is None and directory is None:
            raise ValueError("KeyValueStorage needs a directory or a Cache")
        self.cache = cache if cache is not None else Cache(str(directory))

    def describe(self) -> str:
        return f"kv ({self.cache.directory})"

    def _read_collection(self, key: str) -> list[dict]:
        raw = self.cache.get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Corrupt collection {key}, treating as empty: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Collection {key} is not a list, treating as empty")
            return []
        return data

    def _write_collection(self, key: str, items: list[dict]) -> None:
        self.cache.set(key, json.dumps(items))

    def _upsert(self, key: str, item: dict) -> None:
        items = self._read_collection(key)
        for i, existing in enumerate(items):
            if isinstance(existing, dict) and existing.get("id") == item["id"]:
                items[i] = item
                break
        else:
            items.append(item)
        self._write_collection(key, items)

    def _remove(self, key: str, item_id: str) -> bool:
        items = self._read_collection(key)
        remaining = [i for i in items if not (isinstance(i, dict) and i.get("id") == item_id)]
        if len(remaining) == len(items):
            return False
        self._write_collection(key, remaining)
        return True

    def _parse_all(self, key: str, parse: Callable[[dict], Any]) -> list:
        parsed = []
        for item in self._read_collection(key):
            try:
                parsed.append(parse(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping unreadable entry in {key}: {e}")
        return parsed

    async def save_job(self, job: Job) -> None:
        data = job.to_dict()
        validate_before_write(data, "job", JOBS_KEY)
        self._upsert(JOBS_KEY, data)

    async def load_job(self, job_id: str) -> Optional[Job]:
        for job in self._parse_all(JOBS_KEY, Job.from_dict):
            if job.id == job_id:
                return job
        return None

    async def load_all_jobs(self) -> list[Job]:
        return sort_newest_first(self._parse_all(JOBS_KEY, Job.from_dict))

    async def delete_job(self, job_id: str) -> Optional[str]:
        if not self._remove(JOBS_KEY, job_id):
            logger.warning(f"Delete: job {job_id} not found")
        return None

    async def save_grading_job(self, job: GradingJob) -> None:
        data = job.to_dict()
        validate_before_write(data, "grading_job", GRADING_JOBS_KEY)
        self._upsert(GRADING_JOBS_KEY, data)

    async def load_grading_job(self, job_id: str) -> Optional[GradingJob]:
        for job in self._parse_all(GRADING_JOBS_KEY, GradingJob.from_dict):
            if job.id == job_id:
                return job
        return None

    async def load_all_grading_jobs(self) -> list[GradingJob]:
        return sort_newest_first(self._parse_all(GRADING_JOBS_KEY, GradingJob.from_dict))

    async def delete_grading_job(self, job_id: str) -> None:
        if not self._remove(GRADING_JOBS_KEY, job_id):
            logger.warning(f"Delete: grading job {job_id} not found")

    async def get_setting(self, key: str) -> Any:
        raw = self.cache.get(settings_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Corrupt setting {key}, ignoring: {e}")
            return None

    async def set_setting(self, key: str, value: Any) -> None:
        if value is None:
            self.cache.delete(settings_key(key))
        else:
            self.cache.set(settings_key(key), json.dumps(value))

    async def close(self) -> None:
        self.cache.close()
