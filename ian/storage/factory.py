"""
Backend selection and migration between backends.
"""

import logging

from ian.lib.config import AppConfig
from ian.lib.validate import ValidationError

from .base import StorageBackend, StorageError, StorageNotConfigured
from .filesystem import DirectoryStorage
from .kv import KeyValueStorage

logger = logging.getLogger(__name__)


async def open_storage(config: AppConfig) -> StorageBackend:
    """Open the backend named by the configuration.

    Raises:
        StorageNotConfigured: filesystem backend without a root directory
        StoragePermissionError: the root isn't writable
    """
    if config.storage_backend == "filesystem":
        if config.storage_root is None:
            raise StorageNotConfigured(
                "Filesystem storage is selected but no folder is set. "
                "Run 'ian storage select <folder>' or set STORAGE_ROOT in ian.env."
            )
        return await DirectoryStorage.open(config.storage_root)

    config.kv_path.mkdir(parents=True, exist_ok=True)
    return KeyValueStorage(config.kv_path)


async def export_jobs(source: StorageBackend, target: StorageBackend) -> int:
    """Copy every job and grading job from source to target.

    Returns the number of items exported. A job that fails to save is
    logged and skipped so one bad record doesn't stop the migration.
    """
    count = 0
    for job in await source.load_all_jobs():
        try:
            await target.save_job(job)
            count += 1
        except (StorageError, ValidationError, OSError, ValueError) as e:
            logger.warning(f"Failed to export job {job.id}: {e}")

    for grading_job in await source.load_all_grading_jobs():
        try:
            await target.save_grading_job(grading_job)
            count += 1
        except (StorageError, ValidationError, OSError, ValueError) as e:
            logger.warning(f"Failed to export grading job {grading_job.id}: {e}")

    logger.info(f"Exported {count} jobs from {source.describe()} to {target.describe()}")
    return count
