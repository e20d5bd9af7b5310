"""
ian storage - Show, select or clear the storage location.

These commands work from the app config rather than an opened runtime,
because they have to run when the configured location is unusable.
"""

import logging
from pathlib import Path

from ian.lib.config import (
    AppConfig,
    StorageSelection,
    clear_storage_selection,
    load_storage_selection,
    save_storage_selection,
)
from ian.storage import (
    DirectoryStorage,
    KeyValueStorage,
    StorageBackend,
    StorageError,
    export_jobs,
    open_storage,
)

logger = logging.getLogger(__name__)


async def cmd_storage_status(args, config: AppConfig) -> int:
    """Show the active storage location."""
    selection = load_storage_selection(config.home)
    print(f"Backend:   {config.storage_backend}")
    print(f"Selected:  {'storage.json' if selection else 'ian.env / defaults'}")
    if config.storage_backend == "filesystem":
        print(f"Root:      {config.storage_root or '(not set)'}")
    else:
        print(f"KV path:   {config.kv_path}")

    try:
        storage = await open_storage(config)
    except StorageError as e:
        print(f"Status:    unavailable - {e}")
        return 1

    try:
        jobs = await storage.load_all_jobs()
        grading_jobs = await storage.load_all_grading_jobs()
        if isinstance(storage, DirectoryStorage):
            root_config = await storage.read_root_config() or {}
            print(f"Created:   {root_config.get('createdAt', 'unknown')}")
            print(f"Trash:     {len(await storage.list_trash())} item(s)")
        print("Status:    ok")
        print(f"Jobs:      {len(jobs)} document, {len(grading_jobs)} grading")
    finally:
        await storage.close()
    return 0


async def _migrate(config: AppConfig, target: StorageBackend) -> int:
    try:
        source = await open_storage(config)
    except StorageError as e:
        logger.warning(f"Current storage unavailable, nothing migrated: {e}")
        print(f"WARNING: Current storage unavailable, nothing migrated ({e})")
        return 0
    try:
        return await export_jobs(source, target)
    finally:
        await source.close()


async def cmd_storage_select(args, config: AppConfig) -> int:
    """Switch to a directory (or back to the key-value store)."""
    if args.kv == bool(args.directory):
        print("ERROR: Give either a directory or --kv")
        return 2

    try:
        if args.kv:
            config.kv_path.mkdir(parents=True, exist_ok=True)
            target = KeyValueStorage(config.kv_path)
            selection = StorageSelection(mode="kv")
        else:
            directory = Path(args.directory).expanduser().resolve()
            target = await DirectoryStorage.open(directory, create=True)
            selection = StorageSelection(mode="filesystem", directory=directory)
    except (StorageError, OSError) as e:
        print(f"ERROR: {e}")
        return 1

    try:
        if args.migrate:
            count = await _migrate(config, target)
            print(f"Migrated {count} job(s) to {target.describe()}")
    finally:
        await target.close()

    save_storage_selection(config.home, selection)
    print(f"Storage set to {target.describe()}")
    return 0


async def cmd_storage_clear(args, config: AppConfig) -> int:
    """Forget the selected location; ian.env (or the default) applies again."""
    if load_storage_selection(config.home) is None:
        print("No storage selection to clear")
        return 0
    clear_storage_selection(config.home)
    print("Storage selection cleared")
    return 0
