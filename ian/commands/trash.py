"""
ian delete / ian trash - Delete jobs and manage the trash.

On directory storage a deleted job is moved to .trash/ and can be
restored; the key-value store deletes outright.
"""

from ian.storage import TrashEntryNotFound, TrashNotSupported
from ian.workflow.engine import Runtime


async def cmd_delete(args, runtime: Runtime) -> int:
    """Delete a job (soft delete where supported)."""
    if args.grading:
        if await runtime.storage.load_grading_job(args.id) is None:
            print(f"ERROR: Grading job '{args.id}' not found")
            return 1
        await runtime.storage.delete_grading_job(args.id)
        print(f"Deleted grading job: {args.id}")
        return 0

    if await runtime.storage.load_job(args.id) is None:
        print(f"ERROR: Job '{args.id}' not found")
        return 1

    trash_id = await runtime.storage.delete_job(args.id)
    if trash_id:
        print(f"Moved {args.id} to trash: {trash_id}")
        print(f"  Restore with: ian trash restore {trash_id}")
    else:
        print(f"Deleted job: {args.id}")
    return 0


async def cmd_trash_list(args, runtime: Runtime) -> int:
    """List trashed jobs."""
    try:
        entries = await runtime.storage.list_trash()
    except TrashNotSupported as e:
        print(f"ERROR: {e}")
        return 1

    if not entries:
        print("Trash is empty")
        return 0

    print(f"{'TRASH ID':<40} {'JOB':<24} DELETED")
    print("-" * 80)
    for entry in entries:
        print(f"{entry.id:<40} {entry.original_id:<24} {entry.trashed_at}")
    print("-" * 80)
    print(f"{len(entries)} trashed job(s)")
    return 0


async def cmd_trash_restore(args, runtime: Runtime) -> int:
    """Restore a trashed job."""
    try:
        job_id = await runtime.storage.restore_job(args.trash_id)
    except (TrashNotSupported, TrashEntryNotFound) as e:
        print(f"ERROR: {e}")
        return 1
    print(f"Restored job: {job_id}")
    return 0


async def cmd_trash_purge(args, runtime: Runtime) -> int:
    """Permanently delete a trashed job, or everything with --all."""
    try:
        if args.all:
            entries = await runtime.storage.list_trash()
            for entry in entries:
                await runtime.storage.purge_trash(entry.id)
            print(f"Purged {len(entries)} trashed job(s)")
            return 0

        if not args.trash_id:
            print("ERROR: Give a trash ID or --all")
            return 2
        await runtime.storage.purge_trash(args.trash_id)
    except (TrashNotSupported, TrashEntryNotFound) as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Purged: {args.trash_id}")
    return 0
