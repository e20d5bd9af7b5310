"""
ian new - Create a document job.

References are folders (the name is recorded and every text file inside
is read) or single files. File contents are stored with the job and fed
to the pipeline.
"""

from pathlib import Path

from ian.lib.references import read_references
from ian.lib.types import Job
from ian.workflow.engine import Runtime

MIN_TITLE_LENGTH = 3


def read_description(args) -> str:
    if getattr(args, "description_file", None):
        return Path(args.description_file).expanduser().read_text(encoding="utf-8").strip()
    return (args.description or "").strip()


async def cmd_new(args, runtime: Runtime) -> int:
    """Create a new job."""
    title = args.title.strip()
    if len(title) < MIN_TITLE_LENGTH:
        print(f"ERROR: Title must be at least {MIN_TITLE_LENGTH} characters")
        return 2

    try:
        description = read_description(args)
        folders, files = read_references(args.ref_folder or [], args.ref_file or [])
    except (OSError, UnicodeDecodeError) as e:
        print(f"ERROR: {e}")
        return 2

    if not description:
        print("ERROR: A description is required (--description or --description-file)")
        return 2

    existing = [job.id for job in await runtime.storage.load_all_jobs()]
    job = Job.create(title, description, folders, files, existing_ids=existing)
    await runtime.storage.save_job(job)

    print(f"Created job: {job.id}")
    print(f"  Title:      {job.title}")
    print(f"  References: {len(job.reference_folders)} folder(s), {len(job.reference_files)} file(s)")
    print()
    print(f"Next: ian run {job.id}")
    return 0
