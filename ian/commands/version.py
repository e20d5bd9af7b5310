"""
ian version - Create a new version of a job.

The current outputs are frozen into the version history and cleared; the
new version is not run unless --run is given.
"""

import logging

from ian.commands.run import cmd_run
from ian.lib.license import FEATURE_VERSION_MANAGEMENT
from ian.lib.references import read_references
from ian.workflow.engine import Runtime
from ian.workflow.fsm import InvalidTransition
from ian.workflow.versioning import VersionLimitReached, create_version

logger = logging.getLogger(__name__)


async def cmd_version(args, runtime: Runtime) -> int:
    """Create version N+1 of a job."""
    job = await runtime.storage.load_job(args.id)
    if job is None:
        print(f"ERROR: Job '{args.id}' not found")
        return 1

    reason = (args.reason or "").strip()
    if not reason:
        print("ERROR: A change reason is required (--reason)")
        return 2

    try:
        folders, files = read_references(args.ref_folder or [], args.ref_file or [])
    except (OSError, UnicodeDecodeError) as e:
        print(f"ERROR: {e}")
        return 2

    # Only a valid license restricts versioning; without one the CLI is unrestricted
    license = await runtime.license.validate()
    max_versions = None
    if license.is_valid:
        if not license.has_feature(FEATURE_VERSION_MANAGEMENT):
            print(f"ERROR: Your {license.license_type} license does not include version management")
            return 1
        max_versions = license.max_versions

    try:
        new_job = create_version(job, reason, folders + files, max_versions=max_versions)
    except (InvalidTransition, VersionLimitReached) as e:
        print(f"ERROR: {e}")
        return 1

    await runtime.storage.save_job(new_job)
    print(f"Created version {new_job.version} of {new_job.id}")

    if args.run:
        return await cmd_run(args, runtime)

    print(f"Next: ian run {new_job.id}")
    return 0
