"""
ian run - Generate all documents for a job.
"""

import logging

from ian.lib.constants import STATUS_RUNNING
from ian.runner.pipeline import PipelineStepError
from ian.workflow.engine import Runtime, run_job_flow

logger = logging.getLogger(__name__)


async def cmd_run(args, runtime: Runtime) -> int:
    """Run the pipeline from the first step."""
    job = await runtime.storage.load_job(args.id)
    if job is None:
        print(f"ERROR: Job '{args.id}' not found")
        return 1

    if job.status == STATUS_RUNNING and not getattr(args, "force", False):
        print(f"ERROR: Job '{job.id}' is marked running")
        print("  If a previous run was interrupted, rerun with --force")
        return 1

    print(f"Running pipeline for {job.id} (v{job.version}): {job.title}")
    try:
        status = await run_job_flow(job.id, str(runtime.config.home))
    except PipelineStepError as e:
        print(f"FAILED: {e}")
        print(f"  Earlier outputs were kept. Fix the cause and rerun: ian run {job.id}")
        return 1

    print(f"Pipeline {status}: ian show {job.id}")
    return 0
