"""
ian list - List document and grading jobs.
"""

from ian.lib.steps import OUTPUT_FILES
from ian.workflow.engine import Runtime

TITLE_WIDTH = 40


def _short(title: str) -> str:
    return title[:TITLE_WIDTH] + "..." if len(title) > TITLE_WIDTH else title


async def cmd_list(args, runtime: Runtime) -> int:
    """List jobs, newest first."""
    jobs = await runtime.storage.load_all_jobs()

    if jobs:
        print("Jobs")
        print("-" * 80)
        for job in jobs:
            done = sum(1 for f in OUTPUT_FILES if f in job.outputs)
            print(f"  {job.id:<22} v{job.version:<3} {job.status:<10} {done}/{len(OUTPUT_FILES)}  {_short(job.title)}")
        print()
    else:
        print("Jobs: none")
        print()

    if getattr(args, "all", False):
        grading_jobs = await runtime.storage.load_all_grading_jobs()
        if grading_jobs:
            print("Grading jobs")
            print("-" * 80)
            for g in grading_jobs:
                print(f"  {g.id:<22} {g.status:<10} {len(g.requirements):>3} reqs  {_short(g.title)}")
        else:
            print("Grading jobs: none")
        print()

    print(f"Storage: {runtime.storage.describe()}")
    return 0
