"""
ian show - Show job details, outputs and version history.
"""

from ian.lib.constants import STATUS_COMPLETED, STATUS_FAILED
from ian.lib.steps import OUTPUT_FILES, PIPELINE_STEPS
from ian.workflow.changelog import extract_changelog_summary
from ian.workflow.engine import Runtime


def _resolve_output(name: str):
    """Accept a file name, a file prefix ("04") or a step ID."""
    if name in OUTPUT_FILES:
        return name
    for f in OUTPUT_FILES:
        if f.startswith(f"{name}_"):
            return f
    for step in PIPELINE_STEPS:
        if step.id == name:
            return step.output_file
    return None


async def cmd_show(args, runtime: Runtime) -> int:
    """Show a job."""
    job = await runtime.storage.load_job(args.id)
    if job is None:
        print(f"ERROR: Job '{args.id}' not found")
        return 1

    if args.output:
        filename = _resolve_output(args.output)
        if filename is None:
            print(f"ERROR: Unknown output '{args.output}'. Valid: {', '.join(OUTPUT_FILES)}")
            return 2
        content = job.outputs.get(filename)
        if content is None:
            print(f"ERROR: {filename} has not been generated yet")
            return 1
        print(content)
        return 0

    if args.changelog:
        print(job.changelog or "No changelog for this version.")
        return 0

    print(f"Job: {job.id}")
    print("=" * 60)
    print(f"Title:    {job.title}")
    print(f"Status:   {job.status}")
    print(f"Version:  {job.version}")
    print(f"Created:  {job.created_at}")
    print(f"Updated:  {job.updated_at}")
    if job.change_reason:
        print(f"Reason:   {job.change_reason}")
    print()

    print("Description")
    print("-" * 40)
    print(job.description)
    print()

    if job.reference_folders or job.reference_files:
        print("References")
        print("-" * 40)
        for folder in job.reference_folders:
            print(f"  [dir]  {folder}")
        for ref in job.reference_files:
            print(f"  [file] {ref.path} ({len(ref.content)} chars)")
        print()

    print("Steps")
    print("-" * 40)
    current = next((s.order for s in PIPELINE_STEPS if s.id == job.current_step), 0)
    for step in PIPELINE_STEPS:
        # Steps 4 and 5 rewrite files from steps 1 and 2, so go by position
        if job.status == STATUS_COMPLETED or step.order < current:
            symbol = "+"
        elif step.order == current:
            symbol = "x" if job.status == STATUS_FAILED else ">"
        else:
            symbol = " "
        print(f"  [{symbol}] {step.order}. {step.name:<28} {step.output_file}")
    print()

    if job.version_history:
        print("Version history")
        print("-" * 40)
        for snap in reversed(job.version_history):
            print(f"  v{snap.version}  {snap.created_at}  {snap.status:<10} {extract_changelog_summary(snap.changelog)}")
        print(f"  v{job.version}  (current)  {extract_changelog_summary(job.changelog)}")
        print()

    return 0
