"""
ian grade - Grade requirements for handoff readiness.
"""

import json
from pathlib import Path

import yaml

from ian.grading.models import GradingJob, Team
from ian.grading.parser import load_requirements
from ian.workflow.engine import Runtime, run_grading_flow


def parse_team(spec: str) -> Team:
    """Parse "Name: description" (description optional)."""
    name, _, description = spec.partition(":")
    if not name.strip():
        raise ValueError(f"Invalid team '{spec}'")
    return Team(name=name.strip(), description=description.strip())


def load_teams(path: Path) -> list[Team]:
    """Load a YAML or JSON list of {name, description}.

    Raises:
        ValueError: if the file isn't a list of teams
    """
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid teams file {path}: {e}") from None
    if not isinstance(data, list):
        raise ValueError(f"Invalid teams file {path}: expected a list")
    try:
        return [Team.from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid teams file {path}: {e}") from None


async def cmd_grade_new(args, runtime: Runtime) -> int:
    """Create a grading job from a requirements document."""
    try:
        requirements = load_requirements(Path(args.file).expanduser())
        teams = load_teams(Path(args.teams_file).expanduser()) if args.teams_file else []
        teams += [parse_team(t) for t in args.team or []]
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}")
        return 2

    if not requirements:
        print(f"ERROR: Could not find any requirements in {args.file}")
        return 2

    seen = set()
    unique_teams = []
    for team in teams:
        if team.name not in seen:
            seen.add(team.name)
            unique_teams.append(team)

    existing = [g.id for g in await runtime.storage.load_all_grading_jobs()]
    job = GradingJob.create(args.title, args.description or "", requirements, unique_teams, existing_ids=existing)
    await runtime.storage.save_grading_job(job)

    print(f"Created grading job: {job.id}")
    print(f"  Requirements: {len(job.requirements)}")
    for req in job.requirements:
        print(f"    {req.id:<12} {req.name[:60]}")
    print(f"  Teams:        {len(job.teams)}")
    print()
    print(f"Next: ian grade run {job.id}")
    return 0


async def cmd_grade_run(args, runtime: Runtime) -> int:
    """Grade every requirement in a job."""
    job = await runtime.storage.load_grading_job(args.id)
    if job is None:
        print(f"ERROR: Grading job '{args.id}' not found")
        return 1

    print(f"Grading {len(job.requirements)} requirement(s) for {job.id}: {job.title}")
    status = await run_grading_flow(job.id, str(runtime.config.home), refine=not args.no_refine)
    print(f"Grading {status}: ian grade show {job.id}")
    return 0


async def cmd_grade_list(args, runtime: Runtime) -> int:
    jobs = await runtime.storage.load_all_grading_jobs()
    if not jobs:
        print("No grading jobs")
        return 0

    print(f"{'ID':<24} {'STATUS':<10} {'REQS':>4} {'READY':>5}  TITLE")
    print("-" * 80)
    for job in jobs:
        ready = sum(1 for g in job.graded_requirements if g.ready_for_handoff)
        print(f"{job.id:<24} {job.status:<10} {len(job.requirements):>4} {ready:>5}  {job.title}")
    return 0


async def cmd_grade_show(args, runtime: Runtime) -> int:
    """Print the grading report (or the raw job with --json)."""
    job = await runtime.storage.load_grading_job(args.id)
    if job is None:
        print(f"ERROR: Grading job '{args.id}' not found")
        return 1

    if args.json:
        print(json.dumps(job.to_dict(), indent=2))
        return 0

    if not job.report_content:
        print(f"Grading job {job.id} ({job.status}) has no report yet")
        print(f"  Run: ian grade run {job.id}")
        return 1

    print(job.report_content)
    return 0
