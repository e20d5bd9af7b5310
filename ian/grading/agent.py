"""
Requirement grading.

Each requirement is graded on its own against the rubric. A failed call or
an unparseable answer grades that one requirement F and the batch moves
on; a single bad response never aborts the job.
"""

import logging
from typing import Callable, Optional

from ian.agents.ai_client import AIClient
from ian.agents.response import extract_json_object
from ian.lib.constants import STATUS_NEW
from ian.lib.prompts import load_prompt, render_prompt
from ian.lib.settings import AISettings, SettingsStore
from ian.lib.types import now_iso
from ian.workflow.fsm import JobFSM

from .models import GRADES, GradedRequirement, GradingJob, Requirement, Team
from .refine import refine_requirement
from .report import generate_grading_report

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def build_teams_section(teams: list[Team]) -> str:
    if not teams:
        return ""
    lines = "\n".join(f"- {t.name}: {t.description}" for t in teams)
    return f"## Available Teams\n{lines}"


def build_grading_prompt(requirement: Requirement, teams: list[Team]) -> str:
    return render_prompt(
        "grade_requirement",
        RUBRIC=load_prompt("grading_rubric"),
        REQUIREMENT_ID=requirement.id,
        REQUIREMENT_NAME=requirement.name,
        REQUIREMENT_CONTENT=requirement.content,
        TEAMS_SECTION=build_teams_section(teams),
    )


def parse_grading_response(requirement: Requirement, response: str) -> GradedRequirement:
    """Parse the model's JSON verdict.

    Raises:
        ValueError: if the response isn't a JSON object with a valid grade
    """
    data = extract_json_object(response)
    grade = str(data.get("grade", "")).strip().upper()
    if grade not in GRADES:
        raise ValueError(f"Invalid grade {data.get('grade')!r}")

    ready = data.get("readyForHandoff", False)
    if isinstance(ready, str):
        ready = ready.strip().lower() in ("yes", "true")

    return GradedRequirement(
        id=requirement.id,
        name=requirement.name,
        grade=grade,
        explanation=str(data.get("explanation", "")).strip(),
        ready_for_handoff=bool(ready),
        assigned_team=str(data.get("assignedTeam") or "").strip() or None,
    )


async def grade_requirement(requirement: Requirement, teams: list[Team], ai_client: AIClient,
                            ai: AISettings) -> GradedRequirement:
    """Grade one requirement. Never raises; failures become grade F."""
    prompt = build_grading_prompt(requirement, teams)
    try:
        response = await ai_client.call(prompt, ai.model, ai.auth_mode)
        return parse_grading_response(requirement, response)
    except Exception as e:
        logger.warning(f"Failed to grade requirement {requirement.id}: {e}")
        return GradedRequirement(
            id=requirement.id,
            name=requirement.name,
            grade="F",
            explanation=f"Error during grading: {e}",
            ready_for_handoff=False,
        )


async def process_grading_job(
    job: GradingJob,
    ai_client: AIClient,
    settings: Optional[SettingsStore] = None,
    on_progress: Optional[ProgressCallback] = None,
    refine: bool = True,
    store=None,
) -> GradingJob:
    """
    Grade every requirement in order, optionally refine the ready ones,
    and build the report.

    Args:
        job: Grading job; updated in place
        ai_client: AI call collaborator
        settings: Source of the model selection; defaults apply if None
        on_progress: Called with (current, total, requirement name) before each item
        refine: Turn handoff-ready requirements into sprint-sized stories
        store: Optional storage backend; saved when the job starts and finishes
    """
    fsm = JobFSM(job)
    if job.status != STATUS_NEW:
        fsm.fire("reset")
    fsm.fire("start")
    job.graded_requirements = []
    job.team_ready_requirements = []
    job.report_content = None
    if store is not None:
        await store.save_grading_job(job)

    ai = await settings.ai_settings() if settings is not None else AISettings()
    total = len(job.requirements)
    try:
        for i, requirement in enumerate(job.requirements, 1):
            if on_progress is not None:
                on_progress(i, total, requirement.name)
            job.graded_requirements.append(await grade_requirement(requirement, job.teams, ai_client, ai))

        if refine:
            by_id = {r.id: r for r in job.requirements}
            for graded in job.graded_requirements:
                if not graded.ready_for_handoff:
                    continue
                refined = await refine_requirement(by_id[graded.id], graded, ai_client, ai)
                if refined is not None:
                    job.team_ready_requirements.append(refined)

        job.updated_at = now_iso()
        job.report_content = generate_grading_report(job)
    except Exception:
        fsm.fire("fail")
        job.updated_at = now_iso()
        if store is not None:
            await store.save_grading_job(job)
        raise

    fsm.fire("complete")
    if store is not None:
        await store.save_grading_job(job)
    logger.info(f"Graded {total} requirements for {job.id}")
    return job
