"""
Refinement of handoff-ready requirements into sprint-sized stories.

Estimates above MAX_STORY_POINTS are capped and flagged for splitting
rather than rejected.
"""

import logging
from typing import Optional

from ian.agents.ai_client import AIClient, AIError
from ian.agents.response import extract_json_object
from ian.lib.prompts import render_prompt
from ian.lib.settings import AISettings

from .models import MAX_STORY_POINTS, GradedRequirement, Requirement, TeamReadyRequirement

logger = logging.getLogger(__name__)


def build_refinement_prompt(requirement: Requirement, graded: GradedRequirement) -> str:
    return render_prompt(
        "refine_requirement",
        REQUIREMENT_ID=requirement.id,
        REQUIREMENT_NAME=requirement.name,
        REQUIREMENT_CONTENT=requirement.content,
        GRADE=graded.grade,
        EXPLANATION=graded.explanation,
    )


def apply_story_point_cap(points: int) -> tuple[int, bool, Optional[str]]:
    """Return (story_points, needs_split, split_note) for an estimate."""
    if points <= MAX_STORY_POINTS:
        return points, False, None
    note = (
        f"Estimated at {points} points, above the {MAX_STORY_POINTS}-point limit. "
        f"Split into smaller stories of at most {MAX_STORY_POINTS} points before sprint planning."
    )
    return MAX_STORY_POINTS, True, note


def parse_refinement_response(requirement: Requirement, graded: GradedRequirement,
                              response: str) -> TeamReadyRequirement:
    """
    Raises:
        ValueError: if the response isn't usable
    """
    data = extract_json_object(response)
    user_story = str(data.get("userStory", "")).strip()
    if not user_story:
        raise ValueError("Missing userStory")

    criteria = data.get("acceptanceCriteria") or []
    if isinstance(criteria, str):
        criteria = [line.strip("-* ").strip() for line in criteria.splitlines() if line.strip()]

    try:
        estimate = int(data.get("storyPoints"))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid storyPoints {data.get('storyPoints')!r}") from None
    if estimate < 0:
        raise ValueError(f"Negative storyPoints {estimate}")

    points, needs_split, note = apply_story_point_cap(estimate)
    return TeamReadyRequirement(
        id=requirement.id,
        name=requirement.name,
        user_story=user_story,
        acceptance_criteria=[str(c) for c in criteria],
        story_points=points,
        needs_split=needs_split,
        split_note=note,
        assigned_team=graded.assigned_team,
    )


async def refine_requirement(requirement: Requirement, graded: GradedRequirement, ai_client: AIClient,
                             ai: AISettings) -> Optional[TeamReadyRequirement]:
    """Refine one requirement; None (with a warning) if the model's answer is unusable."""
    try:
        response = await ai_client.call(build_refinement_prompt(requirement, graded), ai.model, ai.auth_mode)
        return parse_refinement_response(requirement, graded, response)
    except (AIError, ValueError) as e:
        logger.warning(f"Failed to refine requirement {requirement.id}: {e}")
        return None
