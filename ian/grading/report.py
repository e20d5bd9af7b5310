"""Markdown report for a graded job."""

from collections import Counter

from .models import GRADE_LABELS, GRADES, GradingJob


def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def generate_grading_report(job: GradingJob) -> str:
    graded = job.graded_requirements
    total = len(graded)
    ready = [g for g in graded if g.ready_for_handoff]
    needs_work = [g for g in graded if not g.ready_for_handoff]
    distribution = Counter(g.grade for g in graded)
    ready_pct = round(len(ready) / total * 100) if total else 0

    lines = [
        "# Requirements Grading Report",
        "",
        f"**Job:** {job.title}",
        f"**Description:** {job.description}",
        f"**Date:** {job.updated_at}",
        "",
        "## Summary",
        "",
        f"- **Total Requirements:** {total}",
        f"- **Ready for Handoff:** {len(ready)} ({ready_pct}%)",
        "",
        "## Grade Distribution",
        "",
    ]
    for grade in GRADES:
        lines.append(f"- {grade} ({GRADE_LABELS[grade]}): {distribution.get(grade, 0)}")

    lines += [
        "",
        "## Detailed Results",
        "",
        "| Requirement ID | Requirement Name | Grade | Ready for Handoff | Assigned Team | Explanation |",
        "|---|---|---|---|---|---|",
    ]
    for g in graded:
        lines.append(
            f"| {_cell(g.id)} | {_cell(g.name)} | {g.grade} | {'Yes' if g.ready_for_handoff else 'No'} "
            f"| {_cell(g.assigned_team or '-')} | {_cell(g.explanation)} |"
        )

    lines += ["", "## Recommendations", ""]

    if needs_work:
        lines += [f"### Requirements Needing Refinement ({len(needs_work)})", ""]
        for g in needs_work:
            lines += [f"#### {g.id}: {g.name}", f"- **Grade:** {g.grade}", f"- **Issue:** {g.explanation}", ""]

    if ready:
        lines += [f"### Ready for Development ({len(ready)})", ""]
        by_team: dict[str, list] = {}
        for g in ready:
            by_team.setdefault(g.assigned_team or "Unassigned", []).append(g)
        for team, reqs in by_team.items():
            lines.append(f"#### {team} ({len(reqs)} requirements)")
            lines += [f"- {g.id}: {g.name} (Grade: {g.grade})" for g in reqs]
            lines.append("")

    if job.team_ready_requirements:
        lines += ["## Team-Ready Stories", ""]
        for story in job.team_ready_requirements:
            lines += [
                f"### {story.id}: {story.name}",
                "",
                story.user_story,
                "",
                f"**Story Points:** {story.story_points}" + (" (needs split)" if story.needs_split else ""),
            ]
            if story.assigned_team:
                lines.append(f"**Team:** {story.assigned_team}")
            if story.split_note:
                lines.append(f"**Note:** {story.split_note}")
            if story.acceptance_criteria:
                lines += ["", "**Acceptance Criteria:**"]
                lines += [f"- [ ] {c}" for c in story.acceptance_criteria]
            lines.append("")

    return "\n".join(lines).rstrip() + "\n"
