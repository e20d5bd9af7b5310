"""
Prompt context for pipeline steps.

Each step gets TASK_TITLE, TASK_DESCRIPTION and REFERENCE_CONTENT plus the
outputs it depends on (see STEP_DEPENDENCIES). An output that hasn't been
produced yet is passed as "Not yet available".

REFERENCE_CONTENT for version 2+ starts with the previous version's
outputs, then the new reference materials. The templates tell the model to
preserve and extend the first block and treat the second as new input, so
the order and marker text matter.
"""

from ian.lib.constants import NO_REFERENCES, NOT_YET_AVAILABLE
from ian.lib.steps import CONTENT_VARIABLES, STEP_DEPENDENCIES
from ian.lib.types import Job

PREVIOUS_HEADER = "=== PREVIOUS VERSION ANALYSIS (v{version}) ==="
PREVIOUS_INTRO = (
    "The documents below were produced for version {version} of this task. "
    "Preserve what still applies and extend it with the new information."
)
PREVIOUS_FOOTER = "=== END PREVIOUS VERSION ANALYSIS ==="
NEW_MATERIALS_HEADER = "=== NEW REFERENCE MATERIALS ==="


def format_reference_materials(job: Job) -> str:
    """Current reference files, else folder names, else the empty-literal."""
    if job.reference_files:
        return "\n\n".join(
            f"--- File: {f.path} ---\n{f.content}\n--- End of {f.name} ---"
            for f in job.reference_files
        )

    if job.reference_folders:
        return "\n".join(
            f"Reference {i}: {folder}" for i, folder in enumerate(job.reference_folders, 1)
        )

    return NO_REFERENCES


def format_previous_version(job: Job) -> str | None:
    """Outputs of the immediately preceding snapshot, or None for version 1."""
    if job.version <= 1 or not job.version_history:
        return None

    previous = job.version_history[-1]
    parts = [
        PREVIOUS_HEADER.format(version=previous.version),
        PREVIOUS_INTRO.format(version=previous.version),
    ]
    for filename in sorted(previous.outputs):
        parts.append(f"--- BEGIN {filename} ---\n{previous.outputs[filename]}\n--- END {filename} ---")
    parts.append(PREVIOUS_FOOTER)
    return "\n\n".join(parts)


def format_references(job: Job) -> str:
    """Build REFERENCE_CONTENT: previous version first, new materials second."""
    materials = format_reference_materials(job)
    previous = format_previous_version(job)
    if previous is None:
        return materials
    return f"{previous}\n\n{NEW_MATERIALS_HEADER}\n\n{materials}"


def build_variables(job: Job, step_id: str) -> dict[str, str]:
    """Template variables for one step.

    Raises:
        KeyError: for an unknown step ID
    """
    variables = {
        "TASK_TITLE": job.title,
        "TASK_DESCRIPTION": job.description,
        "REFERENCE_CONTENT": format_references(job),
    }
    for name in STEP_DEPENDENCIES[step_id]:
        variables[name] = job.outputs.get(CONTENT_VARIABLES[name]) or NOT_YET_AVAILABLE
    return variables
