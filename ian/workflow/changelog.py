"""
Changelog between two versions of a job.

The changelog is informational: any failure turns into a fallback string
and is never raised to the caller.
"""

import logging
import re
from typing import Optional, Union

from ian.agents.ai_client import AIClient
from ian.lib.constants import CHANGELOG_FALLBACK, INITIAL_CHANGELOG
from ian.lib.prompts import TemplateRegistry, fill_template
from ian.lib.settings import AISettings, SettingsStore
from ian.lib.steps import (
    BUSINESS_ANALYST_FILE,
    CHANGELOG_STEP_ID,
    PRODUCT_BACKLOG_FILE,
    REQUIREMENTS_FILE,
    TECH_LEAD_FILE,
)
from ian.lib.types import Job, VersionSnapshot

logger = logging.getLogger(__name__)

# Outputs compared between versions
KEY_FILES = (TECH_LEAD_FILE, BUSINESS_ANALYST_FILE, REQUIREMENTS_FILE, PRODUCT_BACKLOG_FILE)

MAX_EXCERPT_CHARS = 1500

_TITLE_PATTERN = re.compile(r'##\s*Version\s*\d+\s*-\s*(.+)', re.IGNORECASE)


def _excerpt(text: Optional[str]) -> str:
    if not text:
        return "(not produced)"
    if len(text) <= MAX_EXCERPT_CHARS:
        return text
    return text[:MAX_EXCERPT_CHARS] + "\n... (truncated)"


def _list_or_none(items: list[str]) -> str:
    return ", ".join(items) if items else "None"


def describe_output_changes(previous: VersionSnapshot, current: Union[Job, VersionSnapshot]) -> str:
    changed = [f for f in KEY_FILES if previous.outputs.get(f) != current.outputs.get(f)]
    unchanged = [f for f in KEY_FILES if f not in changed]

    if not changed:
        return "None of the key documents changed."

    parts = []
    for filename in changed:
        parts.append(
            f"### {filename} (changed)\n\n"
            f"Previous (v{previous.version}):\n{_excerpt(previous.outputs.get(filename))}\n\n"
            f"Current (v{current.version}):\n{_excerpt(current.outputs.get(filename))}"
        )
    parts.append(f"Unchanged: {_list_or_none(unchanged)}")
    return "\n\n".join(parts)


def describe_reference_changes(previous: VersionSnapshot, current: Union[Job, VersionSnapshot]) -> str:
    old_folders = set(previous.reference_folders)
    new_folders = set(current.reference_folders)
    old_files = {f.name for f in previous.reference_files}
    new_files = {f.name for f in current.reference_files}

    return "\n".join([
        f"- Added folders: {_list_or_none(sorted(new_folders - old_folders))}",
        f"- Removed folders: {_list_or_none(sorted(old_folders - new_folders))}",
        f"- Added files: {_list_or_none(sorted(new_files - old_files))}",
        f"- Removed files: {_list_or_none(sorted(old_files - new_files))}",
    ])


def build_changelog_variables(previous: VersionSnapshot, current: Union[Job, VersionSnapshot]) -> dict[str, str]:
    return {
        "PREVIOUS_VERSION": str(previous.version),
        "CURRENT_VERSION": str(current.version),
        "PREVIOUS_DESCRIPTION": previous.description,
        "CURRENT_DESCRIPTION": current.description,
        "CHANGE_REASON": current.change_reason or "Not specified",
        "OUTPUT_CHANGES": describe_output_changes(previous, current),
        "REFERENCE_CHANGES": describe_reference_changes(previous, current),
    }


async def generate_changelog(
    previous: Optional[VersionSnapshot],
    current: Union[Job, VersionSnapshot],
    ai_client: AIClient,
    templates: TemplateRegistry,
    settings: Optional[SettingsStore] = None,
) -> str:
    """
    Ask the model to describe what changed from `previous` to `current`.

    Returns the model's markdown verbatim, INITIAL_CHANGELOG for a first
    version (without calling the model), or CHANGELOG_FALLBACK on failure.
    """
    if previous is None or current.version == 1:
        return INITIAL_CHANGELOG

    try:
        ai = await settings.ai_settings() if settings is not None else AISettings()
        template = await templates.get_template(CHANGELOG_STEP_ID)
        prompt = fill_template(template, build_changelog_variables(previous, current))
        return await ai_client.call(prompt, ai.model, ai.auth_mode)
    except Exception as e:
        logger.warning(f"Changelog generation failed (v{previous.version} -> v{current.version}): {e}")
        return CHANGELOG_FALLBACK


def extract_changelog_summary(changelog: Optional[str]) -> str:
    """One-line summary: the version heading title, else the first text line."""
    if not changelog:
        return "No changes"

    match = _TITLE_PATTERN.search(changelog)
    if match and match.group(1).strip():
        return match.group(1).strip()

    for line in changelog.split("\n"):
        if line.strip() and not line.startswith("#"):
            return line.strip()[:100]

    return "Changes made"
