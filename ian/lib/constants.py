"""Shared constants for the document pipeline."""

import re

# Job ID formats: JOB-20250101-093000, GRADE-20250101-093000, optional -N suffix
JOB_ID_PREFIX = "JOB"
GRADING_JOB_ID_PREFIX = "GRADE"
JOB_ID_PATTERN = re.compile(r'^(JOB|GRADE)-\d{8}-\d{6}(-\d+)?$')

# Job lifecycle
STATUS_NEW = "new"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
JOB_STATUSES = (STATUS_NEW, STATUS_RUNNING, STATUS_COMPLETED, STATUS_FAILED)

# Prompt variable fallbacks
NOT_YET_AVAILABLE = "Not yet available"
NO_REFERENCES = "No reference materials provided."

# Settings keys
AI_SETTINGS_KEY = "ai-settings"
CUSTOM_PROMPTS_KEY = "custom-prompts"
LICENSE_KEY = "license"
DEFAULT_MODEL = "gemini-flash"

# Changelog literals
INITIAL_CHANGELOG = "Initial version - no previous changes to compare."
CHANGELOG_FALLBACK = "Unable to generate changelog at this time."

PERMISSION_DENIED_MESSAGE = "Permission denied. Please re-select your storage folder in Settings."
