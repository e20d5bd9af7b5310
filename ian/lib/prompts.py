"""
Prompt templates for the pipeline agents.

Built-in templates live in ian/prompts/<name>.md, one per step ID plus a
few for the grading workflow. Placeholders use {{KEY}} syntax; keys that
aren't supplied are left in the text untouched.

HTML comments (<!-- ... -->) are stripped on load - use them for
documentation that shouldn't be sent to the model.

Users can override any step template through the "custom-prompts"
setting; TemplateRegistry resolves the override first.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

from .settings import SettingsStore
from .steps import TEMPLATE_STEP_IDS

logger = logging.getLogger(__name__)

__all__ = [
    "PromptError", "TemplateRegistry", "load_prompt", "render_prompt",
    "fill_template", "clear_cache", "PROMPTS_DIR",
]

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)
_TOKEN_PATTERN = re.compile(r'\{\{([A-Za-z0-9_]+)\}\}')


class PromptError(Exception):
    """Raised when a prompt template can't be found."""
    pass


@lru_cache(maxsize=32)
def load_prompt(name: str) -> str:
    """
    Load a prompt template by name (cached).

    Args:
        name: Template name without extension (e.g. 'cross_reviewer')

    Raises:
        PromptError: If the template file doesn't exist
    """
    prompt_path = PROMPTS_DIR / f"{name}.md"

    if not prompt_path.exists():
        raise PromptError(
            f"Prompt template '{name}' not found. "
            f"Expected file: {prompt_path}"
        )

    logger.debug(f"Loading prompt template: {name}")
    content = _HTML_COMMENT_PATTERN.sub('', prompt_path.read_text(encoding="utf-8"))
    return content.lstrip()


def fill_template(template: str, variables: dict[str, str]) -> str:
    """
    Replace every {{KEY}} with variables[KEY].

    Tokens with no matching key are left verbatim.

    Example:
        fill_template("Hello {{NAME}}", {"NAME": "World"}) -> "Hello World"
    """
    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return _TOKEN_PATTERN.sub(_sub, template)


def render_prompt(name: str, **variables: str) -> str:
    """Load a built-in template and fill it."""
    return fill_template(load_prompt(name), variables)


def clear_cache():
    """Clear the prompt cache (useful for testing or hot-reload)."""
    load_prompt.cache_clear()


class TemplateRegistry:
    """One prompt template per step ID, with user overrides."""

    def __init__(self, settings: SettingsStore | None = None):
        self.settings = settings

    def default_template(self, step_id: str) -> str:
        if step_id not in TEMPLATE_STEP_IDS:
            raise PromptError(f"No template registered for step '{step_id}'")
        return load_prompt(step_id)

    async def get_template(self, step_id: str) -> str:
        """Override from the custom-prompts setting if present, else the default."""
        default = self.default_template(step_id)
        if self.settings is None:
            return default

        result = await self.settings.read_custom_prompts()
        if not result.ok:
            logger.warning(f"Failed to load custom prompts, using default for {step_id}: {result.error}")
        override = result.unwrap_or({}).get(step_id)
        if override:
            logger.debug(f"Using custom template for {step_id}")
            return override
        return default
