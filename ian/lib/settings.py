"""
User settings backed by the active storage backend.

Reads return a Result instead of raising; callers pick the fallback
explicitly with unwrap_or() so a broken settings file degrades to
defaults at a visible point in the code.
"""

import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from .constants import AI_SETTINGS_KEY, CUSTOM_PROMPTS_KEY, DEFAULT_MODEL

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_MODES = ("api_key", "gcloud")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a read: a value (possibly None for "not saved") or an error."""
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        """Value if the read succeeded and something was saved, else default."""
        if self.error is not None or self.value is None:
            return default
        return self.value


@dataclass
class AISettings:
    """Model selection for AI calls."""
    model: str = DEFAULT_MODEL
    temperature: Optional[float] = None
    auth_mode: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"model": self.model}
        if self.temperature is not None:
            data["temperature"] = self.temperature
        if self.auth_mode is not None:
            data["authMode"] = self.auth_mode
        return data

    @classmethod
    def from_dict(cls, data: dict, default_model: str = DEFAULT_MODEL) -> "AISettings":
        auth_mode = data.get("authMode", data.get("geminiAuthMode"))
        if auth_mode == "apiKey":
            auth_mode = "api_key"
        temperature = data.get("temperature")
        return cls(
            model=data.get("model") or default_model,
            temperature=float(temperature) if temperature is not None else None,
            auth_mode=auth_mode,
        )


class SettingsStore:
    """Key/value settings persisted through a storage backend."""

    def __init__(self, backend, default_model: str = DEFAULT_MODEL):
        self.backend = backend
        self.default_model = default_model

    async def read(self, key: str) -> Result[Any]:
        try:
            return Result(value=await self.backend.get_setting(key))
        except Exception as e:
            return Result(error=e)

    async def write(self, key: str, value: Any) -> None:
        await self.backend.set_setting(key, value)

    async def read_ai_settings(self) -> Result[AISettings]:
        result = await self.read(AI_SETTINGS_KEY)
        if not result.ok or result.value is None:
            return Result(error=result.error)
        if not isinstance(result.value, dict):
            return Result(error=ValueError(f"Expected an object for '{AI_SETTINGS_KEY}'"))
        try:
            return Result(value=AISettings.from_dict(result.value, self.default_model))
        except (TypeError, ValueError) as e:
            return Result(error=e)

    async def ai_settings(self) -> AISettings:
        """AI settings, or the defaults when nothing usable is saved."""
        result = await self.read_ai_settings()
        if not result.ok:
            logger.warning(f"Failed to read AI settings, using defaults: {result.error}")
        return result.unwrap_or(AISettings(model=self.default_model))

    async def save_ai_settings(self, settings: AISettings) -> None:
        if settings.auth_mode is not None and settings.auth_mode not in AUTH_MODES:
            raise ValueError(f"Unknown auth mode '{settings.auth_mode}' (expected one of {AUTH_MODES})")
        await self.write(AI_SETTINGS_KEY, settings.to_dict())

    async def read_custom_prompts(self) -> Result[dict[str, str]]:
        result = await self.read(CUSTOM_PROMPTS_KEY)
        if result.ok and result.value is not None and not isinstance(result.value, dict):
            return Result(error=ValueError(f"Expected an object for '{CUSTOM_PROMPTS_KEY}'"))
        return result

    async def set_custom_prompt(self, step_id: str, template: Optional[str]) -> None:
        """Set (or with None, remove) the override template for one step."""
        prompts = dict((await self.read_custom_prompts()).unwrap_or({}))
        if template:
            prompts[step_id] = template
        else:
            prompts.pop(step_id, None)
        await self.write(CUSTOM_PROMPTS_KEY, prompts)
