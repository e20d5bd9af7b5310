"""
Model registry.

Maps the model IDs users pick in settings (gpt-4o, gemini-flash, ...) to
the provider that serves them and the provider's own model name. An
optional models.yaml in the IAN home directory adds or overrides entries:

    models:
      gemini-flash:
        provider: gemini
        api_model: gemini-2.0-flash
      local-claude:
        provider: cli
        command: claude --print

Providers:
- openai: chat completions API, OPENAI_API_KEY
- gemini: Generative Language API (GOOGLE_API_KEY) or Vertex AI via gcloud
- cli: any command that reads the prompt on stdin and prints the answer
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

PROVIDERS = ("openai", "gemini", "cli")

MODELS_FILE = "models.yaml"


@dataclass(frozen=True)
class ModelSpec:
    id: str
    provider: str
    api_model: str
    command: Optional[str] = None  # cli provider only


DEFAULT_MODELS = {
    "gpt-4o": ModelSpec("gpt-4o", "openai", "gpt-4o"),
    "gpt-4o-mini": ModelSpec("gpt-4o-mini", "openai", "gpt-4o-mini"),
    "gemini-pro": ModelSpec("gemini-pro", "gemini", "gemini-1.5-pro"),
    "gemini-flash": ModelSpec("gemini-flash", "gemini", "gemini-1.5-flash"),
    "claude-cli": ModelSpec("claude-cli", "cli", "claude", command="claude --print"),
}


@dataclass
class ModelsConfig:
    """Model registry from models.yaml merged over the defaults."""
    models: dict[str, ModelSpec] = field(default_factory=lambda: DEFAULT_MODELS.copy())

    def get(self, model_id: str) -> ModelSpec:
        """Look up a model.

        Raises:
            KeyError: if the model ID is unknown
        """
        if model_id not in self.models:
            raise KeyError(f"Unknown model '{model_id}'. Known models: {', '.join(sorted(self.models))}")
        return self.models[model_id]


def _parse_entry(model_id: str, entry: dict) -> ModelSpec:
    provider = entry.get("provider")
    if provider not in PROVIDERS:
        raise ValueError(f"model '{model_id}': provider must be one of {PROVIDERS}, got {provider!r}")
    command = entry.get("command")
    if provider == "cli" and not command:
        raise ValueError(f"model '{model_id}': cli provider requires a command")
    return ModelSpec(
        id=model_id,
        provider=provider,
        api_model=entry.get("api_model", model_id),
        command=command,
    )


def load_models_config(home: Optional[Path]) -> ModelsConfig:
    """Load models.yaml from the IAN home directory.

    If home is None or the file doesn't exist, returns defaults. A file
    that fails to parse is reported and ignored.
    """
    if home is None:
        return ModelsConfig()

    config_path = home / MODELS_FILE
    if not config_path.exists():
        return ModelsConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        models = DEFAULT_MODELS.copy()
        if data and "models" in data:
            for model_id, entry in (data["models"] or {}).items():
                models[model_id] = _parse_entry(model_id, entry or {})
        return ModelsConfig(models=models)
    except (yaml.YAMLError, ValueError, AttributeError) as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return ModelsConfig()
