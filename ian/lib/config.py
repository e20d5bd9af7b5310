"""
Configuration loaders.

Application settings come from ian.env in the IAN home directory
($IAN_HOME, default ~/.ian), with IAN_<KEY> environment variables taking
precedence. The chosen storage location is persisted separately in
storage.json so `ian storage select` can change it without editing ian.env.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import envparse
from . import validate
from .constants import DEFAULT_MODEL

logger = logging.getLogger(__name__)

VALID_STORAGE_BACKENDS = ("kv", "filesystem")

ENV_FILE = "ian.env"
STORAGE_SELECTION_FILE = "storage.json"


@dataclass
class AppConfig:
    """Application configuration from ian.env"""
    home: Path
    storage_backend: str  # "kv" or "filesystem"
    storage_root: Optional[Path]  # Directory tree root for the filesystem backend
    kv_path: Path  # diskcache directory for the kv backend
    default_model: str
    ai_timeout: int  # Seconds per AI call
    notifications: bool


@dataclass
class StorageSelection:
    """Persisted storage choice from storage.json"""
    mode: str
    directory: Optional[Path] = None


def get_home(home: Optional[Path] = None) -> Path:
    if home is not None:
        return Path(home)
    return Path(os.environ.get("IAN_HOME", Path.home() / ".ian")).expanduser()


def _read_env(home: Path) -> dict[str, str]:
    env_path = home / ENV_FILE
    if not env_path.exists():
        return {}
    return envparse.load_env(env_path)


def load_app_config(home: Optional[Path] = None) -> AppConfig:
    """Load ian.env (if present) plus IAN_* environment overrides."""
    home = get_home(home)
    env = _read_env(home)
    for key, value in os.environ.items():
        if key.startswith("IAN_") and key != "IAN_HOME":
            env[key[len("IAN_"):]] = value

    backend = env.get("STORAGE_BACKEND", "kv").lower()
    if backend not in VALID_STORAGE_BACKENDS:
        logger.warning(f"Unknown STORAGE_BACKEND '{backend}', using 'kv'. Valid: {VALID_STORAGE_BACKENDS}")
        backend = "kv"

    storage_root = Path(env["STORAGE_ROOT"]).expanduser() if env.get("STORAGE_ROOT") else None
    selection = load_storage_selection(home)
    if selection is not None:
        backend = selection.mode
        if selection.directory is not None:
            storage_root = selection.directory

    try:
        ai_timeout = int(env.get("AI_TIMEOUT", "300"))
    except ValueError:
        logger.warning(f"Invalid AI_TIMEOUT '{env['AI_TIMEOUT']}', using 300")
        ai_timeout = 300

    return AppConfig(
        home=home,
        storage_backend=backend,
        storage_root=storage_root,
        kv_path=Path(env["KV_PATH"]).expanduser() if env.get("KV_PATH") else home / "kv",
        default_model=env.get("DEFAULT_MODEL", DEFAULT_MODEL),
        ai_timeout=ai_timeout,
        notifications=env.get("NOTIFICATIONS", "true").lower() == "true",
    )


def load_storage_selection(home: Path) -> Optional[StorageSelection]:
    """Read storage.json, or None if no selection has been made."""
    path = home / STORAGE_SELECTION_FILE
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        validate.validate(data, "storage_selection")
    except (json.JSONDecodeError, validate.ValidationError) as e:
        logger.warning(f"Ignoring invalid {path}: {e}")
        return None
    directory = Path(data["directory"]) if data.get("directory") else None
    return StorageSelection(mode=data["mode"], directory=directory)


def save_storage_selection(home: Path, selection: StorageSelection) -> None:
    data = {"mode": selection.mode}
    if selection.directory is not None:
        data["directory"] = str(selection.directory)
    validate.validate_before_write(data, "storage_selection", str(home / STORAGE_SELECTION_FILE))
    home.mkdir(parents=True, exist_ok=True)
    (home / STORAGE_SELECTION_FILE).write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def clear_storage_selection(home: Path) -> None:
    path = home / STORAGE_SELECTION_FILE
    if path.exists():
        path.unlink()
