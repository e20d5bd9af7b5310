"""
Reading reference material from disk.

A reference file's text is stored with the job and fed into the prompts.
A reference folder contributes its name plus every text file under it;
binary files are skipped.
"""

import logging
import mimetypes
from pathlib import Path

from .types import ReferenceFile

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (
    ".txt", ".md", ".json", ".js", ".ts", ".tsx", ".jsx", ".css", ".scss",
    ".html", ".xml", ".yaml", ".yml", ".csv", ".py", ".java", ".c", ".cpp",
    ".h", ".hpp", ".rb", ".go", ".rs", ".php", ".sh", ".bash", ".zsh",
    ".sql", ".graphql", ".vue", ".svelte", ".swift", ".kt", ".scala",
    ".conf", ".config", ".ini", ".env", ".gitignore", ".dockerfile",
    ".makefile", ".cmake", ".gradle", ".properties", ".toml", ".lock",
)


def is_text_file(name: str) -> bool:
    """Guess from the name alone; files without an extension count as text."""
    lower = name.lower()
    return lower.endswith(TEXT_EXTENSIONS) or "." not in lower


def _reference_file(path: Path, recorded_path: str) -> ReferenceFile:
    mime, _ = mimetypes.guess_type(path.name)
    return ReferenceFile(
        name=path.name,
        path=recorded_path,
        content=path.read_text(encoding="utf-8"),
        type=mime or "text/plain",
    )


def read_reference_files(paths: list[str]) -> list[ReferenceFile]:
    """
    Raises:
        FileNotFoundError: if a path doesn't exist
        UnicodeDecodeError: if a file isn't text
    """
    files = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Reference file not found: {raw}")
        files.append(_reference_file(path, str(path)))
    return files


def read_reference_folder(folder: str) -> tuple[str, list[ReferenceFile]]:
    """
    Read every text file under a folder, skipping hidden directories.

    Returns (folder name, files). File paths are recorded relative to the
    folder's parent, e.g. "specs/api/auth.md". A text file that can't be
    decoded is logged and left out.

    Raises:
        FileNotFoundError: if the folder doesn't exist
    """
    root = Path(folder).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Reference folder not found: {folder}")
    root = root.resolve()

    files = []
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part.startswith(".") for part in relative.parts[:-1]):
            continue
        if not path.is_file() or not is_text_file(path.name):
            continue
        try:
            files.append(_reference_file(path, f"{root.name}/{relative.as_posix()}"))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path}: {e}")

    logger.debug(f"Read {len(files)} reference file(s) from {root}")
    return root.name, files


def read_references(folders: list[str], paths: list[str]) -> tuple[list[str], list[ReferenceFile]]:
    """Folder names and all reference files from --ref-folder / --ref-file arguments."""
    names = []
    files = []
    for folder in folders:
        name, folder_files = read_reference_folder(folder)
        names.append(name)
        files.extend(folder_files)
    files.extend(read_reference_files(paths))
    return names, files
