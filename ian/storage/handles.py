"""
Directory handles over the local filesystem.

A small async API in the shape the directory backend needs: look up or
create child directories, read/write text files, remove entries
(optionally recursively) and iterate entries. The root handle also
carries a write permission grant which can be revoked; every mutating
storage operation checks it first.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_PROMPT = "prompt"  # Never requested (or revoked)


@dataclass(frozen=True)
class Entry:
    name: str
    kind: str  # "file" or "directory"


def check_entry_name(name: str) -> str:
    """Reject names that would escape the directory.

    Raises:
        ValueError: for empty names, '.', '..' or names containing a separator
    """
    if not name or name in (".", "..") or "/" in name or os.sep in name or "\x00" in name:
        raise ValueError(f"Invalid entry name: {name!r}")
    return name


class DirectoryHandle:
    """Async access to one directory."""

    kind = "directory"

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def name(self) -> str:
        return self.path.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"

    async def get_directory_handle(self, name: str, create: bool = False) -> "DirectoryHandle":
        """Child directory handle.

        Raises:
            FileNotFoundError: if it doesn't exist and create is False
        """
        path = self.path / check_entry_name(name)
        if await aiofiles.os.path.isdir(path):
            return DirectoryHandle(path)
        if not create:
            raise FileNotFoundError(f"Directory not found: {path}")
        await aiofiles.os.makedirs(path, exist_ok=True)
        return DirectoryHandle(path)

    async def get_file_text(self, name: str) -> str:
        """Read a UTF-8 file.

        Raises:
            FileNotFoundError: if the file doesn't exist
        """
        async with aiofiles.open(self.path / check_entry_name(name), "r", encoding="utf-8") as f:
            return await f.read()

    async def write_file(self, name: str, content: str) -> None:
        """Create or replace a UTF-8 file."""
        async with aiofiles.open(self.path / check_entry_name(name), "w", encoding="utf-8") as f:
            await f.write(content)

    async def remove_entry(self, name: str, recursive: bool = False) -> None:
        """Remove a file or directory.

        Raises:
            FileNotFoundError: if the entry doesn't exist
            OSError: if a non-empty directory is removed without recursive
        """
        path = self.path / check_entry_name(name)
        if await aiofiles.os.path.isdir(path) and not await aiofiles.os.path.islink(path):
            if recursive:
                child = DirectoryHandle(path)
                async for entry in child.iter_entries():
                    await child.remove_entry(entry.name, recursive=True)
            await aiofiles.os.rmdir(path)
        else:
            await aiofiles.os.remove(path)

    async def iter_entries(self) -> AsyncIterator[Entry]:
        """Yield the directory's entries in name order."""
        for name in sorted(await aiofiles.os.listdir(self.path)):
            path = self.path / name
            is_dir = await aiofiles.os.path.isdir(path) and not await aiofiles.os.path.islink(path)
            yield Entry(name, "directory" if is_dir else "file")

    async def list_directories(self) -> list[str]:
        return [entry.name async for entry in self.iter_entries() if entry.kind == "directory"]


class RootDirectoryHandle(DirectoryHandle):
    """Handle for the storage root, with a revocable write grant."""

    def __init__(self, path: Path):
        super().__init__(path)
        self._granted = False

    def _writable(self) -> bool:
        return self.path.is_dir() and os.access(self.path, os.W_OK | os.X_OK)

    async def query_permission(self) -> str:
        if not self._granted:
            return PERMISSION_PROMPT
        if not self._writable():
            return PERMISSION_DENIED
        return PERMISSION_GRANTED

    async def request_permission(self) -> str:
        """Grant write access if the directory is writable."""
        if self._writable():
            self._granted = True
            return PERMISSION_GRANTED
        logger.warning(f"Write permission denied for {self.path}")
        self._granted = False
        return PERMISSION_DENIED

    def revoke_permission(self) -> None:
        self._granted = False


async def copy_tree(source: DirectoryHandle, target: DirectoryHandle) -> None:
    """Copy every file and subdirectory of source into target."""
    async for entry in source.iter_entries():
        if entry.kind == "directory":
            await copy_tree(
                await source.get_directory_handle(entry.name),
                await target.get_directory_handle(entry.name, create=True),
            )
        else:
            await target.write_file(entry.name, await source.get_file_text(entry.name))
