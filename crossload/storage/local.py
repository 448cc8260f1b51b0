# ============================================
# FILE: crossload/storage/local.py
# ============================================

"""
Local Filesystem Storage

aiofiles-based access to named base directories ("locations") on a local or
mounted filesystem.

Every path handed in is relative to a location root and uses forward
slashes; it is validated and confined to that root before the filesystem is
touched. Symbolic links are reported as such and never followed.

Example:
    >>> storage = LocalStorage({"data": "/mnt/data"})
    >>> entries = await storage.list_dir("data", "models")
    >>> async for chunk in storage.read_chunks("data", "models/config.json"):
    ...     ...
"""

import os
import posixpath
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os

from crossload.core.exceptions import PathTraversalError, ValidationError, classify_error
from crossload.core.paths import validate_relative_path

ENTRY_FILE = "file"
ENTRY_DIRECTORY = "directory"
ENTRY_SYMLINK = "symlink"
ENTRY_OTHER = "other"


@dataclass
class LocalEntry:
    """One child of a directory, classified without following links."""

    name: str
    kind: str


def _entry_kind(entry: os.DirEntry) -> str:
    if entry.is_symlink():
        return ENTRY_SYMLINK
    if entry.is_dir(follow_symlinks=False):
        return ENTRY_DIRECTORY
    if entry.is_file(follow_symlinks=False):
        return ENTRY_FILE
    return ENTRY_OTHER


def _read_dir(path: str) -> list[LocalEntry]:
    with os.scandir(path) as entries:
        listed = [LocalEntry(entry.name, _entry_kind(entry)) for entry in entries]
    return sorted(listed, key=lambda entry: entry.name)


# readdir and lstat both run in the worker thread
_read_dir_async = aiofiles.os.wrap(_read_dir)


class LocalStorage:
    """
    Filesystem storage over a set of named base directories.

    Args:
        locations: Location id -> base directory
    """

    def __init__(self, locations: dict[str, str | Path] | None = None):
        self.locations = {
            name: os.path.abspath(os.fspath(base)) for name, base in (locations or {}).items()
        }

    def base_dir(self, location_id: str) -> str:
        try:
            return self.locations[location_id]
        except KeyError:
            msg = f"Unknown local location: {location_id}"
            raise ValidationError(msg, field="locationId") from None

    def resolve(self, location_id: str, relative_path: str) -> str:
        """
        Turn a location-relative path into an absolute one.

        Raises:
            ValidationError: If the location id is not configured
            PathTraversalError: If the path escapes the location's base directory
        """
        base = self.base_dir(location_id)
        normalized = validate_relative_path(relative_path)
        if not normalized:
            return base

        full = os.path.abspath(os.path.join(base, *normalized.split("/")))
        if os.path.commonpath([base, full]) != base:
            raise PathTraversalError(relative_path, location=location_id)
        return full

    async def stat(
        self, location_id: str, relative_path: str, kind: str = "file"
    ) -> os.stat_result:
        path = self.resolve(location_id, relative_path)
        try:
            return await aiofiles.os.stat(path)
        except OSError as e:
            raise classify_error(e, path=relative_path, kind=kind) from e

    async def list_dir(self, location_id: str, relative_path: str) -> list[LocalEntry]:
        """
        Read one directory level.

        Entries come back sorted by name so repeated scans of an unchanged
        tree are identical.
        """
        path = self.resolve(location_id, relative_path)
        try:
            return await _read_dir_async(path)
        except OSError as e:
            raise classify_error(e, path=relative_path, kind="directory") from e

    async def exists(self, location_id: str, relative_path: str) -> bool:
        return await aiofiles.os.path.exists(self.resolve(location_id, relative_path))

    async def makedirs(self, location_id: str, relative_path: str) -> None:
        """Create a directory and its parents; an existing directory is fine."""
        path = self.resolve(location_id, relative_path)
        try:
            await aiofiles.os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise classify_error(e, path=relative_path, kind="directory") from e

    async def make_parent_dirs(self, location_id: str, relative_path: str) -> None:
        parent = posixpath.dirname(validate_relative_path(relative_path))
        await self.makedirs(location_id, parent)

    async def read_chunks(
        self, location_id: str, relative_path: str, chunk_size: int
    ) -> AsyncIterator[bytes]:
        """Stream a file in chunks of at most ``chunk_size`` bytes."""
        path = self.resolve(location_id, relative_path)
        try:
            async with aiofiles.open(path, "rb") as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        return
                    yield chunk
        except OSError as e:
            raise classify_error(e, path=relative_path) from e

    async def write_stream(
        self, location_id: str, relative_path: str, chunks: AsyncIterator[bytes]
    ) -> int:
        """
        Write a byte stream to a file, replacing any existing file.

        Returns:
            Number of bytes written
        """
        path = self.resolve(location_id, relative_path)
        written = 0
        try:
            async with aiofiles.open(path, "wb") as f:
                async for chunk in chunks:
                    await f.write(chunk)
                    written += len(chunk)
        except OSError as e:
            raise classify_error(e, path=relative_path) from e
        return written

    async def remove(self, location_id: str, relative_path: str) -> bool:
        """
        Delete a file.

        Returns:
            False if there was nothing to delete
        """
        path = self.resolve(location_id, relative_path)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise classify_error(e, path=relative_path) from e
        return True
