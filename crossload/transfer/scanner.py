"""
Recursive directory enumeration for both storage kinds.

Object stores are listed by prefix one page at a time (at most 1000 keys),
so memory stays bounded by a page rather than by the size of the tree.
Filesystems are walked depth first, one directory level at a time; each
file is sized with a stat call as it is discovered.

Every path in the resulting DirectoryListing is relative to the location
root and uses forward slashes.
"""

import logging
import stat

from crossload.core.exceptions import NotFoundError, PathIsWrongTypeError
from crossload.core.paths import (
    MAX_PATH_LENGTH,
    check_path_length,
    join_path,
    normalize_prefix,
    validate_relative_path,
)
from crossload.storage.local import ENTRY_DIRECTORY, ENTRY_FILE, ENTRY_SYMLINK
from crossload.storage.registry import StorageRegistry
from crossload.transfer.limiter import ConcurrencyLimiter
from crossload.types import DirectoryListing, FileRecord, LocationType

logger = logging.getLogger(__name__)


def _ancestors(key: str) -> list[str]:
    """``a/b/c.txt`` -> ``["a/", "a/b/"]``"""
    parts = key.split("/")[:-1]
    return ["/".join(parts[: i + 1]) + "/" for i in range(len(parts))]


class DirectoryScanner:
    """
    Builds a DirectoryListing for a tree under a location.

    Args:
        registry: Storage backends
        metadata_limiter: Shared limiter for LIST/stat calls
        max_path_length: Longest composed path accepted
    """

    def __init__(
        self,
        registry: StorageRegistry,
        metadata_limiter: ConcurrencyLimiter,
        max_path_length: int = MAX_PATH_LENGTH,
    ):
        self.registry = registry
        self.metadata_limiter = metadata_limiter
        self.max_path_length = max_path_length

    async def scan(
        self, location_type: LocationType, location_id: str, relative_path: str = ""
    ) -> DirectoryListing:
        """
        Enumerate every file under ``relative_path``.

        Raises:
            DirectoryNotFoundError: Local directory does not exist
            BucketNotFoundError: Bucket does not exist
            AccessDeniedError: Permission failures
            PathIsWrongTypeError: Local path is a file
            PathTooLongError: A composed path exceeds the limit
        """
        relative_path = validate_relative_path(relative_path)
        if location_type.is_object_storage:
            listing = await self._scan_object_store(location_id, relative_path)
        else:
            listing = await self._scan_filesystem(location_id, relative_path)

        logger.debug(
            f"Scanned {location_type.value}:{location_id}/{relative_path}: "
            f"{listing.file_count} files, {listing.total_size} bytes, "
            f"{len(listing.empty_directories)} empty dirs"
        )
        return listing

    # ------------------------------------------------------------------
    # Object storage
    # ------------------------------------------------------------------

    async def _scan_object_store(self, bucket: str, relative_path: str) -> DirectoryListing:
        store = self.registry.object_store
        prefix = normalize_prefix(relative_path)
        listing = DirectoryListing()
        # Directory placeholders seen, and directories known to hold objects
        candidate_dirs: list[str] = []
        populated_dirs: set[str] = set()

        token = None
        while True:
            async with self.metadata_limiter:
                page = await store.list_page(bucket, prefix, continuation_token=token)

            for obj in page.objects:
                check_path_length(obj.key, self.max_path_length)
                if obj.key.endswith("/"):
                    candidate_dirs.append(obj.key)
                    continue
                populated_dirs.update(_ancestors(obj.key))
                listing.add_file(FileRecord(path=obj.key, size=obj.size))

            candidate_dirs.extend(page.common_prefixes)
            token = page.next_token
            if not token:
                break

        listing.empty_directories = [
            d.rstrip("/")
            for d in dict.fromkeys(candidate_dirs)
            if d not in populated_dirs and d != prefix
        ]
        return listing

    # ------------------------------------------------------------------
    # Filesystem
    # ------------------------------------------------------------------

    async def _scan_filesystem(self, location_id: str, relative_path: str) -> DirectoryListing:
        local = self.registry.local
        async with self.metadata_limiter:
            info = await local.stat(location_id, relative_path, kind="directory")
        if not stat.S_ISDIR(info.st_mode):
            msg = f"Path is not a directory: {relative_path}"
            raise PathIsWrongTypeError(msg, path=relative_path)

        listing = DirectoryListing()
        stack = [relative_path]
        while stack:
            directory = stack.pop()
            async with self.metadata_limiter:
                entries = await local.list_dir(location_id, directory)

            children = 0
            subdirs: list[str] = []
            for entry in entries:
                child = join_path(directory, entry.name)
                check_path_length(child, self.max_path_length)

                if entry.kind == ENTRY_SYMLINK:
                    listing.skipped_symlinks.append(child)
                elif entry.kind == ENTRY_DIRECTORY:
                    children += 1
                    subdirs.append(child)
                elif entry.kind == ENTRY_FILE:
                    children += 1
                    size = await self._file_size(location_id, child)
                    if size is not None:
                        listing.add_file(FileRecord(path=child, size=size))
                else:
                    logger.debug(f"Skipping special file: {child}")

            if children == 0 and directory:
                listing.empty_directories.append(directory)
            # Reversed so the walk visits siblings in name order
            stack.extend(reversed(subdirs))

        return listing

    async def _file_size(self, location_id: str, path: str) -> int | None:
        try:
            async with self.metadata_limiter:
                info = await self.registry.local.stat(location_id, path)
        except NotFoundError:
            logger.debug(f"File disappeared during scan: {path}")
            return None
        return info.st_size
