"""
Selection expansion.

Turns a mixed file/directory selection into the flat list of FileRecords a
job will transfer, with exact sizes known before the first byte moves.

- File items get one metadata lookup each (HEAD or stat).
- Directory items are scanned and re-rooted relative to the source path.
- Filesystem -> object storage transfers gain a zero-byte ``.s3keep``
  record for every empty directory, the only way an empty directory
  survives in a store without directories.
"""

import logging
import stat

from crossload.core.exceptions import PathIsWrongTypeError, ValidationError
from crossload.core.paths import (
    check_path_length,
    is_marker,
    join_path,
    marker_path,
    strip_prefix,
    validate_relative_path,
)
from crossload.storage.registry import StorageRegistry
from crossload.transfer.limiter import ConcurrencyLimiter
from crossload.transfer.scanner import DirectoryScanner
from crossload.types import FileRecord, ItemKind, Location, LocationType, SelectionItem

logger = logging.getLogger(__name__)

MAX_LOGGED_SYMLINKS = 5


def _describe_symlinks(paths: list[str]) -> str:
    shown = ", ".join(paths[:MAX_LOGGED_SYMLINKS])
    if len(paths) > MAX_LOGGED_SYMLINKS:
        shown += ", ..."
    return shown


class SelectionExpander:
    """
    Flattens selections into FileRecords.

    Example:
        >>> expander = SelectionExpander(registry, scanner, metadata_limiter)
        >>> files = await expander.expand(
        ...     [SelectionItem("models", ItemKind.DIRECTORY)],
        ...     Location(LocationType.LOCAL, "data", "projects"),
        ...     LocationType.S3,
        ... )
    """

    def __init__(
        self,
        registry: StorageRegistry,
        scanner: DirectoryScanner,
        metadata_limiter: ConcurrencyLimiter,
    ):
        self.registry = registry
        self.scanner = scanner
        self.metadata_limiter = metadata_limiter

    async def expand(
        self,
        items: list[SelectionItem],
        source: Location,
        destination_type: LocationType,
    ) -> list[FileRecord]:
        """
        Expand ``items`` (relative to ``source.path``) into FileRecords.

        Record paths are relative to ``source.path``.

        Raises:
            ValidationError: Empty selection
            PathTraversalError: An item escapes the source root
            SourceFileNotFoundError: A selected file does not exist
            DirectoryNotFoundError: A selected directory does not exist
            AccessDeniedError: Permission failures
            PathIsWrongTypeError: A file item is a directory
        """
        if not items:
            msg = "No items selected"
            raise ValidationError(msg, field="items")

        # Validate everything before touching storage
        targets = [
            (item, join_path(source.path, validate_relative_path(item.path))) for item in items
        ]
        for _, full_path in targets:
            check_path_length(full_path, self.scanner.max_path_length)

        synthesize_markers = (
            source.type is LocationType.LOCAL and destination_type.is_object_storage
        )
        records: list[FileRecord] = []
        skipped_symlinks: list[str] = []

        for item, full_path in targets:
            if item.kind is ItemKind.FILE:
                size = await self._file_size(source, full_path)
                records.append(
                    FileRecord(
                        path=strip_prefix(full_path, source.path),
                        size=size,
                        is_marker=source.type.is_object_storage and is_marker(full_path),
                    )
                )
                continue

            listing = await self.scanner.scan(source.type, source.location_id, full_path)
            for record in listing.files:
                records.append(
                    FileRecord(
                        path=strip_prefix(record.path, source.path),
                        size=record.size,
                        is_marker=source.type.is_object_storage and is_marker(record.path),
                    )
                )
            if synthesize_markers:
                for directory in listing.empty_directories:
                    records.append(
                        FileRecord(
                            path=strip_prefix(marker_path(directory), source.path),
                            size=0,
                            is_marker=True,
                        )
                    )
            skipped_symlinks.extend(listing.skipped_symlinks)

        if skipped_symlinks:
            logger.warning(
                f"Skipped {len(skipped_symlinks)} symbolic link(s) during transfer: "
                f"{_describe_symlinks(skipped_symlinks)}"
            )
        return records

    async def _file_size(self, source: Location, full_path: str) -> int:
        async with self.metadata_limiter:
            if source.type.is_object_storage:
                return await self.registry.object_store.head(source.location_id, full_path)
            info = await self.registry.local.stat(source.location_id, full_path)

        if stat.S_ISDIR(info.st_mode):
            msg = f"Path is a directory, not a file: {full_path}"
            raise PathIsWrongTypeError(msg, path=full_path)
        return info.st_size
