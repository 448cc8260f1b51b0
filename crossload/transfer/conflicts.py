"""
Conflict detection and large-transfer warnings.

The destination tree is listed once and turned into a set of relative
paths; every source file is then either a conflict (present on both sides)
or non-conflicting. Marker files never count as conflicts.
"""

import logging

from crossload.core.config import GIB
from crossload.core.exceptions import DirectoryNotFoundError, PathIsWrongTypeError
from crossload.core.paths import is_marker, strip_prefix
from crossload.transfer.scanner import DirectoryScanner
from crossload.types import ConflictReport, FileRecord, LargeFolderWarning, Location

logger = logging.getLogger(__name__)

LARGE_FOLDER_FILE_THRESHOLD = 1000
LARGE_FOLDER_SIZE_THRESHOLD = 10 * GIB

_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """
    Human readable byte size with up to two decimals.

    Example:
        >>> format_bytes(1536)
        '1.5 KB'
    """
    if size <= 0:
        return "0 Bytes"
    exponent = 0
    value = float(size)
    while value >= 1024 and exponent < len(_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_UNITS[exponent]}"


def large_folder_warning(
    files: list[FileRecord],
    file_threshold: int = LARGE_FOLDER_FILE_THRESHOLD,
    size_threshold: int = LARGE_FOLDER_SIZE_THRESHOLD,
) -> LargeFolderWarning | None:
    """
    Either threshold alone is enough to warn.

    Markers are not counted as files, matching the conflict partition.
    """
    file_count = sum(1 for f in files if not (f.is_marker or is_marker(f.path)))
    total_size = sum(f.size for f in files)
    if file_count < file_threshold and total_size < size_threshold:
        return None
    return LargeFolderWarning(
        file_count=file_count,
        total_size=total_size,
        message=(
            f"This operation will transfer {file_count} files ({format_bytes(total_size)}). "
            "This may take significant time."
        ),
    )


class ConflictAnalyzer:
    """
    Diffs a source selection against a destination tree.

    Args:
        scanner: Scanner used to list the destination
        file_threshold: File count that triggers the large-folder warning
        size_threshold: Total size that triggers the large-folder warning
    """

    def __init__(
        self,
        scanner: DirectoryScanner,
        file_threshold: int = LARGE_FOLDER_FILE_THRESHOLD,
        size_threshold: int = LARGE_FOLDER_SIZE_THRESHOLD,
    ):
        self.scanner = scanner
        self.file_threshold = file_threshold
        self.size_threshold = size_threshold

    async def destination_paths(self, destination: Location) -> set[str]:
        """
        Relative paths already present under ``destination``.

        A local destination that does not exist yet, or is a regular file,
        holds nothing to conflict with.
        """
        try:
            listing = await self.scanner.scan(
                destination.type, destination.location_id, destination.path
            )
        except (DirectoryNotFoundError, PathIsWrongTypeError):
            if destination.type.is_object_storage:
                raise
            return set()
        return {strip_prefix(f.path, destination.path) for f in listing.files}

    async def analyze(
        self, source_files: list[FileRecord], destination: Location
    ) -> ConflictReport:
        existing = await self.destination_paths(destination)
        report = ConflictReport()

        for record in source_files:
            if record.is_marker or is_marker(record.path):
                continue
            if record.path in existing:
                report.conflicts.append(record.path)
            else:
                report.non_conflicting.append(record.path)

        report.warning = large_folder_warning(
            source_files, self.file_threshold, self.size_threshold
        )
        logger.info(
            f"Conflict check against {destination.type.value}:{destination.location_id}: "
            f"{len(report.conflicts)} conflicts, {len(report.non_conflicting)} new"
        )
        return report
