# ============================================
# FILE: crossload/types.py
# ============================================

"""
All type definitions, enums, and dataclasses used by the transfer engine.

The engine moves files between two kinds of locations:
- ``local``: a named base directory on a local or mounted filesystem
- ``s3``: a bucket in an S3-compatible object store

Paths carried by these types are always relative to a location root and
always use forward slashes, whatever the host filesystem uses.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from crossload.core.exceptions import UnsupportedTransferError, ValidationError
from crossload.core.paths import validate_relative_path


class LocationType(Enum):
    """Kind of storage a location lives on"""

    LOCAL = "local"
    S3 = "s3"

    @property
    def is_object_storage(self) -> bool:
        return self is LocationType.S3

    @classmethod
    def parse(cls, value: "str | LocationType") -> "LocationType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            msg = f"Unsupported location type: {value}"
            raise UnsupportedTransferError(msg, details={"type": str(value)}) from None


class ItemKind(Enum):
    """Kind of a user-selected entry"""

    FILE = "file"
    DIRECTORY = "directory"


class ConflictResolution(Enum):
    """What to do when a destination path already exists"""

    OVERWRITE = "overwrite"
    SKIP = "skip"
    RENAME = "rename"


class TaskStatus(Enum):
    """Status of a single file transfer"""

    QUEUED = "queued"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.ERROR)


class JobStatus(Enum):
    """
    Overall job status.

    ACTIVE is the only non-terminal state; a job never leaves a terminal state.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.ACTIVE


class JobKind(Enum):
    """Kind of work a job performs"""

    CROSS_STORAGE = "cross-storage"


@dataclass(frozen=True)
class SelectionItem:
    """A user-chosen entry, relative to the source location path."""

    path: str
    kind: ItemKind = ItemKind.FILE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectionItem":
        path = data.get("path")
        if not isinstance(path, str) or not path:
            msg = "Selection item requires a non-empty 'path'"
            raise ValidationError(msg, field="items")
        kind = data.get("type", data.get("kind", "file"))
        try:
            return cls(path=path, kind=ItemKind(kind))
        except ValueError:
            msg = f"Invalid item type '{kind}' for {path}"
            raise ValidationError(msg, field="items", path=path) from None


@dataclass
class FileRecord:
    """One concrete transferable unit after selection expansion."""

    path: str
    size: int = 0
    is_marker: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "size": self.size, "isMarker": self.is_marker}


@dataclass
class DirectoryListing:
    """
    Output of a single recursive scan.

    Built incrementally by the scanner; ``total_size`` and ``file_count`` are
    kept in step with ``files`` by ``add_file``.
    """

    files: list[FileRecord] = field(default_factory=list)
    total_size: int = 0
    file_count: int = 0
    empty_directories: list[str] = field(default_factory=list)
    skipped_symlinks: list[str] = field(default_factory=list)

    def add_file(self, record: FileRecord) -> None:
        self.files.append(record)
        self.total_size += record.size
        self.file_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "totalSize": self.total_size,
            "fileCount": self.file_count,
            "emptyDirectories": list(self.empty_directories),
            "skippedSymlinks": list(self.skipped_symlinks),
        }


@dataclass(frozen=True)
class Location:
    """
    Where a selection lives: storage type, location id and a base path.

    ``location_id`` is a bucket name for object storage and a configured
    location name for local storage.
    """

    type: LocationType
    location_id: str
    path: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], field_name: str = "location") -> "Location":
        if not isinstance(data, dict):
            msg = f"Missing required field: {field_name}"
            raise ValidationError(msg, field=field_name)
        location_id = data.get("locationId") or data.get("location_id")
        if not location_id:
            msg = f"Missing locationId in {field_name}"
            raise ValidationError(msg, field=field_name)
        # Raises PathTraversalError before anything is scanned or queued
        path = validate_relative_path(str(data.get("path") or "").strip("/"))
        return cls(
            type=LocationType.parse(data.get("type", "")),
            location_id=str(location_id),
            path=path,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "locationId": self.location_id, "path": self.path}


@dataclass
class TransferTask:
    """
    One file (or marker) of a job.

    ``source_path`` and ``destination_path`` use the transfer-path convention
    ``<type>:<locationId>/<relative-path>``.
    """

    source_path: str
    destination_path: str
    size: int = 0
    loaded: int = 0
    status: TaskStatus = TaskStatus.QUEUED
    error: str | None = None
    is_marker: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourcePath": self.source_path,
            "destinationPath": self.destination_path,
            "size": self.size,
            "loaded": self.loaded,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass
class JobProgress:
    """Aggregated progress of a job"""

    total_files: int = 0
    completed_files: int = 0
    failed_files: int = 0
    loaded_bytes: int = 0
    total_bytes: int = 0

    @property
    def percentage(self) -> int:
        """Byte-level completion percentage (file sizes vary widely)."""
        if self.total_bytes <= 0:
            finished = self.completed_files + self.failed_files
            return 100 if self.total_files and finished >= self.total_files else 0
        return min(100, round(self.loaded_bytes * 100 / self.total_bytes))

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "completedFiles": self.completed_files,
            "failedFiles": self.failed_files,
            "percentage": self.percentage,
        }


@dataclass
class TransferJob:
    """A set of tasks submitted together; the unit of cancellation."""

    id: str
    kind: JobKind
    tasks: list[TransferTask]
    status: JobStatus = JobStatus.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def progress(self) -> JobProgress:
        progress = JobProgress(total_files=len(self.tasks))
        for task in self.tasks:
            progress.loaded_bytes += task.loaded
            progress.total_bytes += task.size
            if task.status == TaskStatus.COMPLETED:
                progress.completed_files += 1
            elif task.status == TaskStatus.ERROR:
                progress.failed_files += 1
        return progress

    def to_event(self) -> dict[str, Any]:
        """Progress-stream payload for one job-state change."""
        return {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "files": [
                {
                    "file": task.destination_path,
                    "loaded": task.loaded,
                    "total": task.size,
                    "status": task.status.value,
                    "error": task.error,
                }
                for task in self.tasks
            ],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.id,
            "type": self.kind.value,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "files": [task.to_dict() for task in self.tasks],
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass
class LargeFolderWarning:
    """Advisory signal for long-running transfers"""

    file_count: int
    total_size: int
    message: str
    type: str = "large_folder"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "fileCount": self.file_count,
            "totalSize": self.total_size,
            "message": self.message,
        }


@dataclass
class ConflictReport:
    """Partition of a selection into overlapping and new paths"""

    conflicts: list[str] = field(default_factory=list)
    non_conflicting: list[str] = field(default_factory=list)
    warning: LargeFolderWarning | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "conflicts": list(self.conflicts),
            "nonConflicting": list(self.non_conflicting),
        }
        if self.warning is not None:
            body["warning"] = self.warning.to_dict()
        return body


@dataclass
class TransferRequest:
    """A transfer or conflict-check request as received from a caller."""

    source: Location
    destination: Location
    items: list[SelectionItem]
    conflict_resolution: ConflictResolution = ConflictResolution.OVERWRITE

    @classmethod
    def from_dict(cls, data: dict[str, Any], require_resolution: bool = True) -> "TransferRequest":
        if not isinstance(data, dict):
            msg = "Request body must be an object"
            raise ValidationError(msg)
        items = data.get("items")
        if items is None:
            msg = "Missing required field: items"
            raise ValidationError(msg, field="items")
        resolution = data.get("conflictResolution")
        if resolution is None:
            if require_resolution:
                msg = "Missing required field: conflictResolution"
                raise ValidationError(msg, field="conflictResolution")
            resolution = ConflictResolution.OVERWRITE.value
        try:
            conflict_resolution = ConflictResolution(resolution)
        except ValueError:
            msg = f"Invalid conflictResolution: {resolution}"
            raise ValidationError(msg, field="conflictResolution") from None

        return cls(
            source=Location.from_dict(data.get("source"), "source"),
            destination=Location.from_dict(data.get("destination"), "destination"),
            items=[SelectionItem.from_dict(item) for item in items],
            conflict_resolution=conflict_resolution,
        )
