# ============================================
# FILE: crossload/__init__.py
# ============================================

"""
Crossload - Cross-Storage File Transfer Engine

Moves files and directory trees between S3-compatible object storage and
local or mounted filesystems with:
- Recursive, paginated directory enumeration
- Conflict detection ("smart merge": only real overlaps need a decision)
- Empty-directory preservation through ``.s3keep`` markers
- A bounded-concurrency job queue with byte-level progress
- Streaming transfers with retry and cooperative cancellation

Usage:
    >>> from crossload import TransferConfig, TransferService
    >>>
    >>> config = TransferConfig(local_locations={"data": "/mnt/data"})
    >>> async with TransferService.from_config(config) as service:
    ...     conflicts = await service.check_conflicts(request)
    ...     response = await service.start_transfer({**request, "conflictResolution": "skip"})
    ...     job = await service.queue.wait(response["jobId"])
"""

from crossload.core import (
    AccessDeniedError,
    CancellationToken,
    CrossloadError,
    NotFoundError,
    PathTraversalError,
    S3Settings,
    TransferCancelledError,
    TransferConfig,
    ValidationError,
    configure_default_logging,
    get_logger,
    set_logger,
)
from crossload.storage import InMemoryObjectStorage, LocalStorage, S3Storage, StorageRegistry
from crossload.transfer import TransferExecutor, TransferQueue, TransferService
from crossload.types import (
    ConflictReport,
    ConflictResolution,
    DirectoryListing,
    FileRecord,
    ItemKind,
    JobKind,
    JobStatus,
    Location,
    LocationType,
    SelectionItem,
    TaskStatus,
    TransferJob,
    TransferRequest,
    TransferTask,
)

__version__ = "0.1.0"

__all__ = [
    "AccessDeniedError",
    "CancellationToken",
    "ConflictReport",
    "ConflictResolution",
    "CrossloadError",
    "DirectoryListing",
    "FileRecord",
    "InMemoryObjectStorage",
    "ItemKind",
    "JobKind",
    "JobStatus",
    "LocalStorage",
    "Location",
    "LocationType",
    "NotFoundError",
    "PathTraversalError",
    "S3Settings",
    "S3Storage",
    "SelectionItem",
    "StorageRegistry",
    "TaskStatus",
    "TransferCancelledError",
    "TransferConfig",
    "TransferExecutor",
    "TransferJob",
    "TransferQueue",
    "TransferRequest",
    "TransferService",
    "TransferTask",
    "ValidationError",
    "configure_default_logging",
    "get_logger",
    "set_logger",
]
