"""
Crossload Core Module.

Shared infrastructure for every component:
- Error hierarchy and backend error classification
- Cancellation tokens
- Path addressing and validation
- Configuration and environment loading
- Logger access
"""

from .cancellation import CancellationToken
from .config import S3Settings, TransferConfig
from .exceptions import (
    AccessDeniedError,
    BucketNotFoundError,
    CrossloadError,
    DirectoryNotFoundError,
    InvalidJobStateError,
    JobNotFoundError,
    NotFoundError,
    PathIsWrongTypeError,
    PathTooLongError,
    PathTraversalError,
    SourceFileNotFoundError,
    TransferCancelledError,
    TransientNetworkError,
    UnexpectedTransferError,
    UnsupportedTransferError,
    ValidationError,
    classify_error,
    sanitize_error_for_logging,
    to_error_body,
)
from .logger import configure_default_logging, get_logger, set_logger

__all__ = [
    "AccessDeniedError",
    "BucketNotFoundError",
    "CancellationToken",
    "CrossloadError",
    "DirectoryNotFoundError",
    "InvalidJobStateError",
    "JobNotFoundError",
    "NotFoundError",
    "PathIsWrongTypeError",
    "PathTooLongError",
    "PathTraversalError",
    "S3Settings",
    "SourceFileNotFoundError",
    "TransferCancelledError",
    "TransferConfig",
    "TransientNetworkError",
    "UnexpectedTransferError",
    "UnsupportedTransferError",
    "ValidationError",
    "classify_error",
    "configure_default_logging",
    "get_logger",
    "sanitize_error_for_logging",
    "set_logger",
    "to_error_body",
]
