# ============================================
# FILE: crossload/core/exceptions.py
# ============================================

"""
Unified error hierarchy for transfer operations.

All engine errors inherit from CrossloadError, carrying a message and a
details dict. Errors about a specific location path expose it as ``.path``
so callers can report the offending entry.

Taxonomy:
- NotFoundError            missing source path, object or bucket
- AccessDeniedError        permission/auth failures from either store
- PathTooLongError         validation, raised before any I/O
- PathTraversalError       validation, raised before any I/O
- TransientNetworkError    retryable connection errors
- TransferCancelledError   abort signal observed
- UnexpectedTransferError  anything else, with the original message
"""

import errno
import socket
from typing import Any

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


class CrossloadError(Exception):
    """
    Base exception for all transfer engine errors.
    """

    error_type = "TransferError"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in (details or {}).items() if v is not None}

    @property
    def path(self) -> str | None:
        return self.details.get("path")

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ValidationError(CrossloadError):
    """
    Request rejected before any task was created.

    Raised when:
    - A required field is missing or malformed
    - The selection is empty or expands to no files
    - A location id is not configured
    """

    error_type = "BadRequest"

    def __init__(self, message: str, field: str | None = None, path: str | None = None, **details):
        super().__init__(message, details={"field": field, "path": path, **details})
        self.field = field


class NotFoundError(CrossloadError):
    """Requested path, object or bucket does not exist."""

    error_type = "NotFound"

    def __init__(self, message: str = "Item not found", path: str | None = None, **details):
        super().__init__(message, details={"path": path, **details})


class SourceFileNotFoundError(NotFoundError):
    """A selected file does not exist at the source."""

    error_type = "FileNotFound"


class DirectoryNotFoundError(NotFoundError):
    """A selected or scanned directory does not exist."""

    error_type = "DirectoryNotFound"


class BucketNotFoundError(NotFoundError):
    """The object-store bucket does not exist."""

    error_type = "BucketNotFound"

    def __init__(self, bucket: str, **details):
        super().__init__(f"S3 bucket not found: {bucket}", bucket=bucket, **details)
        self.bucket = bucket


class AccessDeniedError(CrossloadError):
    """Permission or authentication failure from either store."""

    error_type = "AccessDenied"

    def __init__(self, message: str = "Access denied", path: str | None = None, **details):
        super().__init__(message, details={"path": path, **details})


class PathIsWrongTypeError(CrossloadError):
    """A file was expected and a directory was found, or the reverse."""

    error_type = "PathIsWrongType"

    def __init__(self, message: str, path: str | None = None, **details):
        super().__init__(message, details={"path": path, **details})


class PathTooLongError(CrossloadError):
    """A composed path exceeds the configured maximum length."""

    error_type = "PathTooLong"

    def __init__(self, path: str, limit: int, **details):
        super().__init__(
            f"Path too long (>{limit} chars): {path}",
            details={"path": path, "limit": limit, **details},
        )
        self.limit = limit


class PathTraversalError(CrossloadError):
    """A relative path tries to escape its location root."""

    error_type = "PathTraversal"

    def __init__(self, path: str, **details):
        super().__init__(
            f"Invalid file path detected (path traversal attempt): {path}",
            details={"path": path, **details},
        )


class TransientNetworkError(CrossloadError):
    """Retryable connection-level failure."""

    error_type = "TransientNetwork"

    def __init__(self, message: str, code: str | None = None, **details):
        super().__init__(message, details={"code": code, **details})
        self.code = code


class TransferCancelledError(CrossloadError):
    """The job's cancellation token fired."""

    error_type = "Cancelled"

    def __init__(self, message: str = "Transfer cancelled by user", **details):
        super().__init__(message, details=details)


class UnexpectedTransferError(CrossloadError):
    """Anything not otherwise classified, surfaced with the original message."""

    error_type = "Unexpected"

    def __init__(self, message: str, path: str | None = None, **details):
        super().__init__(message, details={"path": path, **details})


class UnsupportedTransferError(CrossloadError):
    """No executor or backend is available for the requested storage types."""

    error_type = "Unsupported"


class JobNotFoundError(CrossloadError):
    """No job with the given id is known to the queue."""

    error_type = "JobNotFound"

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", details={"job_id": job_id})
        self.job_id = job_id


class InvalidJobStateError(CrossloadError):
    """The job is not in a state that allows the requested operation."""

    error_type = "InvalidStatus"

    def __init__(self, message: str, job_id: str | None = None, status: str | None = None):
        super().__init__(message, details={"job_id": job_id, "status": status})


# ============================================================================
# Classification of backend errors
# ============================================================================

RETRYABLE_ERROR_CODES = frozenset(
    {"ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN", "ECONNRESET"}
)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
_ACCESS_DENIED_CODES = frozenset({"403", "AccessDenied", "Forbidden"})


def _network_code(exc: BaseException) -> str | None:
    """Map connection-level exceptions onto their errno-style code names."""
    if isinstance(exc, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(exc, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(exc, socket.gaierror):
        return "EAI_AGAIN" if exc.errno == socket.EAI_AGAIN else "ENOTFOUND"
    if isinstance(exc, (TimeoutError, ConnectTimeoutError, ReadTimeoutError)):
        return "ETIMEDOUT"
    if isinstance(exc, EndpointConnectionError):
        return "ECONNREFUSED"
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in RETRYABLE_ERROR_CODES:
        return code
    return None


def classify_error(
    exc: BaseException,
    path: str | None = None,
    kind: str = "file",
    bucket: str | None = None,
) -> CrossloadError:
    """
    Translate a backend exception into the engine's taxonomy.

    Args:
        exc: Exception raised by the filesystem or the object-store client
        path: Location-relative path the operation was about
        kind: "file" or "directory", selects the NotFound specialization
        bucket: Bucket name for object-store operations

    Returns:
        A CrossloadError subclass; CrossloadErrors are returned unchanged
    """
    if isinstance(exc, CrossloadError):
        return exc

    network_code = _network_code(exc)
    if network_code:
        return TransientNetworkError(str(exc) or network_code, code=network_code, path=path)

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code == "NoSuchBucket":
            return BucketNotFoundError(bucket or "", path=path)
        if code in _NOT_FOUND_CODES or status == 404:
            cls = DirectoryNotFoundError if kind == "directory" else SourceFileNotFoundError
            return cls(f"Object not found: {path}", path=path, bucket=bucket)
        if code in _ACCESS_DENIED_CODES or status == 403:
            where = f" in bucket {bucket}" if bucket else ""
            return AccessDeniedError(f"Access denied to S3 {kind}: {path}{where}", path=path)
        return UnexpectedTransferError(
            f"S3 error accessing {path}: {error.get('Message', exc)} (HTTP {status or 500})",
            path=path,
            code=code or None,
        )

    if isinstance(exc, OSError):
        if exc.errno == errno.ENOENT:
            cls = DirectoryNotFoundError if kind == "directory" else SourceFileNotFoundError
            label = "Directory" if kind == "directory" else "File"
            return cls(f"{label} not found: {path}", path=path)
        if exc.errno in (errno.EACCES, errno.EPERM):
            return AccessDeniedError(f"Permission denied accessing {kind}: {path}", path=path)
        if exc.errno == errno.ENOTDIR:
            return PathIsWrongTypeError(f"Path is not a directory: {path}", path=path)
        if exc.errno == errno.EISDIR:
            return PathIsWrongTypeError(f"Path is a directory, not a file: {path}", path=path)
        if exc.errno == errno.ENAMETOOLONG:
            return PathTooLongError(path or "", limit=4096)

    return UnexpectedTransferError(str(exc) or exc.__class__.__name__, path=path)


def sanitize_error_for_logging(exc: BaseException | None) -> dict[str, Any]:
    """
    Extract the useful, log-safe parts of an error.

    Object-store client errors carry response internals; only the message,
    type name, code, HTTP status and request id are kept.
    """
    if exc is None:
        return {"error": "Unknown error"}

    safe: dict[str, Any] = {"message": str(exc) or repr(exc), "name": exc.__class__.__name__}

    if isinstance(exc, ClientError):
        metadata = exc.response.get("ResponseMetadata", {})
        safe["code"] = exc.response.get("Error", {}).get("Code")
        safe["statusCode"] = metadata.get("HTTPStatusCode")
        safe["requestId"] = metadata.get("RequestId")
    elif isinstance(exc, CrossloadError):
        safe["code"] = exc.error_type
        if exc.path:
            safe["path"] = exc.path
    elif isinstance(exc, OSError) and exc.errno is not None:
        safe["code"] = errno.errorcode.get(exc.errno, str(exc.errno))

    return {k: v for k, v in safe.items() if v is not None}


def to_error_body(exc: BaseException) -> dict[str, Any]:
    """Structured error body identifying the offending path."""
    error = classify_error(exc)
    return {"error": error.error_type, "message": error.message, "path": error.path}
