"""
Path helpers shared by every component.

Two path worlds meet here:

**Object keys** always use forward slashes. An object store is a key-value
store; ``/`` in a key is just a character that listings group on.

**Local paths** use the host separator only at the very edge, when a
location-relative path is turned into an absolute one (see
``crossload.storage.local``). Everything the engine carries around
(FileRecord.path, task paths) is forward-slash and relative.

Internal transfer addressing is ``"<type>:<locationId>/<relative-path>"``.
"""

import posixpath

from crossload.core.exceptions import (
    PathTooLongError,
    PathTraversalError,
    UnexpectedTransferError,
    ValidationError,
)

MAX_PATH_LENGTH = 4096
MARKER_NAME = ".s3keep"


def parse_transfer_path(transfer_path: str) -> tuple[str, str, str]:
    """
    Split ``"type:locationId/path"`` into its three parts.

    Example:
        >>> parse_transfer_path("s3:bucket/models/config.json")
        ('s3', 'bucket', 'models/config.json')
    """
    type_part, sep, remainder = transfer_path.partition(":")
    if not sep or not type_part:
        msg = f"Invalid transfer path format: {transfer_path}"
        raise ValidationError(msg, path=transfer_path)

    location_id, sep, file_path = remainder.partition("/")
    if not sep or not location_id:
        msg = f"Invalid transfer path format: {transfer_path}"
        raise ValidationError(msg, path=transfer_path)

    return type_part, location_id, file_path


def format_transfer_path(location_type: str, location_id: str, file_path: str) -> str:
    return f"{location_type}:{location_id}/{file_path}"


def to_posix(path: str) -> str:
    """Convert backslashes and drop a trailing slash (except for root)."""
    normalized = path.replace("\\", "/")
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized.rstrip("/") or "/"
    return normalized


def join_path(*parts: str) -> str:
    """Join relative path parts with ``/``, ignoring empty parts."""
    cleaned = [p.strip("/") for p in parts if p and p.strip("/")]
    return "/".join(cleaned)


def normalize_prefix(prefix: str) -> str:
    """Object-store prefix: empty stays empty, anything else ends with ``/``."""
    if prefix and not prefix.endswith("/"):
        return f"{prefix}/"
    return prefix


def strip_prefix(path: str, base: str) -> str:
    """
    Re-root ``path`` so it is relative to ``base``.

    Raises:
        UnexpectedTransferError: If ``path`` does not live under ``base``
    """
    base = base.strip("/")
    if not base:
        return path
    prefix = f"{base}/"
    if not path.startswith(prefix):
        msg = f'Unexpected path format: "{path}" doesn\'t start with prefix "{prefix}"'
        raise UnexpectedTransferError(msg, path=path)
    return path[len(prefix):]


def validate_relative_path(path: str) -> str:
    """
    Reject paths that could escape a location root.

    Returns:
        The normalized forward-slash path

    Raises:
        PathTraversalError: For absolute paths or paths that climb with ``..``
    """
    candidate = path.replace("\\", "/")
    if candidate.startswith("/") or (len(candidate) > 1 and candidate[1] == ":"):
        raise PathTraversalError(path)

    normalized = posixpath.normpath(candidate) if candidate else ""
    if normalized == ".." or normalized.startswith("../"):
        raise PathTraversalError(path)
    return "" if normalized == "." else normalized


def check_path_length(path: str, limit: int = MAX_PATH_LENGTH) -> None:
    if len(path) > limit:
        raise PathTooLongError(path, limit=limit)


def is_marker(path: str) -> bool:
    """True for the empty-directory placeholder object name."""
    return posixpath.basename(path) == MARKER_NAME


def marker_path(directory: str) -> str:
    return join_path(directory, MARKER_NAME)


def rename_candidate(path: str, counter: int) -> str:
    """
    ``dir/report.txt`` with counter 2 becomes ``dir/report-2.txt``.
    """
    directory, filename = posixpath.split(path)
    base, ext = posixpath.splitext(filename)
    return join_path(directory, f"{base}-{counter}{ext}")
