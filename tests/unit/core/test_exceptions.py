"""
Tests for the error hierarchy and backend error classification.
"""

import errno
import socket

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from crossload.core.exceptions import (
    AccessDeniedError,
    BucketNotFoundError,
    CrossloadError,
    DirectoryNotFoundError,
    NotFoundError,
    PathIsWrongTypeError,
    SourceFileNotFoundError,
    TransientNetworkError,
    UnexpectedTransferError,
    ValidationError,
    classify_error,
    sanitize_error_for_logging,
    to_error_body,
)


def client_error(code: str, status: int, message: str = "boom") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status, "RequestId": "req-1"},
        },
        "GetObject",
    )


class TestErrorHierarchy:
    def test_details_drop_none_values(self):
        error = ValidationError("bad", field="items")
        assert error.details == {"field": "items"}
        assert error.path is None
        assert str(error) == "bad ({'field': 'items'})"

    def test_not_found_specializations(self):
        assert issubclass(SourceFileNotFoundError, NotFoundError)
        assert issubclass(DirectoryNotFoundError, NotFoundError)
        assert issubclass(BucketNotFoundError, NotFoundError)

    def test_bucket_not_found_message(self):
        error = BucketNotFoundError("archive")
        assert error.message == "S3 bucket not found: archive"
        assert error.bucket == "archive"


class TestClassifyError:
    def test_crossload_errors_pass_through(self):
        error = AccessDeniedError("nope")
        assert classify_error(error) is error

    @pytest.mark.parametrize(
        "exc,code",
        [
            (ConnectionRefusedError("refused"), "ECONNREFUSED"),
            (ConnectionResetError("reset"), "ECONNRESET"),
            (TimeoutError("slow"), "ETIMEDOUT"),
            (socket.gaierror(socket.EAI_AGAIN, "again"), "EAI_AGAIN"),
            (socket.gaierror(socket.EAI_NONAME, "unknown host"), "ENOTFOUND"),
            (EndpointConnectionError(endpoint_url="http://minio:9000"), "ECONNREFUSED"),
        ],
    )
    def test_network_errors_are_transient(self, exc, code):
        error = classify_error(exc, path="a.txt")
        assert isinstance(error, TransientNetworkError)
        assert error.code == code

    def test_no_such_bucket(self):
        error = classify_error(client_error("NoSuchBucket", 404), path="a", bucket="archive")
        assert isinstance(error, BucketNotFoundError)
        assert error.bucket == "archive"

    def test_missing_object(self):
        error = classify_error(client_error("NoSuchKey", 404), path="a.txt", bucket="b")
        assert isinstance(error, SourceFileNotFoundError)
        assert error.path == "a.txt"

    def test_missing_prefix_is_directory_not_found(self):
        error = classify_error(client_error("404", 404), path="models/", kind="directory")
        assert isinstance(error, DirectoryNotFoundError)

    def test_access_denied(self):
        error = classify_error(client_error("AccessDenied", 403), path="a.txt", bucket="b")
        assert isinstance(error, AccessDeniedError)
        assert error.message == "Access denied to S3 file: a.txt in bucket b"

    def test_other_client_errors_keep_message(self):
        error = classify_error(client_error("SlowDown", 503, "Please reduce"), path="a.txt")
        assert isinstance(error, UnexpectedTransferError)
        assert "Please reduce" in error.message
        assert "HTTP 503" in error.message

    @pytest.mark.parametrize(
        "err,kind,expected",
        [
            (errno.ENOENT, "file", SourceFileNotFoundError),
            (errno.ENOENT, "directory", DirectoryNotFoundError),
            (errno.EACCES, "file", AccessDeniedError),
            (errno.EPERM, "directory", AccessDeniedError),
            (errno.ENOTDIR, "directory", PathIsWrongTypeError),
            (errno.EISDIR, "file", PathIsWrongTypeError),
        ],
    )
    def test_filesystem_errors(self, err, kind, expected):
        error = classify_error(OSError(err, "os error"), path="x", kind=kind)
        assert isinstance(error, expected)
        assert error.path == "x"

    def test_unknown_errors_keep_original_message(self):
        error = classify_error(RuntimeError("disk on fire"), path="x")
        assert isinstance(error, UnexpectedTransferError)
        assert error.message == "disk on fire"


class TestLoggingHelpers:
    def test_sanitize_client_error(self):
        safe = sanitize_error_for_logging(client_error("NoSuchKey", 404))
        assert safe["code"] == "NoSuchKey"
        assert safe["statusCode"] == 404
        assert safe["requestId"] == "req-1"
        assert safe["name"] == "ClientError"

    def test_sanitize_crossload_error(self):
        safe = sanitize_error_for_logging(SourceFileNotFoundError("gone", path="a.txt"))
        assert safe["name"] == "SourceFileNotFoundError"
        assert safe["code"] == "FileNotFound"
        assert safe["path"] == "a.txt"

    def test_sanitize_none(self):
        assert sanitize_error_for_logging(None) == {"error": "Unknown error"}

    def test_error_body(self):
        body = to_error_body(OSError(errno.ENOENT, "missing"))
        assert body["error"] == "FileNotFound"
        assert isinstance(classify_error(ValueError("x")), CrossloadError)
