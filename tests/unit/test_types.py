"""
Tests for request parsing and job payloads.
"""

import pytest

from crossload.core.exceptions import (
    PathTraversalError,
    UnsupportedTransferError,
    ValidationError,
)
from crossload.types import (
    ConflictReport,
    ConflictResolution,
    DirectoryListing,
    FileRecord,
    ItemKind,
    JobKind,
    JobProgress,
    LargeFolderWarning,
    Location,
    LocationType,
    SelectionItem,
    TaskStatus,
    TransferJob,
    TransferRequest,
    TransferTask,
)


def request_body(**overrides):
    body = {
        "source": {"type": "local", "locationId": "data", "path": "/projects/"},
        "destination": {"type": "s3", "locationId": "archive", "path": "2024"},
        "items": [{"path": "models", "type": "directory"}, {"path": "README.md", "type": "file"}],
        "conflictResolution": "skip",
    }
    body.update(overrides)
    return body


class TestTransferRequest:
    def test_from_dict(self):
        request = TransferRequest.from_dict(request_body())

        assert request.source == Location(LocationType.LOCAL, "data", "projects")
        assert request.destination.type is LocationType.S3
        assert request.items == [
            SelectionItem("models", ItemKind.DIRECTORY),
            SelectionItem("README.md", ItemKind.FILE),
        ]
        assert request.conflict_resolution is ConflictResolution.SKIP

    def test_missing_resolution(self):
        body = request_body()
        del body["conflictResolution"]

        with pytest.raises(ValidationError, match="conflictResolution"):
            TransferRequest.from_dict(body)

        request = TransferRequest.from_dict(body, require_resolution=False)
        assert request.conflict_resolution is ConflictResolution.OVERWRITE

    def test_invalid_resolution(self):
        with pytest.raises(ValidationError, match="Invalid conflictResolution"):
            TransferRequest.from_dict(request_body(conflictResolution="merge"))

    def test_missing_items(self):
        body = request_body()
        del body["items"]
        with pytest.raises(ValidationError, match="items"):
            TransferRequest.from_dict(body)

    def test_missing_location(self):
        with pytest.raises(ValidationError, match="destination"):
            TransferRequest.from_dict(request_body(destination=None))

    def test_missing_location_id(self):
        with pytest.raises(ValidationError, match="locationId"):
            TransferRequest.from_dict(request_body(source={"type": "local", "path": "x"}))

    def test_unknown_location_type(self):
        with pytest.raises(UnsupportedTransferError, match="ftp"):
            TransferRequest.from_dict(
                request_body(source={"type": "ftp", "locationId": "x", "path": ""})
            )

    def test_invalid_item(self):
        with pytest.raises(ValidationError):
            SelectionItem.from_dict({"path": ""})
        with pytest.raises(ValidationError, match="Invalid item type"):
            SelectionItem.from_dict({"path": "a", "type": "socket"})

    def test_location_round_trip(self):
        location = Location.from_dict({"type": "S3", "locationId": "b", "path": "x/"})
        assert location.to_dict() == {"type": "s3", "locationId": "b", "path": "x"}

    @pytest.mark.parametrize("path", ["../escape", "a/../../escape", "..", "C:\\Windows"])
    def test_location_path_traversal(self, path):
        with pytest.raises(PathTraversalError):
            Location.from_dict({"type": "local", "locationId": "backup", "path": path})

    def test_location_path_normalized(self):
        location = Location.from_dict(
            {"type": "local", "locationId": "backup", "path": "a/./b/../c"}
        )
        assert location.path == "a/c"


class TestListingAndReports:
    def test_listing_totals_follow_files(self):
        listing = DirectoryListing()
        listing.add_file(FileRecord("a", 10))
        listing.add_file(FileRecord("b/c", 5))

        assert listing.file_count == 2
        assert listing.total_size == 15
        assert listing.to_dict()["files"][1] == {"path": "b/c", "size": 5, "isMarker": False}

    def test_report_omits_missing_warning(self):
        assert ConflictReport(["a"], ["b"]).to_dict() == {
            "conflicts": ["a"],
            "nonConflicting": ["b"],
        }

    def test_report_includes_warning(self):
        report = ConflictReport(warning=LargeFolderWarning(5, 10, "big"))
        assert report.to_dict()["warning"] == {
            "type": "large_folder",
            "fileCount": 5,
            "totalSize": 10,
            "message": "big",
        }


class TestJobProgress:
    def test_byte_weighted_percentage(self):
        job = TransferJob(
            id="job-1",
            kind=JobKind.CROSS_STORAGE,
            tasks=[
                TransferTask(
                    "local:d/a", "s3:b/a", size=900, loaded=900, status=TaskStatus.COMPLETED
                ),
                TransferTask("local:d/b", "s3:b/b", size=100, loaded=0),
            ],
        )
        progress = job.progress.to_dict()
        assert progress == {
            "totalFiles": 2,
            "completedFiles": 1,
            "failedFiles": 0,
            "percentage": 90,
        }

    def test_zero_byte_job_percentage(self):
        assert JobProgress(total_files=2, completed_files=1, failed_files=1).percentage == 100
        assert JobProgress(total_files=2, completed_files=1).percentage == 0
        assert JobProgress().percentage == 0

    def test_event_payload(self):
        job = TransferJob(
            id="job-1",
            kind=JobKind.CROSS_STORAGE,
            tasks=[TransferTask("local:d/a", "s3:b/a", size=3, error=None)],
        )
        event = job.to_event()
        assert event["jobId"] == "job-1"
        assert event["status"] == "active"
        assert event["files"] == [
            {"file": "s3:b/a", "loaded": 0, "total": 3, "status": "queued", "error": None}
        ]
        assert job.to_dict()["type"] == "cross-storage"
        assert job.to_dict()["startedAt"] is None

    def test_status_terminality(self):
        assert TaskStatus.ERROR.is_terminal
        assert not TaskStatus.TRANSFERRING.is_terminal
