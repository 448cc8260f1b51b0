"""
End-to-end tests for TransferService over a real filesystem and the
in-memory object store.
"""

import asyncio
import contextlib

import pytest

from crossload.core.config import TransferConfig
from crossload.core.exceptions import (
    InvalidJobStateError,
    JobNotFoundError,
    PathTooLongError,
    PathTraversalError,
    SourceFileNotFoundError,
    UnsupportedTransferError,
    ValidationError,
)
from crossload.storage.memory import InMemoryObjectStorage
from crossload.storage.registry import StorageRegistry
from crossload.transfer.service import TransferService
from crossload.types import (
    ConflictResolution,
    Location,
    LocationType,
    SelectionItem,
    TransferRequest,
)


def request(source, destination, items, resolution="overwrite"):
    def location(value):
        location_type, _, rest = value.partition(":")
        location_id, _, path = rest.partition("/")
        return {"type": location_type, "locationId": location_id, "path": path}

    body = {
        "source": location(source),
        "destination": location(destination),
        "items": [
            {"path": item.rstrip("/"), "type": "directory" if item.endswith("/") else "file"}
            for item in items
        ],
    }
    if resolution is not None:
        body["conflictResolution"] = resolution
    return body


@pytest.fixture
def projects(data_dir, tree):
    return tree(
        data_dir / "projects",
        {
            "README.md": b"# readme",
            "models/config.json": b"{}",
            "models/weights/w.bin": b"\x00" * 64,
            "models/empty/": None,
        },
    )


async def run_to_completion(service, body):
    response = await service.start_transfer(body)
    await service.queue.wait(response["jobId"], timeout=10)
    return response, service.get_job(response["jobId"])


class TestCheckConflicts:
    @pytest.mark.asyncio
    async def test_reports_overlaps(self, service, projects, backup_dir, tree):
        tree(backup_dir / "restore", {"README.md": "old", "models/config.json": "old"})

        report = await service.check_conflicts(
            request(
                "local:data/projects",
                "local:backup/restore",
                ["models/", "README.md"],
                resolution=None,
            )
        )

        assert report == {
            "conflicts": ["models/config.json", "README.md"],
            "nonConflicting": ["models/weights/w.bin"],
        }

    @pytest.mark.asyncio
    async def test_large_folder_warning(self, registry, projects):
        config = TransferConfig(
            local_locations=registry.local.locations, large_folder_file_threshold=3
        )
        async with TransferService(config, registry=registry) as service:
            report = await service.check_conflicts(
                request("local:data/projects", "s3:bucket/", ["models/", "README.md"])
            )

        # models/empty/.s3keep is synthesized but not counted
        assert report["warning"]["fileCount"] == 3
        assert report["warning"]["message"].startswith("This operation will transfer 3 files")


class TestStartTransfer:
    @pytest.mark.asyncio
    async def test_local_to_object_store(self, service, projects, object_store):
        response, job = await run_to_completion(
            service, request("local:data/projects", "s3:bucket/2024", ["models/", "README.md"])
        )

        assert response["fileCount"] == 4
        assert response["totalSize"] == 2 + 64 + 8
        assert response["sseUrl"] == f"/transfer/progress/{response['jobId']}"
        assert job["status"] == "completed"
        assert job["progress"]["percentage"] == 100
        assert object_store.keys("bucket") == [
            "2024/README.md",
            "2024/models/config.json",
            "2024/models/empty/.s3keep",
            "2024/models/weights/w.bin",
        ]

    @pytest.mark.asyncio
    async def test_empty_directory_round_trip(self, service, projects, backup_dir):
        await run_to_completion(service, request("local:data/projects", "s3:bucket/", ["models/"]))
        _, job = await run_to_completion(
            service, request("s3:bucket/", "local:backup/", ["models/"])
        )

        assert job["status"] == "completed"
        restored = backup_dir / "models" / "empty"
        assert restored.is_dir()
        assert list(restored.iterdir()) == []
        assert (backup_dir / "models" / "weights" / "w.bin").read_bytes() == b"\x00" * 64

    @pytest.mark.asyncio
    async def test_skip_keeps_existing_destination(self, service, data_dir, backup_dir, tree):
        tree(data_dir, {"a.txt": "new-a", "b.txt": "new-b", "c.txt": "new-c"})
        tree(backup_dir, {"b.txt": "old-b"})

        _, job = await run_to_completion(
            service,
            request("local:data/", "local:backup/", ["a.txt", "b.txt", "c.txt"], "skip"),
        )

        assert job["status"] == "completed"
        assert (backup_dir / "a.txt").read_text() == "new-a"
        assert (backup_dir / "b.txt").read_text() == "old-b"
        assert (backup_dir / "c.txt").read_text() == "new-c"
        skipped = next(f for f in job["files"] if f["sourcePath"] == "local:data/b.txt")
        assert skipped["size"] == 0
        assert skipped["status"] == "completed"

    @pytest.mark.asyncio
    async def test_partial_failure_reported_per_file(self, service, data_dir, backup_dir, tree):
        tree(data_dir, {"ok.txt": "ok", "blocked.txt": "b"})
        (backup_dir / "blocked.txt").mkdir()

        _, job = await run_to_completion(
            service, request("local:data/", "local:backup/", ["ok.txt", "blocked.txt"])
        )

        assert job["status"] == "failed"
        assert job["progress"]["completedFiles"] == 1
        assert job["progress"]["failedFiles"] == 1
        failed = next(f for f in job["files"] if f["status"] == "error")
        assert failed["destinationPath"] == "local:backup/blocked.txt"
        assert failed["error"]

    @pytest.mark.asyncio
    async def test_progress_stream_ends_with_terminal_event(self, service, projects):
        response = await service.start_transfer(
            request("local:data/projects", "s3:archive/", ["README.md"])
        )
        events = [event async for event in service.progress_stream(response["jobId"])]

        assert events[-1]["status"] == "completed"
        assert events[-1]["files"][0]["loaded"] == 8
        assert service.progress_event(response["jobId"]) == events[-1]


class TestValidation:
    @pytest.mark.asyncio
    async def test_empty_selection(self, service):
        with pytest.raises(ValidationError, match="No items selected"):
            await service.start_transfer(request("local:data/", "s3:bucket/", []))

    @pytest.mark.asyncio
    async def test_selection_without_files(self, service, data_dir, tree):
        tree(data_dir, {"hollow/": None})
        with pytest.raises(ValidationError, match="No files found to transfer"):
            await service.start_transfer(request("local:data/", "local:backup/", ["hollow/"]))
        assert service.queue.jobs() == []

    @pytest.mark.asyncio
    async def test_missing_file_creates_no_job(self, service, projects):
        with pytest.raises(SourceFileNotFoundError):
            await service.start_transfer(
                request("local:data/projects", "s3:bucket/", ["README.md", "missing.txt"])
            )
        assert service.queue.jobs() == []

    @pytest.mark.asyncio
    async def test_traversal(self, service):
        with pytest.raises(PathTraversalError):
            await service.start_transfer(request("local:data/", "s3:bucket/", ["../secret"]))

    @pytest.mark.asyncio
    async def test_destination_traversal_creates_no_job(self, service, projects, backup_dir):
        with pytest.raises(PathTraversalError):
            await service.start_transfer(
                request("local:data/projects", "local:backup/../escape", ["README.md"])
            )
        assert service.queue.jobs() == []
        assert not (backup_dir.parent / "escape").exists()

    @pytest.mark.asyncio
    async def test_source_traversal_creates_no_job(self, service, projects):
        with pytest.raises(PathTraversalError):
            await service.start_transfer(
                request("local:data/projects/../..", "s3:bucket/", ["README.md"])
            )
        assert service.queue.jobs() == []

    @pytest.mark.asyncio
    async def test_traversal_in_prebuilt_request(self, service, projects):
        prebuilt = TransferRequest(
            source=Location(LocationType.LOCAL, "data", "projects"),
            destination=Location(LocationType.S3, "bucket", "../other-bucket"),
            items=[SelectionItem("README.md")],
            conflict_resolution=ConflictResolution.SKIP,
        )
        with pytest.raises(PathTraversalError):
            await service.check_conflicts(prebuilt)
        with pytest.raises(PathTraversalError):
            await service.start_transfer(prebuilt)
        assert service.queue.jobs() == []

    @pytest.mark.asyncio
    async def test_destination_too_long_creates_no_job(self, service, projects):
        long_prefix = "x" * (service.config.max_path_length + 1)
        with pytest.raises(PathTooLongError):
            await service.start_transfer(
                request("local:data/projects", f"s3:bucket/{long_prefix}", ["README.md"])
            )
        assert service.queue.jobs() == []

    @pytest.mark.asyncio
    async def test_unknown_local_location(self, service):
        with pytest.raises(ValidationError, match="Unknown local location"):
            await service.start_transfer(request("local:nowhere/", "s3:bucket/", ["a.txt"]))

    @pytest.mark.asyncio
    async def test_missing_resolution(self, service):
        with pytest.raises(ValidationError, match="conflictResolution"):
            await service.start_transfer(
                request("local:data/", "s3:bucket/", ["a.txt"], resolution=None)
            )

    @pytest.mark.asyncio
    async def test_no_object_store(self, config, local_storage):
        async with TransferService(config, registry=StorageRegistry(local_storage)) as service:
            with pytest.raises(UnsupportedTransferError):
                await service.start_transfer(request("local:data/", "s3:bucket/", ["a.txt"]))


class TrackingObjectStorage(InMemoryObjectStorage):
    """Records how many HEAD/LIST calls are in flight at once."""

    def __init__(self, buckets):
        super().__init__(buckets)
        self.in_flight = 0
        self.peak = 0

    @contextlib.asynccontextmanager
    async def _tracked(self):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            # Hold the call open so overlapping callers would be observed
            await asyncio.sleep(0.005)
            yield
        finally:
            self.in_flight -= 1

    async def list_page(self, *args, **kwargs):
        async with self._tracked():
            return await super().list_page(*args, **kwargs)

    async def head(self, bucket, key):
        async with self._tracked():
            return await super().head(bucket, key)


async def metadata_peak(local_storage, max_metadata_operations):
    store = TrackingObjectStorage(["bucket", "archive"])
    names = [f"f{i}.txt" for i in range(6)]
    for name in names:
        await store.put_object("bucket", f"src/{name}", b"payload")

    config = TransferConfig(
        local_locations=local_storage.locations,
        max_concurrent_transfers=4,
        max_metadata_operations=max_metadata_operations,
    )
    registry = StorageRegistry(local_storage, store)
    async with TransferService(config, registry=registry) as service:
        responses = [
            await service.start_transfer(request("s3:bucket/src", f"s3:archive/copy{j}", names))
            for j in range(2)
        ]
        await asyncio.gather(
            *(
                service.check_conflicts(
                    request("s3:bucket/", "s3:archive/", ["src/"], resolution=None)
                )
                for _ in range(3)
            )
        )
        jobs = [await service.queue.wait(r["jobId"], timeout=10) for r in responses]

    assert [job.status.value for job in jobs] == ["completed", "completed"]
    assert len(store.keys("archive")) == 12
    return store.peak


class TestMetadataLimits:
    @pytest.mark.asyncio
    async def test_head_and_list_bounded_across_jobs(self, local_storage):
        assert await metadata_peak(local_storage, max_metadata_operations=1) == 1

    @pytest.mark.asyncio
    async def test_looser_limit_allows_overlap(self, local_storage):
        assert await metadata_peak(local_storage, max_metadata_operations=4) > 1


class TestJobs:
    @pytest.mark.asyncio
    async def test_unknown_job(self, service):
        with pytest.raises(JobNotFoundError):
            service.get_job("missing")
        with pytest.raises(JobNotFoundError):
            async for _ in service.progress_stream("missing"):
                pass
        assert service.cancel("missing") is False

    @pytest.mark.asyncio
    async def test_cleanup_requires_cancelled_job(self, service, projects):
        response, _ = await run_to_completion(
            service, request("local:data/projects", "s3:bucket/", ["README.md"])
        )
        with pytest.raises(InvalidJobStateError, match="Job must be cancelled"):
            await service.cleanup(response["jobId"])

    @pytest.mark.asyncio
    async def test_cleanup_removes_destination_files(self, service, projects, backup_dir, tree):
        response = await service.start_transfer(
            request("local:data/projects", "local:backup/", ["models/", "README.md"])
        )
        assert service.cancel(response["jobId"]) is True
        # Stand-ins for files written before the cancel landed
        tree(backup_dir, {"README.md": "partial", "models/config.json": "partial"})

        result = await service.cleanup(response["jobId"])

        assert result == {"filesDeleted": 3, "errors": []}
        assert not (backup_dir / "README.md").exists()
        assert not (backup_dir / "models" / "config.json").exists()
        assert service.get_job(response["jobId"])["status"] == "cancelled"
