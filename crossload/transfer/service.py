"""
Transfer Service - Cross-storage file transfers.

The entry point callers use. Wires the scanner, expander, conflict analyzer,
executor and queue together and speaks the request/response shapes of the
transfer API:

    check_conflicts(request)  -> {conflicts, nonConflicting, warning?}
    start_transfer(request)   -> {jobId, sseUrl, fileCount, totalSize}
    get_job(job_id)           -> job payload
    progress_stream(job_id)   -> async iterator of progress events
    cancel(job_id)            -> bool
    cleanup(job_id)           -> {filesDeleted, errors}

Usage:
    >>> config = TransferConfig.from_env()
    >>> async with TransferService.from_config(config) as service:
    ...     response = await service.start_transfer({
    ...         "source": {"type": "local", "locationId": "data", "path": "projects"},
    ...         "destination": {"type": "s3", "locationId": "archive", "path": "2024"},
    ...         "items": [{"path": "models", "type": "directory"}],
    ...         "conflictResolution": "skip",
    ...     })
    ...     async for event in service.progress_stream(response["jobId"]):
    ...         print(event["progress"]["percentage"])
"""

import functools
from collections.abc import AsyncIterator
from typing import Any

from crossload.core.config import TransferConfig
from crossload.core.exceptions import (
    CrossloadError,
    InvalidJobStateError,
    JobNotFoundError,
    ValidationError,
    classify_error,
)
from crossload.core.logger import get_logger
from crossload.core.paths import (
    check_path_length,
    format_transfer_path,
    join_path,
    validate_relative_path,
)
from crossload.storage.registry import StorageRegistry
from crossload.transfer.conflicts import ConflictAnalyzer
from crossload.transfer.executor import TransferExecutor
from crossload.transfer.expander import SelectionExpander
from crossload.transfer.queue import TransferQueue
from crossload.transfer.scanner import DirectoryScanner
from crossload.types import (
    FileRecord,
    JobKind,
    JobStatus,
    Location,
    TransferJob,
    TransferRequest,
    TransferTask,
)

logger = get_logger(__name__)

PROGRESS_URL_TEMPLATE = "/transfer/progress/{job_id}"


class TransferService:
    """
    Cross-storage transfer engine facade.

    Args:
        config: Engine configuration
        registry: Storage backends (built from ``config`` when omitted)
        queue: Job queue (built from ``config`` when omitted)
    """

    def __init__(
        self,
        config: TransferConfig | None = None,
        registry: StorageRegistry | None = None,
        queue: TransferQueue | None = None,
    ):
        self.config = config or TransferConfig()
        self.registry = registry or StorageRegistry.from_config(self.config)
        self.queue = queue or TransferQueue.from_config(self.config)

        limiter = self.queue.metadata_limiter
        self.scanner = DirectoryScanner(self.registry, limiter, self.config.max_path_length)
        self.expander = SelectionExpander(self.registry, self.scanner, limiter)
        self.analyzer = ConflictAnalyzer(
            self.scanner,
            file_threshold=self.config.large_folder_file_threshold,
            size_threshold=self.config.large_folder_size_threshold,
        )
        self.executor = TransferExecutor(self.registry, self.config, limiter)

    @classmethod
    def from_config(cls, config: TransferConfig) -> "TransferService":
        return cls(config)

    async def __aenter__(self) -> "TransferService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _parse(
        self, request: TransferRequest | dict[str, Any], require_resolution: bool
    ) -> TransferRequest:
        if isinstance(request, TransferRequest):
            return request
        return TransferRequest.from_dict(request, require_resolution=require_resolution)

    def _check_supported(self, *locations: Location) -> None:
        for location in locations:
            validate_relative_path(location.path)
            if location.type.is_object_storage:
                # Raises UnsupportedTransferError when no object store is configured
                _ = self.registry.object_store
            else:
                self.registry.local.base_dir(location.location_id)

    async def check_conflicts(self, request: TransferRequest | dict[str, Any]) -> dict[str, Any]:
        """
        Compare a selection against the destination tree.

        The result is advisory; the transfer re-expands the selection and
        applies its conflict policy per file when it runs.
        """
        parsed = self._parse(request, require_resolution=False)
        self._check_supported(parsed.source, parsed.destination)

        files = await self.expander.expand(parsed.items, parsed.source, parsed.destination.type)
        report = await self.analyzer.analyze(files, parsed.destination)
        return report.to_dict()

    def build_tasks(
        self, files: list[FileRecord], source: Location, destination: Location
    ) -> list[TransferTask]:
        tasks = []
        for record in files:
            source_path = join_path(source.path, record.path)
            destination_path = join_path(destination.path, record.path)
            check_path_length(destination_path, self.config.max_path_length)
            tasks.append(
                TransferTask(
                    source_path=format_transfer_path(
                        source.type.value, source.location_id, source_path
                    ),
                    destination_path=format_transfer_path(
                        destination.type.value, destination.location_id, destination_path
                    ),
                    size=record.size,
                    is_marker=record.is_marker,
                )
            )
        return tasks

    async def start_transfer(self, request: TransferRequest | dict[str, Any]) -> dict[str, Any]:
        """
        Validate, expand and queue a transfer.

        Every validation failure is raised before any task exists.

        Raises:
            ValidationError: Malformed request, empty selection, unknown location
            PathTraversalError / PathTooLongError: Invalid paths
            NotFoundError / AccessDeniedError / PathIsWrongTypeError: Bad selection
        """
        parsed = self._parse(request, require_resolution=True)
        self._check_supported(parsed.source, parsed.destination)
        self.executor.shape_for(parsed.source.type, parsed.destination.type)

        files = await self.expander.expand(parsed.items, parsed.source, parsed.destination.type)
        if not files:
            msg = "No files found to transfer"
            raise ValidationError(msg, field="items")
        tasks = self.build_tasks(files, parsed.source, parsed.destination)

        self.queue.purge_expired()
        job_id = self.queue.submit(
            JobKind.CROSS_STORAGE,
            tasks,
            functools.partial(
                self.executor.execute, conflict_resolution=parsed.conflict_resolution
            ),
        )
        return {
            "jobId": job_id,
            "sseUrl": PROGRESS_URL_TEMPLATE.format(job_id=job_id),
            "fileCount": len(tasks),
            "totalSize": sum(t.size for t in tasks),
        }

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def _job(self, job_id: str) -> TransferJob:
        job = self.queue.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self._job(job_id).to_dict()

    def progress_event(self, job_id: str) -> dict[str, Any]:
        return self._job(job_id).to_event()

    async def progress_stream(self, job_id: str) -> AsyncIterator[dict[str, Any]]:
        self._job(job_id)
        async for event in self.queue.subscribe(job_id):
            yield event

    def cancel(self, job_id: str) -> bool:
        return self.queue.cancel(job_id)

    async def cleanup(self, job_id: str) -> dict[str, Any]:
        """
        Delete every destination file of a cancelled job.

        Files already gone count as deleted; per-file failures are collected
        and returned rather than raised.

        Raises:
            JobNotFoundError: Unknown job
            InvalidJobStateError: The job was not cancelled
        """
        job = self._job(job_id)
        if job.status is not JobStatus.CANCELLED:
            msg = "Job must be cancelled to cleanup files"
            raise InvalidJobStateError(msg, job_id=job_id, status=job.status.value)

        # In-flight tasks must finish unwinding before their files are removed
        await self.queue.wait(job_id)

        deleted = 0
        errors: list[str] = []
        for task in job.tasks:
            try:
                await self.executor.delete(task.destination_path)
                deleted += 1
            except Exception as e:
                error = e if isinstance(e, CrossloadError) else classify_error(e)
                logger.warning(f"Cleanup failed for {task.destination_path}: {error.message}")
                errors.append(f"{task.destination_path}: {error.message}")

        logger.info(f"Cleanup of job {job_id}: {deleted} file(s) deleted, {len(errors)} error(s)")
        return {"filesDeleted": deleted, "errors": errors}

    async def close(self) -> None:
        await self.queue.shutdown()
        await self.registry.close()
