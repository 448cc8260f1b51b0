"""
Per-file transfer execution.

Four transfer shapes, one per (source type, destination type) pair, are
held in a dispatch table. Each shape streams source chunks through the
progress transform into the destination:

    object -> local    GET (with retry) -> progress -> file write
    local  -> object   file read -> progress -> streaming/multipart upload
    local  -> local    file read -> progress -> file write
    object -> object   HEAD for size, then a server-side copy

The conflict policy is applied once per task before any I/O.
"""

import posixpath
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass

from crossload.core.cancellation import CancellationToken
from crossload.core.config import TransferConfig
from crossload.core.exceptions import UnsupportedTransferError
from crossload.core.logger import get_logger
from crossload.core.paths import (
    format_transfer_path,
    is_marker,
    parse_transfer_path,
    rename_candidate,
    validate_relative_path,
)
from crossload.storage.registry import StorageRegistry
from crossload.transfer.limiter import ConcurrencyLimiter
from crossload.transfer.progress import ProgressCallback, ProgressReporter, track_progress
from crossload.transfer.retry import retry_network_operation
from crossload.types import ConflictResolution, LocationType, TransferTask

logger = get_logger(__name__)

TaskFn = Callable[[TransferTask, ProgressCallback, CancellationToken], Awaitable[None]]


@dataclass
class TransferContext:
    """Everything one shape needs to move one file."""

    task: TransferTask
    source_id: str
    source_path: str
    destination_id: str
    destination_path: str
    reporter: ProgressReporter
    token: CancellationToken


class ShapeExecutor(ABC):
    """One transfer shape."""

    source_type: LocationType
    destination_type: LocationType

    def __init__(
        self,
        registry: StorageRegistry,
        config: TransferConfig,
        metadata_limiter: ConcurrencyLimiter,
    ):
        self.registry = registry
        self.config = config
        self.metadata_limiter = metadata_limiter

    @abstractmethod
    async def transfer(self, ctx: TransferContext) -> None:
        """Move the bytes; on return the reporter has flushed the final total."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.source_type.value}->{self.destination_type.value})"


class ObjectToLocalExecutor(ShapeExecutor):
    source_type = LocationType.S3
    destination_type = LocationType.LOCAL

    async def transfer(self, ctx: TransferContext) -> None:
        local = self.registry.local
        store = self.registry.object_store

        if ctx.task.is_marker or is_marker(ctx.source_path):
            # The directory is the payload; the marker itself is not materialized
            await local.makedirs(ctx.destination_id, posixpath.dirname(ctx.destination_path))
            ctx.reporter.flush()
            return

        await local.make_parent_dirs(ctx.destination_id, ctx.destination_path)
        reader = await retry_network_operation(
            lambda: store.open_object(ctx.source_id, ctx.source_path),
            name=f"GET {ctx.source_id}/{ctx.source_path}",
            max_retries=self.config.max_retries,
            token=ctx.token,
            base_delay=self.config.retry_base_delay_seconds,
        )
        try:
            chunks = track_progress(
                reader.iter_chunks(self.config.chunk_size), ctx.reporter, ctx.token
            )
            async with aclosing(chunks):
                await local.write_stream(ctx.destination_id, ctx.destination_path, chunks)
        finally:
            await reader.close()


class LocalToObjectExecutor(ShapeExecutor):
    source_type = LocationType.LOCAL
    destination_type = LocationType.S3

    async def transfer(self, ctx: TransferContext) -> None:
        store = self.registry.object_store

        if ctx.task.is_marker:
            await store.put_object(ctx.destination_id, ctx.destination_path, b"")
            ctx.reporter.flush()
            return

        chunks = track_progress(
            self.registry.local.read_chunks(
                ctx.source_id, ctx.source_path, self.config.chunk_size
            ),
            ctx.reporter,
            ctx.token,
        )
        async with aclosing(chunks):
            await store.upload_stream(
                ctx.destination_id,
                ctx.destination_path,
                chunks,
                part_size=self.config.multipart_part_size,
            )


class LocalToLocalExecutor(ShapeExecutor):
    source_type = LocationType.LOCAL
    destination_type = LocationType.LOCAL

    async def transfer(self, ctx: TransferContext) -> None:
        local = self.registry.local
        await local.make_parent_dirs(ctx.destination_id, ctx.destination_path)

        chunks = track_progress(
            local.read_chunks(ctx.source_id, ctx.source_path, self.config.chunk_size),
            ctx.reporter,
            ctx.token,
        )
        async with aclosing(chunks):
            await local.write_stream(ctx.destination_id, ctx.destination_path, chunks)


class ObjectToObjectExecutor(ShapeExecutor):
    source_type = LocationType.S3
    destination_type = LocationType.S3

    async def transfer(self, ctx: TransferContext) -> None:
        store = self.registry.object_store

        async with self.metadata_limiter:
            size = await store.head(ctx.source_id, ctx.source_path)
        ctx.task.size = size

        ctx.token.raise_if_cancelled()
        await store.copy_object(
            ctx.source_id, ctx.source_path, ctx.destination_id, ctx.destination_path
        )
        # No bytes pass through this process: one jump to the full size
        ctx.reporter.jump(size)


SHAPES: tuple[type[ShapeExecutor], ...] = (
    ObjectToLocalExecutor,
    LocalToObjectExecutor,
    LocalToLocalExecutor,
    ObjectToObjectExecutor,
)


def parse_location_path(transfer_path: str) -> tuple[LocationType, str, str]:
    """``"s3:bucket/a/b.txt"`` -> ``(LocationType.S3, "bucket", "a/b.txt")``"""
    type_part, location_id, file_path = parse_transfer_path(transfer_path)
    return LocationType.parse(type_part), location_id, validate_relative_path(file_path)


class TransferExecutor:
    """
    Dispatches tasks to the shape for their (source, destination) types.

    Example:
        >>> executor = TransferExecutor(registry, config, metadata_limiter)
        >>> await executor.execute(task, on_progress, token, ConflictResolution.SKIP)
    """

    def __init__(
        self,
        registry: StorageRegistry,
        config: TransferConfig | None = None,
        metadata_limiter: ConcurrencyLimiter | None = None,
    ):
        self.registry = registry
        self.config = config or TransferConfig()
        self.metadata_limiter = metadata_limiter or ConcurrencyLimiter(
            self.config.max_metadata_operations, name="metadata"
        )
        self._shapes: dict[tuple[LocationType, LocationType], ShapeExecutor] = {
            (shape.source_type, shape.destination_type): shape(
                registry, self.config, self.metadata_limiter
            )
            for shape in SHAPES
        }

    def shape_for(
        self, source_type: LocationType, destination_type: LocationType
    ) -> ShapeExecutor:
        try:
            shape = self._shapes[(source_type, destination_type)]
        except KeyError:
            msg = f"Unsupported transfer: {source_type.value} -> {destination_type.value}"
            raise UnsupportedTransferError(msg) from None
        if not (self.registry.supports(source_type) and self.registry.supports(destination_type)):
            msg = (
                f"No storage backend for transfer: "
                f"{source_type.value} -> {destination_type.value}"
            )
            raise UnsupportedTransferError(msg)
        return shape

    async def exists(self, transfer_path: str) -> bool:
        location_type, location_id, path = parse_location_path(transfer_path)
        if location_type.is_object_storage:
            async with self.metadata_limiter:
                return await self.registry.object_store.exists(location_id, path)
        return await self.registry.local.exists(location_id, path)

    async def delete(self, transfer_path: str) -> bool:
        """
        Remove one file or object.

        Returns:
            False if it was already gone
        """
        location_type, location_id, path = parse_location_path(transfer_path)
        if location_type.is_object_storage:
            if not await self.exists(transfer_path):
                return False
            await self.registry.object_store.delete_object(location_id, path)
            return True
        return await self.registry.local.remove(location_id, path)

    async def _free_destination(self, transfer_path: str) -> str:
        """First of ``name``, ``name-1``, ``name-2``... that does not exist yet."""
        if not await self.exists(transfer_path):
            return transfer_path
        type_part, location_id, path = parse_transfer_path(transfer_path)
        counter = 1
        while True:
            renamed = rename_candidate(path, counter)
            candidate = format_transfer_path(type_part, location_id, renamed)
            if not await self.exists(candidate):
                return candidate
            counter += 1

    async def execute(
        self,
        task: TransferTask,
        on_progress: ProgressCallback,
        token: CancellationToken,
        conflict_resolution: ConflictResolution = ConflictResolution.OVERWRITE,
    ) -> None:
        """
        Transfer one task.

        A skipped task (``skip`` policy, destination present) returns with
        ``task.size`` set to 0 and nothing written.

        Raises:
            UnsupportedTransferError: No shape for the location types
            TransferCancelledError: The token fired
            CrossloadError: Categorized storage failures
        """
        token.raise_if_cancelled()
        source_type, source_id, source_path = parse_location_path(task.source_path)
        destination_type, destination_id, _ = parse_location_path(task.destination_path)
        shape = self.shape_for(source_type, destination_type)

        if conflict_resolution is ConflictResolution.SKIP:
            if await self.exists(task.destination_path):
                logger.info(f"Skipping existing destination: {task.destination_path}")
                task.size = 0
                task.loaded = 0
                return
        elif conflict_resolution is ConflictResolution.RENAME and not task.is_marker:
            renamed = await self._free_destination(task.destination_path)
            if renamed != task.destination_path:
                logger.info(f"Renaming {task.destination_path} -> {renamed}")
                task.destination_path = renamed

        _, _, destination_path = parse_location_path(task.destination_path)
        token.raise_if_cancelled()
        await shape.transfer(
            TransferContext(
                task=task,
                source_id=source_id,
                source_path=source_path,
                destination_id=destination_id,
                destination_path=destination_path,
                reporter=ProgressReporter(on_progress, self.config.progress_threshold_bytes),
                token=token,
            )
        )
