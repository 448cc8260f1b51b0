"""
Transfer job queue.

Owns every job and its tasks for their whole lifetime. Tasks are dispatched
in submission order, gated by the shared data-transfer limiter, and may
finish in any order. Each job gets its own CancellationToken; there is no
process-wide controller shared between jobs.

Job state machine:

    ACTIVE --all tasks terminal, none failed--> COMPLETED
    ACTIVE --all tasks terminal, some failed--> FAILED
    ACTIVE --cancel()-------------------------> CANCELLED

Terminal states are final. Cancelling abandons unstarted tasks (they stay
QUEUED) and signals in-flight ones to abort at their next chunk boundary.
Nothing already written is rolled back.

Usage:
    >>> queue = TransferQueue(max_concurrent_transfers=2)
    >>> job_id = queue.submit(JobKind.CROSS_STORAGE, tasks, executor)
    >>> async for event in queue.subscribe(job_id):
    ...     print(event["progress"]["percentage"])
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from crossload.core.cancellation import CancellationToken
from crossload.core.config import TransferConfig
from crossload.core.exceptions import (
    CrossloadError,
    InvalidJobStateError,
    JobNotFoundError,
    TransferCancelledError,
    classify_error,
    sanitize_error_for_logging,
)
from crossload.monitoring.logging import bind_transfer_context
from crossload.transfer.executor import TaskFn
from crossload.transfer.limiter import ConcurrencyLimiter
from crossload.types import JobKind, JobStatus, TaskStatus, TransferJob, TransferTask

logger = logging.getLogger(__name__)

CANCELLED_TASK_MESSAGE = "Transfer cancelled"


@dataclass
class _JobState:
    """Queue-private bookkeeping for one job."""

    job: TransferJob
    token: CancellationToken = field(default_factory=CancellationToken)
    runner: asyncio.Task | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)
    subscribers: list[asyncio.Queue] = field(default_factory=list)
    finished_at: float | None = None


class TransferQueue:
    """
    Schedules transfer jobs under two global concurrency limits.

    Args:
        max_concurrent_transfers: Tasks moving data at once, across all jobs
        max_metadata_operations: HEAD/LIST calls at once, across all jobs
        job_ttl_seconds: How long finished jobs stay queryable

    Observers are plain objects implementing any of ``on_job_submitted(job)``,
    ``on_task_update(job, task)``, ``on_task_finished(job, task)`` and
    ``on_job_finished(job)``; coroutine handlers are scheduled on the loop.
    """

    def __init__(
        self,
        max_concurrent_transfers: int = 2,
        max_metadata_operations: int = 10,
        job_ttl_seconds: float = 3600.0,
    ):
        self.transfer_limiter = ConcurrencyLimiter(max_concurrent_transfers, name="transfers")
        self._metadata_limiter = ConcurrencyLimiter(max_metadata_operations, name="metadata")
        self.job_ttl_seconds = job_ttl_seconds
        self._jobs: dict[str, _JobState] = {}
        self._observers: list[Any] = []
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: TransferConfig) -> "TransferQueue":
        return cls(
            max_concurrent_transfers=config.max_concurrent_transfers,
            max_metadata_operations=config.max_metadata_operations,
            job_ttl_seconds=config.job_ttl_seconds,
        )

    @property
    def metadata_limiter(self) -> ConcurrencyLimiter:
        """Limiter shared by every metadata call of every job."""
        return self._metadata_limiter

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(self, observer: Any) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: Any) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, event_name: str, *args) -> None:
        """Notify all observers of an event."""
        for observer in self._observers:
            handler = getattr(observer, event_name, None)
            if handler is None:
                continue
            try:
                result = handler(*args)
                if inspect.iscoroutine(result):
                    background = asyncio.ensure_future(result)
                    self._background.add(background)
                    background.add_done_callback(self._background.discard)
            except Exception as e:
                logger.warning(f"Observer {type(observer).__name__}.{event_name} error: {e}")

    def _publish(self, state: _JobState) -> None:
        """Push the current job snapshot to subscribers; close them once terminal."""
        if not state.subscribers:
            return
        event = state.job.to_event()
        terminal = state.job.status.is_terminal
        for queue in state.subscribers:
            queue.put_nowait(event)
            if terminal:
                queue.put_nowait(None)
        if terminal:
            state.subscribers.clear()

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def submit(self, kind: JobKind, tasks: list[TransferTask], executor: TaskFn) -> str:
        """
        Create a job from ``tasks`` and start dispatching it.

        Must be called from a running event loop.

        Returns:
            The new job id
        """
        job = TransferJob(id=str(uuid.uuid4()), kind=kind, tasks=list(tasks))
        state = _JobState(job=job)
        self._jobs[job.id] = state

        logger.info(
            f"Job {job.id} submitted: {len(job.tasks)} file(s), "
            f"{sum(t.size for t in job.tasks)} bytes"
        )
        self._notify("on_job_submitted", job)
        state.runner = asyncio.create_task(self._run_job(state, executor))
        return job.id

    def get(self, job_id: str) -> TransferJob | None:
        state = self._jobs.get(job_id)
        return state.job if state else None

    def jobs(self) -> list[TransferJob]:
        return [state.job for state in self._jobs.values()]

    def _require(self, job_id: str) -> _JobState:
        state = self._jobs.get(job_id)
        if state is None:
            raise JobNotFoundError(job_id)
        return state

    def cancel(self, job_id: str) -> bool:
        """
        Cancel an active job.

        Returns:
            False if the job is unknown or already terminal
        """
        state = self._jobs.get(job_id)
        if state is None or state.job.status.is_terminal:
            return False

        state.token.cancel()
        job = state.job
        job.status = JobStatus.CANCELLED
        job.completed_at = datetime.now(UTC)
        job.error = state.token.reason
        logger.info(f"Job {job_id} cancelled")

        self._notify("on_job_finished", job)
        self._publish(state)
        return True

    async def wait(self, job_id: str, timeout: float | None = None) -> TransferJob:
        """
        Wait until the job is terminal and none of its tasks is still running.

        Raises:
            JobNotFoundError: Unknown job id
            TimeoutError: The timeout elapsed first
        """
        state = self._require(job_id)
        await asyncio.wait_for(state.done.wait(), timeout=timeout)
        return state.job

    async def subscribe(self, job_id: str) -> AsyncIterator[dict[str, Any]]:
        """
        Yield progress events for a job, starting with its current snapshot.

        The iterator ends after the terminal snapshot.

        Raises:
            JobNotFoundError: Unknown job id
        """
        state = self._require(job_id)
        queue: asyncio.Queue = asyncio.Queue()
        queue.put_nowait(state.job.to_event())
        if state.job.status.is_terminal:
            queue.put_nowait(None)
        else:
            state.subscribers.append(queue)

        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            if queue in state.subscribers:
                state.subscribers.remove(queue)

    def remove(self, job_id: str) -> bool:
        """
        Forget a finished job.

        Raises:
            InvalidJobStateError: The job is still active
        """
        state = self._jobs.get(job_id)
        if state is None:
            return False
        if not state.job.status.is_terminal:
            msg = "Cannot remove an active job"
            raise InvalidJobStateError(msg, job_id=job_id, status=state.job.status.value)
        del self._jobs[job_id]
        return True

    def purge_expired(self, now: float | None = None) -> int:
        """
        Drop finished jobs older than ``job_ttl_seconds``.

        Returns:
            Number of jobs removed
        """
        now = time.monotonic() if now is None else now
        expired = [
            job_id
            for job_id, state in self._jobs.items()
            if state.finished_at is not None and now - state.finished_at >= self.job_ttl_seconds
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug(f"Purged {len(expired)} expired job(s)")
        return len(expired)

    async def shutdown(self) -> None:
        """Cancel every active job and wait for in-flight tasks to unwind."""
        for job_id, state in list(self._jobs.items()):
            if not state.job.status.is_terminal:
                self.cancel(job_id)
        runners = [s.runner for s in self._jobs.values() if s.runner and not s.runner.done()]
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_job(self, state: _JobState, executor: TaskFn) -> None:
        job = state.job
        job.started_at = datetime.now(UTC)
        running: set[asyncio.Task] = set()

        try:
            for task in job.tasks:
                if state.token.cancelled:
                    break
                await self.transfer_limiter.acquire()
                if state.token.cancelled:
                    self.transfer_limiter.release()
                    break
                # Status flips before yielding so dispatch order is observable
                task.status = TaskStatus.TRANSFERRING
                worker = asyncio.create_task(self._run_task(state, task, executor))
                running.add(worker)
                worker.add_done_callback(running.discard)

            if running:
                await asyncio.gather(*running, return_exceptions=True)
        finally:
            self._finish(state)

    async def _run_task(self, state: _JobState, task: TransferTask, executor: TaskFn) -> None:
        job = state.job
        started = time.monotonic()
        try:
            self._task_updated(state, task)
            with bind_transfer_context(job_id=job.id, task_path=task.destination_path):
                await executor(
                    task, lambda loaded: self._on_progress(state, task, loaded), state.token
                )
            task.loaded = task.size
            task.status = TaskStatus.COMPLETED
            logger.debug(
                f"Task completed: {task.destination_path}",
                extra={"duration_ms": (time.monotonic() - started) * 1000, "bytes": task.size},
            )
        except TransferCancelledError:
            task.status = TaskStatus.ERROR
            task.error = CANCELLED_TASK_MESSAGE
        except asyncio.CancelledError:
            task.status = TaskStatus.ERROR
            task.error = CANCELLED_TASK_MESSAGE
            raise
        except Exception as e:
            error = e if isinstance(e, CrossloadError) else classify_error(e, path=task.source_path)
            task.status = TaskStatus.ERROR
            task.error = error.message
            logger.error(
                f"Transfer failed for {task.source_path}: {error.message}",
                extra={"job_id": job.id, "error_type": error.error_type},
            )
            logger.debug(f"Error details: {sanitize_error_for_logging(e)}")
        finally:
            self.transfer_limiter.release()
            self._notify("on_task_finished", job, task)
            self._task_updated(state, task)

    def _on_progress(self, state: _JobState, task: TransferTask, loaded: int) -> None:
        task.loaded = min(loaded, task.size)
        self._task_updated(state, task)

    def _task_updated(self, state: _JobState, task: TransferTask) -> None:
        self._notify("on_task_update", state.job, task)
        self._publish(state)

    def _finish(self, state: _JobState) -> None:
        job = state.job
        if not job.status.is_terminal:
            failed = sum(1 for t in job.tasks if t.status == TaskStatus.ERROR)
            job.status = JobStatus.FAILED if failed else JobStatus.COMPLETED
            job.completed_at = datetime.now(UTC)
            if failed:
                job.error = f"{failed} of {len(job.tasks)} file(s) failed"
            level = logging.WARNING if failed else logging.INFO
            logger.log(level, f"Job {job.id} finished: {job.status.value}")
            self._notify("on_job_finished", job)
            self._publish(state)

        state.finished_at = time.monotonic()
        state.done.set()
