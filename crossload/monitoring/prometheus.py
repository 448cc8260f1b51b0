# ============================================
# FILE: crossload/monitoring/prometheus.py
# ============================================

"""
Prometheus metrics integration for crossload.

Registers as a TransferQueue observer and turns job/task lifecycle events
into Prometheus metrics.

Quick Start:
    >>> from crossload.monitoring.prometheus import PrometheusTransferMetrics
    >>>
    >>> metrics = PrometheusTransferMetrics()
    >>> service.queue.add_observer(metrics)
    >>> start_metrics_server(port=8000, registry=metrics.registry)
"""

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from crossload.types import TaskStatus, TransferJob, TransferTask

logger = logging.getLogger(__name__)


class PrometheusTransferMetrics:
    """
    Prometheus-compatible metrics collector for transfer jobs.

    Exposes the following metrics:
        - transfer_jobs_total: Counter of finished jobs by status
        - transfer_tasks_total: Counter of finished tasks by status
        - transfer_bytes_total: Counter of bytes moved by completed tasks
        - transfer_jobs_active: Gauge of jobs not yet terminal
        - transfer_job_duration_seconds: Histogram of job durations

    A private CollectorRegistry is used unless one is passed in, so several
    instances (one per test, say) never collide on metric names.
    """

    def __init__(self, prefix: str = "transfer", registry: CollectorRegistry | None = None):
        """
        Initialize Prometheus metrics.

        Args:
            prefix: Metric name prefix (default: "transfer")
            registry: Registry to register metrics in
        """
        self.registry = registry or CollectorRegistry()
        self._prefix = prefix

        self._jobs_total = Counter(
            f"{prefix}_jobs_total",
            "Finished transfer jobs",
            ["kind", "status"],
            registry=self.registry,
        )
        self._tasks_total = Counter(
            f"{prefix}_tasks_total",
            "Finished transfer tasks",
            ["status"],
            registry=self.registry,
        )
        self._bytes_total = Counter(
            f"{prefix}_bytes_total",
            "Bytes moved by completed tasks",
            registry=self.registry,
        )
        self._active_jobs = Gauge(
            f"{prefix}_jobs_active",
            "Transfer jobs not yet in a terminal state",
            registry=self.registry,
        )
        self._job_duration = Histogram(
            f"{prefix}_job_duration_seconds",
            "Transfer job duration in seconds",
            buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0],
            registry=self.registry,
        )

    def on_job_submitted(self, job: TransferJob) -> None:
        self._active_jobs.inc()

    def on_task_finished(self, job: TransferJob, task: TransferTask) -> None:
        self._tasks_total.labels(status=task.status.value).inc()
        if task.status == TaskStatus.COMPLETED:
            self._bytes_total.inc(task.size)

    def on_job_finished(self, job: TransferJob) -> None:
        self._active_jobs.dec()
        self._jobs_total.labels(kind=job.kind.value, status=job.status.value).inc()
        if job.completed_at is not None:
            started = job.started_at or job.created_at
            self._job_duration.observe((job.completed_at - started).total_seconds())

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Current value of one sample, e.g. ``sample("transfer_bytes_total")``."""
        return self.registry.get_sample_value(name, labels or {})


def start_metrics_server(
    port: int = 8000, addr: str = "0.0.0.0", registry: CollectorRegistry | None = None
) -> None:
    """
    Start a Prometheus HTTP metrics server.

    Args:
        port: Port to listen on (default: 8000)
        addr: Address to bind to (default: 0.0.0.0 for all interfaces)
        registry: Registry to expose (default: the global registry)
    """
    if registry is None:
        start_http_server(port, addr)
    else:
        start_http_server(port, addr, registry=registry)
    logger.info(f"Prometheus metrics server started on port {port}")
