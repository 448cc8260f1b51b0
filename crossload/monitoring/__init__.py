"""
Transfer monitoring and observability utilities

Quick Start:
    >>> from crossload.monitoring import PrometheusTransferMetrics, bind_transfer_context
    >>> metrics = PrometheusTransferMetrics()
    >>> service.queue.add_observer(metrics)
"""

from .logging import (
    TransferContextFilter,
    TransferJsonFormatter,
    bind_transfer_context,
    transfer_context,
)
from .prometheus import PrometheusTransferMetrics, start_metrics_server

__all__ = [
    # Logging
    "TransferContextFilter",
    "TransferJsonFormatter",
    "bind_transfer_context",
    "transfer_context",
    # Metrics
    "PrometheusTransferMetrics",
    "start_metrics_server",
]
