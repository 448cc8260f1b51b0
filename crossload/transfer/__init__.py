"""
Cross-storage transfer engine.

Data flow:
    SelectionExpander (DirectoryScanner) -> ConflictAnalyzer (optional)
    -> TransferQueue -> TransferExecutor -> progress back to the queue

Most callers only need TransferService.
"""

from .conflicts import ConflictAnalyzer, format_bytes, large_folder_warning
from .executor import (
    LocalToLocalExecutor,
    LocalToObjectExecutor,
    ObjectToLocalExecutor,
    ObjectToObjectExecutor,
    ShapeExecutor,
    TaskFn,
    TransferExecutor,
)
from .expander import SelectionExpander
from .limiter import ConcurrencyLimiter
from .progress import ProgressReporter, track_progress
from .queue import TransferQueue
from .retry import retry_network_operation
from .scanner import DirectoryScanner
from .service import TransferService

__all__ = [
    "ConcurrencyLimiter",
    "ConflictAnalyzer",
    "DirectoryScanner",
    "LocalToLocalExecutor",
    "LocalToObjectExecutor",
    "ObjectToLocalExecutor",
    "ObjectToObjectExecutor",
    "ProgressReporter",
    "SelectionExpander",
    "ShapeExecutor",
    "TaskFn",
    "TransferExecutor",
    "TransferQueue",
    "TransferService",
    "format_bytes",
    "large_folder_warning",
    "retry_network_operation",
    "track_progress",
]
