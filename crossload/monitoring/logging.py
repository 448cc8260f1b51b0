"""
Structured logging for transfer execution

Carries job and task identifiers through every log record emitted while a
task runs, so interleaved output from concurrent transfers stays
attributable.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for propagating job/task context
transfer_context: ContextVar[dict[str, Any]] = ContextVar("transfer_context", default={})


@contextmanager
def bind_transfer_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """
    Add fields to the transfer context for the duration of the block.

    Example:
        >>> with bind_transfer_context(job_id=job.id, task_path=task.destination_path):
        ...     await executor(task, on_progress, token)
    """
    merged = {**transfer_context.get({}), **{k: v for k, v in fields.items() if v is not None}}
    reset_token = transfer_context.set(merged)
    try:
        yield merged
    finally:
        transfer_context.reset(reset_token)


class TransferJsonFormatter(logging.Formatter):
    """
    JSON formatter for transfer logs with structured fields
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "job_id",
        "task_path",
        "location",
        "error_type",
        "duration_ms",
        "bytes",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_transfer_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_transfer_context(self, log_entry: dict[str, Any]) -> None:
        context = transfer_context.get({})
        for key in ("job_id", "task_path", "location"):
            if context.get(key) is not None:
                log_entry[key] = context[key]

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self._EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, ""):
                log_entry[field] = value


class TransferContextFilter(logging.Filter):
    """
    Logging filter that adds transfer context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = transfer_context.get({})
        record.job_id = context.get("job_id", "")
        record.task_path = context.get("task_path", "")
        return True
