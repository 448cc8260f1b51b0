"""
Tests for structured transfer logging.
"""

import json
import logging
import sys

import pytest

from crossload.core.logger import configure_default_logging, get_logger, set_logger
from crossload.monitoring.logging import (
    TransferContextFilter,
    TransferJsonFormatter,
    bind_transfer_context,
    transfer_context,
)
from crossload.transfer.queue import TransferQueue
from crossload.types import JobKind, TransferTask


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        name="crossload.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTransferContext:
    def test_bind_nests_and_resets(self):
        with bind_transfer_context(job_id="job-1"):
            with bind_transfer_context(task_path="s3:b/a.txt", location=None) as context:
                assert context == {"job_id": "job-1", "task_path": "s3:b/a.txt"}
            assert transfer_context.get() == {"job_id": "job-1"}
        assert transfer_context.get() == {}

    def test_filter_sets_record_fields(self):
        record = make_record()
        with bind_transfer_context(job_id="job-2", task_path="local:d/x"):
            assert TransferContextFilter().filter(record) is True
        assert record.job_id == "job-2"
        assert record.task_path == "local:d/x"

    def test_filter_outside_context(self):
        record = make_record()
        TransferContextFilter().filter(record)
        assert record.job_id == ""


class TestTransferJsonFormatter:
    def test_includes_context_and_extras(self):
        formatter = TransferJsonFormatter()
        with bind_transfer_context(job_id="job-3", task_path="s3:b/a.bin"):
            entry = json.loads(formatter.format(make_record("done", bytes=42, error_type="")))

        assert entry["message"] == "done"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "crossload.test"
        assert entry["job_id"] == "job-3"
        assert entry["task_path"] == "s3:b/a.bin"
        assert entry["bytes"] == 42
        assert "error_type" not in entry

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record("failed")
            record.exc_info = sys.exc_info()

        entry = json.loads(TransferJsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


class TestLoggerConfiguration:
    def test_configure_json_output(self):
        root = logging.getLogger("crossload")
        saved = (list(root.handlers), root.level)
        try:
            configure_default_logging(level=logging.DEBUG, json_output=True)
            handlers = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
            assert len(handlers) == 1
            assert isinstance(handlers[0].formatter, TransferJsonFormatter)
            assert root.level == logging.DEBUG

            configure_default_logging()
            handlers = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
            assert len(handlers) == 1
            assert not isinstance(handlers[0].formatter, TransferJsonFormatter)
        finally:
            root.handlers, root.level = saved[0], saved[1]

    def test_custom_logger(self):
        custom = object()
        set_logger(custom)
        try:
            assert get_logger("anything") is custom
        finally:
            set_logger(None)
        assert isinstance(get_logger("crossload.x"), logging.Logger)


class TestQueueLogging:
    @pytest.mark.asyncio
    async def test_task_failures_carry_job_id(self, caplog):
        async def fails(task, on_progress, token):
            raise ValueError("corrupt chunk")

        queue = TransferQueue()
        with caplog.at_level(logging.ERROR, logger="crossload.transfer.queue"):
            job_id = queue.submit(
                JobKind.CROSS_STORAGE, [TransferTask("local:d/a", "s3:b/a", size=1)], fails
            )
            await queue.wait(job_id, timeout=5)
        await queue.shutdown()

        [record] = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert record.job_id == job_id
        assert record.error_type == "Unexpected"
        assert "corrupt chunk" in record.getMessage()
