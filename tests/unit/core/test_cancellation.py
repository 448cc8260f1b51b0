"""
Tests for CancellationToken.
"""

import asyncio

import pytest

from crossload.core.cancellation import CancellationToken
from crossload.core.exceptions import TransferCancelledError


class TestCancellationToken:
    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_sets_reason_once(self):
        token = CancellationToken()
        token.cancel("Shutting down")
        token.cancel("Second call")

        assert token.cancelled
        assert token.reason == "Shutting down"
        with pytest.raises(TransferCancelledError, match="Shutting down"):
            token.raise_if_cancelled()

    def test_default_reason(self):
        token = CancellationToken()
        token.cancel()
        assert token.reason == "Transfer cancelled by user"

    @pytest.mark.asyncio
    async def test_sleep_completes_without_cancel(self):
        token = CancellationToken()
        await token.sleep(0.01)

    @pytest.mark.asyncio
    async def test_sleep_interrupted_by_cancel(self):
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)

        started = loop.time()
        with pytest.raises(TransferCancelledError):
            await token.sleep(10)
        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_sleep_after_cancel_raises_immediately(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TransferCancelledError):
            await token.sleep(10)

    @pytest.mark.asyncio
    async def test_wait(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)
