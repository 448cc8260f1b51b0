"""
Cooperative cancellation for transfer jobs.

A CancellationToken is created per job and passed down every call chain
that performs I/O for that job. Executors check it at each chunk boundary
and before every retry; cancelling never kills in-flight I/O directly.

Usage:
    >>> token = CancellationToken()
    >>> async for chunk in source:
    ...     token.raise_if_cancelled()
    ...     await sink.write(chunk)
    >>>
    >>> token.cancel()  # from anywhere on the same event loop
"""

import asyncio

from crossload.core.exceptions import TransferCancelledError


class CancellationToken:
    """Abort signal shared by all in-flight operations of one job."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "Transfer cancelled by user"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Fire the signal. Calling it again has no effect."""
        if self._event.is_set():
            return
        if reason:
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TransferCancelledError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """
        Sleep for ``delay`` seconds unless the token fires first.

        Raises:
            TransferCancelledError: If cancelled before or during the delay
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise TransferCancelledError(self._reason)
