"""
Concurrency limiting.

Two limiters exist per engine: one for metadata calls (HEAD/LIST/stat)
shared by every job, and one for full data transfers applied when a task
is dispatched.

Usage:
    >>> limiter = ConcurrencyLimiter(10, name="metadata")
    >>> async with limiter:
    ...     size = await storage.head(bucket, key)
"""

import asyncio


class ConcurrencyLimiter:
    """Semaphore that also reports how busy it is."""

    def __init__(self, limit: int, name: str = "limiter"):
        if limit < 1:
            msg = f"{name} limit must be >= 1, got {limit}"
            raise ValueError(msg)
        self.limit = limit
        self.name = name
        self._semaphore = asyncio.Semaphore(limit)
        self._active = 0
        self._pending = 0

    @property
    def active(self) -> int:
        """Holders currently inside the limiter."""
        return self._active

    @property
    def pending(self) -> int:
        """Callers waiting for a slot."""
        return self._pending

    async def acquire(self) -> None:
        self._pending += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._pending -= 1
        self._active += 1

    def release(self) -> None:
        self._active -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"ConcurrencyLimiter({self.name!r}, limit={self.limit}, active={self._active})"
