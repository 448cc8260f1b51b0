"""
Throttled progress reporting.

Byte counts accumulate on every chunk, but the callback only fires once at
least ``threshold`` bytes have passed since the previous report. A final
flush at end of stream guarantees the reported total reaches the true size.

Usage:
    >>> reporter = ProgressReporter(on_progress, threshold=1024 * 1024)
    >>> chunks = track_progress(source_chunks, reporter, token)
    >>> await sink.write_stream(chunks)   # flush happens at end of stream
"""

from collections.abc import AsyncIterator, Callable

from crossload.core.cancellation import CancellationToken

ProgressCallback = Callable[[int], None]

DEFAULT_PROGRESS_THRESHOLD = 1024 * 1024


class ProgressReporter:
    """Counts bytes and reports them at most once per ``threshold``."""

    def __init__(
        self,
        on_progress: ProgressCallback | None = None,
        threshold: int = DEFAULT_PROGRESS_THRESHOLD,
    ):
        self.on_progress = on_progress
        self.threshold = threshold
        self.loaded = 0
        self.last_reported = 0
        self.reports = 0

    def update(self, amount: int) -> None:
        self.loaded += amount
        if self.loaded - self.last_reported >= self.threshold:
            self._report()

    def jump(self, total: int) -> None:
        """Report a single step straight to ``total`` (server-side copies)."""
        self.loaded = total
        self._report()

    def flush(self) -> None:
        """Final report; always fires so consumers see the true total."""
        self._report()

    def _report(self) -> None:
        self.last_reported = self.loaded
        self.reports += 1
        if self.on_progress is not None:
            self.on_progress(self.loaded)


async def track_progress(
    chunks: AsyncIterator[bytes],
    reporter: ProgressReporter,
    token: CancellationToken | None = None,
) -> AsyncIterator[bytes]:
    """
    Pass chunks through unchanged while counting them.

    The cancellation token is checked at every chunk boundary; raising here
    unwinds both the producer and the consumer of the stream.
    """
    async for chunk in chunks:
        if token is not None:
            token.raise_if_cancelled()
        reporter.update(len(chunk))
        yield chunk
    if token is not None:
        token.raise_if_cancelled()
    reporter.flush()
