"""
Bounded retry for network fetches.

Only connection-level failures are retried (refused, reset, timeout, DNS).
Backoff doubles from the base delay: 1s, 2s, 4s with the defaults. A
cancellation observed before an attempt or during a backoff delay ends the
loop immediately with TransferCancelledError.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from crossload.core.cancellation import CancellationToken
from crossload.core.exceptions import (
    RETRYABLE_ERROR_CODES,
    CrossloadError,
    TransientNetworkError,
    classify_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    if not isinstance(error, CrossloadError):
        error = classify_error(error)
    return isinstance(error, TransientNetworkError) and error.code in RETRYABLE_ERROR_CODES


async def retry_network_operation(
    operation: Callable[[], Awaitable[T]],
    name: str,
    max_retries: int = 3,
    token: CancellationToken | None = None,
    base_delay: float = 1.0,
) -> T:
    """
    Run ``operation``, retrying transient network failures.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        name: Label used in log messages
        max_retries: Retries after the first attempt
        token: Job cancellation token
        base_delay: First backoff delay in seconds

    Raises:
        TransferCancelledError: If the token fires before or between attempts
        TransientNetworkError: When retries are exhausted
        CrossloadError: Non-retryable failures, raised on first occurrence
    """
    attempt = 0
    while True:
        if token is not None:
            token.raise_if_cancelled()
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt >= max_retries:
                if isinstance(e, CrossloadError):
                    raise
                raise classify_error(e) from e
            delay = base_delay * (2**attempt)
            attempt += 1
            logger.warning(
                f"{name} failed with a transient error, retry {attempt}/{max_retries} "
                f"in {delay:g}s: {e}"
            )
            if token is not None:
                await token.sleep(delay)
            else:
                await asyncio.sleep(delay)
