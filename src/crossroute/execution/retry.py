"""Fixed-backoff retry for transient network and submission failures."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from crossroute.errors import UserRejectedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_MARKERS = ("network", "timeout", "timed out", "connection", "fetch")

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 1.0


def is_retryable(error: BaseException) -> bool:
    """Network errors and timeouts are retryable; a user rejection never is.

    Wrapped errors are judged by their cause too, so a provider error
    raised from an httpx timeout still retries.
    """
    if isinstance(error, UserRejectedError):
        return False
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return True
    message = str(error).lower()
    if any(marker in message for marker in RETRYABLE_MARKERS):
        return True
    cause = error.__cause__
    return cause is not None and cause is not error and is_retryable(cause)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    retryable: Callable[[BaseException], bool] = is_retryable,
) -> T:
    """Call ``fn`` up to ``attempts`` times, waiting ``delay`` between tries.

    Non-retryable errors and the final failure propagate unchanged.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt >= attempts or not retryable(e):
                raise
            logger.warning(f"Transient failure (attempt {attempt}/{attempts}), retrying in {delay}s: {e}")
            await sleep(delay)
    raise RuntimeError("with_retry called with attempts < 1")
