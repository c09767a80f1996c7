"""Exponential backoff for reads.

Only reads are retried. Message writes are never blindly repeated; they carry
a client token so the caller can resend safely instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from recoveryline.errors import TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (TransientNetworkError, OperationalError, InterfaceError, OSError)


def backoff_delay(attempt: int, base_delay: float, max_delay: float = 30.0) -> float:
    """Delay before retry number `attempt` (0-based): base, 2*base, 4*base..."""
    return min(max_delay, base_delay * (2**attempt))


async def retry_read(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run a read, retrying transient failures with exponential backoff.

    Raises:
        TransientNetworkError: If every attempt failed.
    """
    last_error: BaseException | None = None
    for attempt in range(max(1, attempts)):
        try:
            return await operation()
        except RETRYABLE_ERRORS as exc:
            last_error = exc
            if attempt + 1 >= attempts:
                break
            delay = backoff_delay(attempt, base_delay)
            logger.warning("Read failed (attempt %d/%d), retrying in %.2fs: %s", attempt + 1, attempts, delay, exc)
            await sleep(delay)
    raise TransientNetworkError(f"Read failed after {attempts} attempts: {last_error}") from last_error
