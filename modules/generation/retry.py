"""
Bounded retry with exponential backoff for generation calls.

Only overload and unavailability errors are retried; anything else is
re-raised on the first failure.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .exceptions import TransientServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_MARKERS = ("overloaded", "503", "UNAVAILABLE")


def is_transient(error: BaseException) -> bool:
    """Whether ``error`` looks like a temporary overload of the service."""
    if isinstance(error, TransientServiceError):
        return True
    message = str(error)
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def with_retry(
    call: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``call()`` until it succeeds or fails for good.

    Args:
        call: Zero-argument coroutine factory, invoked once per attempt
        max_attempts: Total attempts including the first
        initial_delay: Seconds before the first retry, doubled each time
        sleep: Sleep function (injected by tests)

    Raises:
        The last error, once it is not transient or attempts run out
    """
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await call()
        except Exception as e:
            if not is_transient(e) or attempt >= max_attempts:
                if attempt > 1:
                    logger.error(f"Generation call failed after {attempt} attempts: {e}")
                raise
            logger.warning(
                f"Generation call failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await sleep(delay)
            delay *= 2

    raise ValueError("max_attempts must be at least 1")
