"""
Async retry helper for transient infrastructure failures.

Used around read-only database lookups (invitation code resolution, member
listing). Mutations of the activation pipeline are never retried here: a
repeated write could activate or redeem twice.

Retry policy:
- Exponential backoff with ±20% jitter
- Only exceptions listed in retry_on are retried
- Domain and validation errors are raised immediately
- The original exception is re-raised after the last attempt
- No logging inside the helper (caller logs)
"""

import asyncio
import random
from typing import Any, Callable, Tuple, Type

import asyncpg


DEFAULT_RETRIES = 2
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 5.0


TRANSIENT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
)


def compute_backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number attempt + 1 (attempt is zero-based)."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    jitter = delay * 0.2 * (random.random() * 2 - 1)
    return max(0.0, delay + jitter)


async def retry_async(
    fn: Callable[[], Any],
    *,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    retry_on: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS,
) -> Any:
    """
    Call fn until it succeeds or retries are exhausted.

    Args:
        fn: Zero-argument callable returning an awaitable (or a plain value)
        retries: Retry attempts after the first call (total calls: retries + 1)
        base_delay: Base delay in seconds for the exponential backoff
        max_delay: Upper bound for a single delay
        retry_on: Exception types treated as transient

    Returns:
        Result of fn

    Raises:
        The last transient exception, or any non-transient exception immediately
    """
    for attempt in range(retries + 1):
        try:
            result = fn()
            if asyncio.iscoroutine(result):
                result = await result
            return result
        except retry_on:
            if attempt >= retries:
                raise
            await asyncio.sleep(compute_backoff_delay(attempt, base_delay, max_delay))

    raise RuntimeError("retry_async: unexpected end of retry loop")
