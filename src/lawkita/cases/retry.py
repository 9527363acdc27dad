"""Retry with bounded exponential backoff and jitter."""

import asyncio
import random
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 20.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.25  # +/- fraction of the computed delay

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based failed attempt."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay,
        )
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    logger: Any = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Execute an async function with exponential backoff retry.

    Args:
        func: Async function to execute
        config: Retry configuration
        logger: Optional logger for retry messages
        retry_on: Exception types that are retried; anything else propagates
        sleep: Sleep coroutine (swapped out in tests)

    Returns:
        Function result

    Raises:
        Exception: The last error once all attempts are exhausted
    """
    if config is None:
        config = RetryConfig()

    attempts = max(config.max_attempts, 1)

    for attempt in range(attempts):
        try:
            return await func()
        except retry_on as e:
            if attempt + 1 >= attempts:
                if logger:
                    logger.error(f"All {attempts} attempts failed: {e}")
                raise

            delay = config.delay_for(attempt)
            if logger:
                logger.warning(
                    f"Attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
            await sleep(delay)

    raise RuntimeError("unreachable")
