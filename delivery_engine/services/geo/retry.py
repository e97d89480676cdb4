"""
Retry Policy

One explicit policy object for provider calls: how many attempts, how long
to wait between them, and which outcomes are worth another try.

Usage:
    policy = RetryPolicy(max_attempts=3, backoff=(0.2, 0.8))
    outcome = await policy.run(lambda: client._request_once(address, key))
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _never(_: object) -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy(Generic[T]):
    """
    Bounded retry with a fixed backoff schedule.

    Attributes:
        max_attempts: Total attempts, first call included (>= 1)
        backoff: Delays in seconds before attempt 2, 3, ...; the last delay
            repeats if there are more retries than entries
        retry_on: Predicate deciding whether a result should be retried
        sleep: Awaitable sleep (injectable for tests)
    """
    max_attempts: int = 3
    backoff: tuple[float, ...] = (0.2, 0.8)
    retry_on: Callable[[T], bool] = _never
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if any(d < 0 for d in self.backoff):
            raise ValueError("backoff delays must be non-negative")

    def delay_before(self, attempt: int) -> float:
        """Delay before `attempt` (2-based: attempt 2 is the first retry)."""
        if not self.backoff:
            return 0.0
        return self.backoff[min(attempt - 2, len(self.backoff) - 1)]

    async def run(self, operation: Callable[[], Awaitable[T]]) -> tuple[T, int]:
        """
        Call `operation` until it returns a non-retryable result or the
        attempts are exhausted.

        Cancellation propagates from both the operation and the sleep.

        Returns:
            (last result, attempts made)
        """
        attempt = 1
        result = await operation()

        while attempt < self.max_attempts and self.retry_on(result):
            attempt += 1
            delay = self.delay_before(attempt)
            logger.debug(f"Retrying in {delay:.2f}s (attempt {attempt}/{self.max_attempts})")
            await self.sleep(delay)
            result = await operation()

        return result, attempt
