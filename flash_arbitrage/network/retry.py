"""
Retry with capped exponential backoff.

``with_retry`` is the one place transient failures are retried. Only
``NetworkError`` (or whatever the policy names) is retried; deterministic
failures propagate on the first attempt.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..exceptions import NetworkError
from ..interfaces import RandomProvider, SystemRandomProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff parameters.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay before the first retry, in seconds
        multiplier: Growth factor per attempt
        max_delay: Upper bound on the un-jittered delay
        jitter: Extra random delay as a fraction of the computed delay
        retry_on: Exception types that are retried
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 1.5
    max_delay: float = 30.0
    jitter: float = 0.1
    retry_on: Tuple[Type[BaseException], ...] = (NetworkError,)

    def delay_for(self, attempt: int, rng: Optional[RandomProvider] = None) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter > 0:
            rng = rng or _DEFAULT_RANDOM
            delay += rng.uniform(0, delay * self.jitter)
        return delay


_DEFAULT_RANDOM = SystemRandomProvider()


async def with_retry(
    policy: RetryPolicy,
    fn: Callable[[], Awaitable[T]],
    *,
    operation: str = "operation",
    rng: Optional[RandomProvider] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``fn`` until it succeeds or the policy is exhausted.

    Args:
        policy: Backoff parameters
        fn: Zero-argument coroutine factory, called once per attempt
        operation: Name used in log lines
        rng: Jitter source
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The first successful result

    Raises:
        The last retryable exception once attempts are exhausted, or any
        non-retryable exception immediately
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return await fn()
        except policy.retry_on as e:
            if attempt == attempts - 1:
                logger.error(f"{operation} failed after {attempts} attempts: {e}")
                raise
            delay = policy.delay_for(attempt, rng)
            logger.warning(
                f"{operation} attempt {attempt + 1}/{attempts} failed: {e}; "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)

    raise AssertionError("unreachable")
