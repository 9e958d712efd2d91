"""
Retry with exponential backoff.

Used around calls to external services. Only errors flagged as
retryable are retried; everything else propagates immediately.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from core.domain.exceptions import CircuitOpenError, ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for a retried call."""

    max_retries: int = 3
    initial_delay: float = 2.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.25

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays cannot be negative")
        if self.multiplier < 1:
            raise ValueError("Backoff multiplier must be at least 1")

    def delay_for(self, retry_number: int, rng: Callable[[], float] = random.random) -> float:
        """
        Compute the delay before the given retry.

        Args:
            retry_number: 1 for the first retry, 2 for the second, ...
            rng: Source of uniform [0, 1) values for jitter

        Returns:
            Delay in seconds, capped at max_delay
        """
        base = min(self.initial_delay * (self.multiplier ** (retry_number - 1)), self.max_delay)
        if self.jitter:
            base += base * self.jitter * (2 * rng() - 1)
        return max(0.0, min(base, self.max_delay))


def is_retryable(error: Exception) -> bool:
    """Return True for transient external failures."""
    if isinstance(error, CircuitOpenError):
        return False
    return isinstance(error, ExternalServiceError) and error.retryable


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    retryable: Callable[[Exception], bool] = is_retryable,
    rng: Optional[Callable[[], float]] = None,
) -> T:
    """
    Run an async operation, retrying transient failures with backoff.

    Args:
        operation: Zero-argument coroutine factory
        policy: Retry parameters
        description: Label used in log messages
        sleep: Awaitable sleep, injectable for tests
        retryable: Predicate deciding whether an error is worth retrying
        rng: Optional jitter source

    Returns:
        The operation's result

    Raises:
        The last error once retries are exhausted, or any non-retryable error
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not retryable(e) or attempt >= policy.max_retries:
                if attempt:
                    logger.error(
                        "%s failed after %d retr%s: %s",
                        description,
                        attempt,
                        "y" if attempt == 1 else "ies",
                        e,
                    )
                raise
            attempt += 1
            delay = policy.delay_for(attempt, rng) if rng else policy.delay_for(attempt)
            logger.warning(
                "%s failed (%s), retrying in %.2fs (attempt %d/%d)",
                description,
                e,
                delay,
                attempt,
                policy.max_retries,
            )
            await sleep(delay)
