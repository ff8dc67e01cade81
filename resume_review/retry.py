"""Retry with exponential backoff for transient upstream failures."""
import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from resume_review.errors import ReviewError

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry logic.

    Attributes:
        max_attempts: Maximum number of attempts (including the first)
        initial_delay_seconds: Delay before the first retry
        max_delay_seconds: Cap on any single delay
        exponential_base: Delay multiplier per attempt
        jitter: Whether to randomize delays by up to 10%
    """
    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        delay = min(self.initial_delay_seconds * self.exponential_base ** attempt, self.max_delay_seconds)
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)
        return delay


async def retry_with_backoff(func: Callable[[], Awaitable[T]], config: RetryConfig) -> T:
    """Await ``func`` until it succeeds, retrying only errors marked ``retryable``.

    Non-retryable errors and the last retryable one are raised unchanged.
    """
    attempts = max(1, config.max_attempts)
    for attempt in range(attempts):
        try:
            return await func()
        except ReviewError as e:
            if not e.retryable or attempt == attempts - 1:
                raise
            delay = config.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{attempts} failed ({e.message}), retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
