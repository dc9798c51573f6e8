"""Polling for eventually-consistent values.

`await_settled` repeatedly fetches a value until a predicate accepts it, waiting
with exponential backoff between attempts, and fails closed once the attempt
budget is spent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import wait_exponential

from autorebase.errors import AutorebaseError
from autorebase.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class NotSettledError(AutorebaseError):
    """Raised when a polled value is still unsettled after the last attempt."""

    def __init__(self, description: str, attempts: int):
        self.description = description
        self.attempts = attempts
        super().__init__(f"{description} not settled after {attempts} attempts")


class _BackoffState:
    """Minimal state object for tenacity's wait_exponential.

    Tenacity's wait functions expect a RetryCallState with an attempt_number.
    This provides a lightweight alternative to avoid importing the full class.
    """

    def __init__(self, attempt_number: int):
        self.attempt_number = attempt_number


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff between polling attempts.

    The n-th retry waits `min_delay * 2 ** (n - 1)` seconds, clamped to
    [min_delay, max_delay]. The default budget is one attempt plus ten
    retries.

    Attributes:
        min_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        max_attempts: Total number of fetches before giving up
    """

    min_delay: float = 0.5
    max_delay: float = 30.0
    max_attempts: int = 11

    def delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        backoff = wait_exponential(
            multiplier=self.min_delay, min=self.min_delay, max=self.max_delay
        )
        return backoff(_BackoffState(attempt))  # type: ignore[arg-type]


DEFAULT_BACKOFF = BackoffPolicy()


async def await_settled(
    fetch: Callable[[], Awaitable[T]],
    is_settled: Callable[[T], bool],
    backoff: BackoffPolicy = DEFAULT_BACKOFF,
    description: str = "value",
) -> T:
    """Fetch until `is_settled` accepts the result.

    Args:
        fetch: Zero-argument coroutine function producing a fresh value
        is_settled: Predicate deciding whether the value can be consumed
        backoff: Delay and attempt budget
        description: Description for log messages

    Returns:
        The first settled value

    Raises:
        NotSettledError: After `backoff.max_attempts` unsettled fetches
        Exception: Whatever `fetch` raises, unchanged (no retry on errors)
    """
    for attempt in range(1, backoff.max_attempts + 1):
        value = await fetch()
        if is_settled(value):
            return value

        if attempt >= backoff.max_attempts:
            break

        delay = backoff.delay(attempt)
        logger.debug(
            f"{description} not settled (attempt {attempt}/{backoff.max_attempts}), "
            f"retrying in {delay:.1f}s"
        )
        await asyncio.sleep(delay)

    logger.warning(f"Giving up on {description} after {backoff.max_attempts} attempts")
    raise NotSettledError(description, backoff.max_attempts)
