"""Retry policy for remote platform calls.

Exponential backoff with jitter, capped at ``max_delay``. A server-supplied
Retry-After hint replaces the computed delay (still capped). Only errors
accepted by the ``retryable`` predicate are retried; everything else is
raised or returned to the caller on the first failure.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from journeysync.services.errors import RemoteRateLimited, RemoteTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_is_retryable(error: BaseException | None) -> bool:
    """Rate limits and timeouts are transient; everything else is not."""
    return isinstance(error, (RemoteRateLimited, RemoteTimeout))


@dataclass
class RetryPolicy:
    """Backoff parameters for transient remote failures.

    Attributes:
        max_attempts: Total attempts including the first (>= 1).
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        jitter: Add up to ``base_delay`` of random jitter per retry.
        retryable: Predicate classifying an error as transient.
        sleep: Awaitable sleep, replaced in tests.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = True
    retryable: Callable[[BaseException | None], bool] = default_is_retryable
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def is_retryable(self, error: BaseException | None) -> bool:
        return error is not None and self.retryable(error)

    def compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before retry number ``attempt`` (0-indexed).

        Args:
            attempt: Number of failed attempts so far, minus one.
            retry_after: Server hint in seconds, if any.

        Returns:
            Delay in seconds, never above ``max_delay``.
        """
        if retry_after is not None and retry_after > 0:
            return min(float(retry_after), self.max_delay)

        delay = self.base_delay * (2**attempt)
        if self.jitter:
            delay += random.random() * self.base_delay
        return min(delay, self.max_delay)

    def delay_for(self, attempt: int, error: BaseException | None) -> float:
        """Compute the delay for ``error``, honoring a rate-limit hint."""
        retry_after = getattr(error, "retry_after", None)
        return self.compute_delay(attempt, retry_after)

    async def execute(self, fn: Callable[[], Awaitable[T]], context: str = "") -> T:
        """Run ``fn`` until it succeeds, fails permanently, or attempts run out.

        Args:
            fn: Zero-argument coroutine factory.
            context: Label for log messages.

        Returns:
            The value returned by ``fn``.

        Raises:
            Exception: The last error raised by ``fn``.
        """
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except Exception as e:
                if attempt + 1 >= self.max_attempts or not self.is_retryable(e):
                    raise
                delay = self.delay_for(attempt, e)
                logger.warning(
                    "Transient error [%s] (attempt %d/%d), retrying in %.1fs: %s",
                    context, attempt + 1, self.max_attempts, delay, e,
                )
                await self.sleep(delay)
        raise AssertionError("unreachable")
