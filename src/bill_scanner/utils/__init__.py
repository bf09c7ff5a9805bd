"""Utility functions for Bill Scanner."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def _never_retry(exc: BaseException) -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential-backoff retry for async operations.

    Only exceptions accepted by ``retryable`` are retried; anything else is
    re-raised on the first occurrence. After ``max_retries`` retries the last
    retryable exception propagates.

    Attributes:
        max_retries: Maximum number of retry attempts after the first call.
        base_delay: Delay before the first retry in seconds.
        multiplier: Factor applied to the delay after each retry.
        retryable: Predicate deciding whether an exception is transient.
        sleep: Awaitable sleep, replaceable with a fake clock in tests.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    retryable: Callable[[BaseException], bool] = _never_retry
    sleep: Sleep = field(default=asyncio.sleep)

    def backoff(self, attempt: int) -> float:
        """Return the delay before retry number ``attempt`` (zero based)."""
        return self.base_delay * (self.multiplier**attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], *, name: str = "operation") -> T:
        """Run ``operation`` until it succeeds or fails permanently.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt.
            name: Operation name used in log events.

        Returns:
            The operation's result.
        """

        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if not self.retryable(exc):
                    raise
                if attempt >= self.max_retries:
                    logger.error(
                        "operation_retry_exhausted",
                        operation=name,
                        attempts=attempt + 1,
                        error=str(exc),
                    )
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "operation_retry",
                    operation=name,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=delay,
                    error=str(exc),
                )
                await self.sleep(delay)
                attempt += 1
