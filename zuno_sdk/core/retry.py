"""
Retry Policy

Bounded retries with fixed or exponential backoff. Only errors the
caller's ``should_retry`` accepts are retried; everything else is
re-raised on the spot.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

T = TypeVar("T")

logger = structlog.stdlib.get_logger(__name__)


class BackoffKind(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how patiently to retry transient failures.

    ``max_retries`` counts retries, so an operation runs at most
    ``max_retries + 1`` times.
    """

    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    backoff: BackoffKind = BackoffKind.EXPONENTIAL
    max_delay_seconds: float = 30.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at ``max_delay_seconds``."""
        if self.backoff == BackoffKind.EXPONENTIAL:
            delay = self.initial_delay_seconds * (2 ** attempt)
        else:
            delay = self.initial_delay_seconds * (attempt + 1)
        return max(min(delay, self.max_delay_seconds), 0.0)


NO_RETRY = RetryPolicy(max_retries=0)

Sleep = Callable[[float], Awaitable[Any]]


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    operation_name: str = "operation",
    sleep: Optional[Sleep] = None,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds, a non-retryable error is raised,
    or the policy's attempts are used up (the last error is re-raised).
    """
    sleep = sleep or asyncio.sleep

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as e:
            if not should_retry(e) or attempt >= policy.max_retries:
                raise
            delay = policy.get_delay(attempt)
            logger.warning(
                "retrying",
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            if on_retry is not None:
                on_retry(e, attempt + 1, delay)
            await sleep(delay)

    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
