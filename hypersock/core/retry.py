"""
Retry utilities with exponential backoff.

Connect attempts are retried only for transient descriptor errors, with:
- Exponential backoff with configurable base and max delay
- Jitter to spread out reconnect storms
- Retry budgets to limit total retry time
"""

import asyncio
import errno
import random
import ssl
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, TypeVar

from .errors import ErrorCategory, ErrorSeverity, SocketError


T = TypeVar('T')


TRANSIENT_ERRNOS = frozenset({
    errno.EAGAIN,
    errno.EINTR,
    errno.ENOBUFS,
    errno.ENOMEM,
    errno.EADDRNOTAVAIL,
    errno.ECONNABORTED,
})


class RetryDecision(Enum):
    """Decision for whether to retry an operation."""
    RETRY = auto()
    ABORT = auto()


@dataclass(slots=True)
class RetryPolicy:
    """
    Configuration for retry behavior.

    Example:
        policy = RetryPolicy(
            max_attempts=3,
            base_delay=0.1,
            max_delay=2.0,
            jitter=0.2,
        )
    """

    max_attempts: int = 3
    """Maximum number of attempts (including first try)."""

    base_delay: float = 0.1
    """Initial delay in seconds."""

    max_delay: float = 2.0
    """Maximum delay in seconds (caps exponential growth)."""

    exponential_base: float = 2.0

    jitter: float = 0.1
    """Jitter factor (0-1). Delay varies by +/- jitter * delay."""

    budget_seconds: float | None = None
    """Total time budget for all retries. None = unlimited."""

    retryable_errnos: frozenset[int] = field(
        default_factory=lambda: TRANSIENT_ERRNOS
    )

    def should_retry(self, error: Exception) -> RetryDecision:
        if isinstance(error, SocketError):
            if (
                error.category == ErrorCategory.NETWORK
                and error.severity == ErrorSeverity.TRANSIENT
            ):
                return RetryDecision.RETRY

            return RetryDecision.ABORT

        if isinstance(error, ssl.SSLError):
            return RetryDecision.ABORT

        if isinstance(error, OSError) and error.errno in self.retryable_errnos:
            return RetryDecision.RETRY

        return RetryDecision.ABORT

    def get_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay,
        )

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0, delay)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> 'RetryPolicy':
        return cls(**config)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    on_retry: Callable[[int, Exception, float], Awaitable[None] | None] | None = None,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        fn: Async function to retry
        policy: Retry policy (defaults to RetryPolicy())
        on_retry: Callback before each retry (attempt, error, delay)

    Returns:
        Result of successful function call

    Raises:
        The error that ended the attempts
    """
    if policy is None:
        policy = RetryPolicy()

    start_time = time.monotonic()

    for attempt in range(policy.max_attempts):
        try:
            return await fn()

        except Exception as err:
            if policy.should_retry(err) == RetryDecision.ABORT:
                raise

            if attempt == policy.max_attempts - 1:
                raise

            delay = policy.get_delay(attempt)

            if policy.budget_seconds is not None:
                remaining = policy.budget_seconds - (time.monotonic() - start_time)
                if remaining <= 0:
                    raise

                delay = min(delay, remaining)

            if on_retry:
                callback_result = on_retry(attempt + 1, err, delay)
                if asyncio.iscoroutine(callback_result):
                    await callback_result

            if delay > 0:
                await asyncio.sleep(delay)

    raise RuntimeError("Retry loop exited unexpectedly")
