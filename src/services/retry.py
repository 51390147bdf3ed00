"""Retry policy for generative backend calls.

Provides tenacity-based retry logic with exponential backoff and jitter.
Every call into the backend goes through with_retry.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
)

from src.services.errors import TransientProviderError

if TYPE_CHECKING:
    from src.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")

# Exceptions that are retriable even when raised outside the client wrapper
RETRIABLE_EXCEPTIONS = (
    TransientProviderError,
    ConnectionError,
    TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff bounds for one backend call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    deadline: float | None = None
    """Optional wall-clock cap (seconds) across all attempts."""

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        """Build a policy from application settings."""
        return cls(
            max_attempts=settings.llm_max_attempts,
            base_delay=settings.llm_base_delay_seconds,
            max_delay=settings.llm_max_delay_seconds,
            deadline=settings.llm_retry_deadline_seconds,
        )


def is_retryable(error: BaseException) -> bool:
    """Return True for rate limits, 5xx responses and transient network errors."""
    return isinstance(error, RETRIABLE_EXCEPTIONS)


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float | None = None,
) -> float:
    """Exponential delay with additive jitter, capped at max_delay.

    Args:
        attempt: Zero-based index of the attempt that just failed
        base_delay: Base delay in seconds
        max_delay: Upper bound in seconds
        jitter: Jitter in seconds; drawn from [0, base_delay) when None

    Returns:
        Delay in seconds before the next attempt
    """
    if jitter is None:
        jitter = random.uniform(0, base_delay)
    return min(base_delay * 2**attempt + jitter, max_delay)


def _wait_for(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return float(retry_after)
        return compute_backoff(
            retry_state.attempt_number - 1,
            policy.base_delay,
            policy.max_delay,
        )

    return wait


def _log_before_sleep(policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "backend request failed, retrying",
            status=getattr(error, "status_code", None) or "network",
            delay_ms=round(delay * 1000),
            attempt=retry_state.attempt_number,
            max_attempts=policy.max_attempts,
            error=str(error),
        )

    return log


async def with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run an async call, retrying transient failures.

    Retry-after hints carried by the error are used verbatim instead of
    the computed backoff. When attempts run out the last error is re-raised
    unchanged; non-retryable errors are re-raised on the first failure.

    Args:
        call: Zero-argument coroutine function to invoke
        policy: Retry policy (defaults used if None)
        sleep: Sleep coroutine, injectable for tests

    Returns:
        Whatever the call returns
    """
    policy = policy or RetryPolicy()

    stop = stop_after_attempt(policy.max_attempts)
    if policy.deadline is not None:
        stop = stop | stop_after_delay(policy.deadline)

    retrying = AsyncRetrying(
        stop=stop,
        wait=_wait_for(policy),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep(policy),
        sleep=sleep,
        reraise=True,
    )
    return await retrying(call)
