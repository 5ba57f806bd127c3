"""Bounded retry with exponential backoff for LLM calls.

Rate-limit and overload failures are retried; everything else propagates on
the first attempt. Each call site gets an independent budget - there is no
shared circuit breaker across a run.

Usage:
    from app.core.retry import RetryPolicy, invoke_with_retry

    response = await invoke_with_retry(
        lambda: draft_section(request),
        policy=RetryPolicy.from_settings(),
    )
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    InternalServerError,
    RateLimitError,
)

from app.core.config import Settings, get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# 429 rate limited, 503 unavailable, 529 overloaded
RETRYABLE_STATUS_CODES = {429, 503, 529}

_RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    RateLimitError,
    InternalServerError,
    APIConnectionError,
    APITimeoutError,
)


class TransientInvocationError(Exception):
    """Raised by a call site to signal a retryable, transient failure."""


class ExhaustedRetriesError(Exception):
    """Raised after every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"LLM call failed after {attempts} attempts: "
            f"{type(last_error).__name__}: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one call site. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 5.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt ``attempt`` (1-based)."""
        return self.initial_delay * (self.backoff_factor ** (attempt - 1))

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_delay=settings.RETRY_INITIAL_DELAY_MS / 1000.0,
            backoff_factor=settings.RETRY_BACKOFF_FACTOR,
        )


def is_retryable(error: BaseException) -> bool:
    """Classify an error as transient (rate limit / overload) or permanent."""
    if isinstance(error, (TransientInvocationError, *_RETRYABLE_TYPES)):
        return True
    if isinstance(error, APIStatusError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return False


async def invoke_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "llm_call",
) -> T:
    """
    Invoke ``call`` with bounded retry and exponential backoff.

    Args:
        call: Zero-argument coroutine factory; invoked once per attempt
        policy: Retry budget (defaults to RetryPolicy())
        sleep: Awaitable sleep function, injectable for tests
        label: Name used in log lines

    Returns:
        The first successful result

    Raises:
        ExhaustedRetriesError: After max_attempts retryable failures
        Exception: Any permanent error, unchanged, on the attempt it occurs
    """
    policy = policy or RetryPolicy()
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await call()
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    f"{label} attempt {attempt}/{policy.max_attempts} failed "
                    f"({type(e).__name__}), retrying in {delay}s"
                )
                await sleep(delay)

    logger.warning(f"{label} exhausted {policy.max_attempts} attempts")
    raise ExhaustedRetriesError(policy.max_attempts, last_error) from last_error
