#!/usr/bin/env python3
"""
Retry-with-backoff wrapper for AI capability calls.

The policy is a pure higher-order function over an async operation:
retry only transient failures, double the delay on every retry (no jitter),
and re-raise the last failure once the retry ceiling is reached.  Both the
audit and remediation adapters go through ``with_retry``.

Usage:
    from resilient_caller import RetryPolicy, with_retry

    text = await with_retry(lambda: llm.complete(prompt), max_retries=2, initial_delay=0.5)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from error_classifier import is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_DELAY = 0.5  # seconds


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ceiling and backoff schedule for one capability call"""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY

    @classmethod
    def from_config(cls, config: Optional[dict]) -> "RetryPolicy":
        config = config or {}
        return cls(
            max_retries=int(config.get("retry_max_retries", DEFAULT_MAX_RETRIES)),
            initial_delay=float(config.get("retry_initial_delay", DEFAULT_INITIAL_DELAY)),
        )

    def delays(self) -> list[float]:
        """Backoff schedule, one entry per retry."""
        return [self.initial_delay * (2 ** n) for n in range(self.max_retries)]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    *,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await *operation*, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine function performing the remote call
        max_retries: Retries allowed after the first attempt
        initial_delay: Delay before the first retry, in seconds; doubled each retry
        is_transient: Predicate deciding whether a failure is worth retrying
        sleep: Awaitable sleep used between attempts

    Returns:
        Whatever *operation* returns on its first successful attempt

    Raises:
        The last failure, immediately when it is not transient, otherwise
        once the retries are exhausted
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=initial_delay, exp_base=2, min=0),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
        sleep=sleep,
    )
    # Iterate attempts so plain callables returning a coroutine are awaited too
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise RuntimeError("retry loop exited without a result")


async def call_with_policy(operation: Callable[[], Awaitable[T]], policy: RetryPolicy, **kwargs: Any) -> T:
    """``with_retry`` driven by a ``RetryPolicy``."""
    return await with_retry(
        operation,
        max_retries=policy.max_retries,
        initial_delay=policy.initial_delay,
        **kwargs,
    )


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_INITIAL_DELAY",
    "RetryPolicy",
    "with_retry",
    "call_with_policy",
]
