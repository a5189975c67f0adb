"""
Conduit Retry Engine — Deterministic Exponential Backoff.

Re-invokes a fallible operation until it succeeds, the error is not
retryable, or the attempt budget is spent. Attempts are strictly
sequential and the delay schedule has no jitter:

    delay(attempt) = min(base_delay_ms * multiplier ** (attempt - 1), max_delay_ms)

On exhaustion the most recent error is re-raised as-is.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar
import asyncio
import inspect
import logging

from conduit.integrations.errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryOptions:
    """Backoff schedule for ``with_retry``."""
    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= base_delay_ms ({self.base_delay_ms})"
            )
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")

    def delay_ms(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        return min(self.base_delay_ms * (self.backoff_multiplier ** (attempt - 1)), self.max_delay_ms)


async def _invoke(operation: Callable[[], Any]) -> Any:
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


async def with_retry(
    operation: Callable[[], Awaitable[T] | T],
    options: Optional[RetryOptions] = None,
    *,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with retry and exponential backoff.

    ``should_retry`` decides whether a failure is worth another attempt;
    the default retries transient provider errors and unrecognized
    exceptions, never permanent provider errors or lifecycle errors.
    ``sleep`` receives seconds and is injectable for tests.
    """
    opts = options or RetryOptions()
    retry_if = should_retry or is_retryable

    attempt = 0
    while True:
        attempt += 1
        try:
            return await _invoke(operation)
        except Exception as exc:
            if attempt >= opts.max_attempts:
                logger.debug("Retry exhausted after %d attempts: %r", attempt, exc)
                raise
            if not retry_if(exc):
                logger.debug("Not retrying non-retryable error on attempt %d: %r", attempt, exc)
                raise
            delay = opts.delay_ms(attempt)
            logger.debug(
                "Attempt %d/%d failed (%r); retrying in %.0fms",
                attempt, opts.max_attempts, exc, delay,
            )
            await sleep(delay / 1000)
