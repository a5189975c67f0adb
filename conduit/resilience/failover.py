"""
Conduit Failover Executor — Ordered Multi-Provider Fallback.

Tries provider adapters in order. A failure advances to the next adapter
only when its failover condition is in the allowed set; anything else is
re-raised straight away. Each adapter is invoked through the operation
exactly once per pass, and the adapter is handed to the operation
explicitly.
"""
from __future__ import annotations
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, Protocol, Sequence, TypeVar, runtime_checkable
import asyncio
import inspect
import logging

from conduit.integrations.errors import FailoverCondition, NoAdaptersAvailableError, should_failover
from conduit.resilience.retry import RetryOptions, Sleep, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ProviderAdapter(Protocol):
    """Anything that can be selected by the failover executor."""
    provider: str


A = TypeVar("A", bound=ProviderAdapter)


async def execute_with_failover(
    operation: Callable[[A], Awaitable[T] | T],
    adapters: Sequence[A],
    allowed_conditions: Iterable[FailoverCondition | str],
) -> T:
    """
    Run ``operation(adapter)`` against each adapter until one succeeds.

    Raises NoAdaptersAvailableError for an empty adapter list without
    invoking the operation. On exhaustion the last adapter's error is
    re-raised unchanged.
    """
    if not adapters:
        raise NoAdaptersAvailableError()

    conditions = {FailoverCondition(c) for c in allowed_conditions}
    last_error: Optional[BaseException] = None

    for index, adapter in enumerate(adapters):
        try:
            result = operation(adapter)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            last_error = exc
            if not should_failover(exc, conditions):
                raise
            remaining = len(adapters) - index - 1
            if remaining:
                logger.warning(
                    "Provider %s failed with %s; failing over (%d adapter(s) left)",
                    getattr(adapter, "provider", "?"), getattr(exc, "code", type(exc).__name__), remaining,
                )

    logger.warning("All %d provider adapters failed", len(adapters))
    raise last_error


class FailoverPool(Generic[A]):
    """
    Ordered adapters with a failover policy and a per-adapter retry budget.

    Usage:
        pool = FailoverPool([telnyx, twilio], failover_on=["service_unavailable"])
        record = await pool.run(lambda adapter: adapter.send_sms(to, body))
    """

    def __init__(
        self,
        adapters: Sequence[A],
        failover_on: Iterable[FailoverCondition | str] = (
            FailoverCondition.SERVICE_UNAVAILABLE,
            FailoverCondition.RATE_LIMIT,
            FailoverCondition.TIMEOUT,
        ),
        retry: Optional[RetryOptions] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.adapters: list[A] = list(adapters)
        self.failover_on: frozenset[FailoverCondition] = frozenset(FailoverCondition(c) for c in failover_on)
        self.retry = retry or RetryOptions(max_attempts=1)
        self._sleep = sleep

    @property
    def providers(self) -> list[str]:
        return [a.provider for a in self.adapters]

    async def run(self, operation: Callable[[A], Awaitable[T] | T]) -> T:
        """Retry each adapter up to its budget, then fail over to the next."""

        async def attempt(adapter: A) -> T:
            async def call() -> Any:
                result = operation(adapter)
                if inspect.isawaitable(result):
                    result = await result
                return result

            return await with_retry(call, self.retry, sleep=self._sleep)

        return await execute_with_failover(attempt, self.adapters, self.failover_on)
