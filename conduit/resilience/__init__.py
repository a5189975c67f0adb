"""
Conduit Resilience — Transient Failure Recovery.

- with_retry: sequential exponential backoff, no jitter
- execute_with_failover: ordered adapters, condition-gated advance
- FailoverPool: retry budget per adapter, then failover
"""
from conduit.resilience.failover import (
    FailoverPool,
    ProviderAdapter,
    execute_with_failover,
)
from conduit.resilience.retry import (
    RetryOptions,
    with_retry,
)

__all__ = [
    # Retry
    "RetryOptions",
    "with_retry",
    # Failover
    "FailoverPool",
    "ProviderAdapter",
    "execute_with_failover",
]
