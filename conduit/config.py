"""Dataclass-based configuration for Conduit.

Process-wide settings are frozen dataclasses with sensible defaults, overridable from
environment variables. Nothing here reads files; persistence of settings
belongs to the host application.
"""

from dataclasses import dataclass, field
import os

from conduit.integrations.errors import FailoverCondition
from conduit.resilience.retry import RetryOptions


# ---------------------------------------------------------------------------
# Resilience defaults
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FailoverSettings:
    """Which transient conditions move a call to the next provider."""

    failover_on: frozenset[FailoverCondition] = frozenset({
        FailoverCondition.SERVICE_UNAVAILABLE,
        FailoverCondition.RATE_LIMIT,
        FailoverCondition.TIMEOUT,
    })


@dataclass(frozen=True)
class ConduitSettings:
    """Process-wide resilience defaults.

    Usage::

        settings = ConduitSettings.from_env()
        pool = FailoverPool(adapters, settings.failover.failover_on, settings.retry)
    """

    retry: RetryOptions = field(default_factory=RetryOptions)
    failover: FailoverSettings = field(default_factory=FailoverSettings)

    @classmethod
    def default(cls) -> "ConduitSettings":
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "CONDUIT_") -> "ConduitSettings":
        """Create settings from environment variables.

        Example: CONDUIT_RETRY_MAX_ATTEMPTS=5
                 CONDUIT_FAILOVER_ON=service_unavailable,timeout
        """
        retry_overrides = {}
        for name, cast in (
            ("max_attempts", int),
            ("base_delay_ms", float),
            ("max_delay_ms", float),
            ("backoff_multiplier", float),
        ):
            value = os.getenv(f"{prefix}RETRY_{name.upper()}")
            if value:
                retry_overrides[name] = cast(value)

        failover = FailoverSettings()
        conditions = os.getenv(f"{prefix}FAILOVER_ON")
        if conditions is not None:
            failover = FailoverSettings(
                failover_on=frozenset(
                    FailoverCondition(c.strip()) for c in conditions.split(",") if c.strip()
                )
            )

        return cls(retry=RetryOptions(**retry_overrides), failover=failover)
