"""
Conduit Error Taxonomy — Deterministic Failure Classification.

Every failure the framework reasons about is one of:
- IntegrationError: configuration / lifecycle faults (NOT_CONFIGURED, ...)
- ProviderError: a provider operation failed; carries a retryable flag
  and maps to a failover condition through its code
- NoAdaptersAvailableError: the failover executor had nothing to try

Retry and failover decisions are made from these types alone.
"""
from __future__ import annotations
from enum import Enum
from typing import Iterable, Optional

import httpx


class FailoverCondition(str, Enum):
    """Transient conditions that may trigger a switch to the next provider."""
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    AUTHENTICATION_ERROR = "authentication_error"


class ConduitError(Exception):
    """Root of every error raised by this package."""


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------

class IntegrationError(ConduitError):
    """Integration-scoped configuration or lifecycle fault. Never retried."""

    def __init__(
        self,
        integration_type: str,
        code: str,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.integration_type = integration_type
        self.code = code
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"IntegrationError({self.integration_type!r}, {self.code!r}, {self.message!r})"


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

_CONDITION_BY_CODE: dict[str, FailoverCondition] = {
    "PROVIDER_UNAVAILABLE": FailoverCondition.SERVICE_UNAVAILABLE,
    "RATE_LIMITED": FailoverCondition.RATE_LIMIT,
    "TIMEOUT": FailoverCondition.TIMEOUT,
    "AUTH_ERROR": FailoverCondition.AUTHENTICATION_ERROR,
}


class ProviderError(ConduitError):
    """A provider operation failed."""

    def __init__(self, message: str, code: str, provider: str, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.code = code
        self.provider = provider
        self.retryable = retryable

    @property
    def failover_condition(self) -> FailoverCondition | None:
        return _CONDITION_BY_CODE.get(self.code)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(provider={self.provider!r}, code={self.code!r}, "
            f"retryable={self.retryable})"
        )


class ProviderUnavailableError(ProviderError):
    def __init__(self, provider: str, message: str | None = None):
        super().__init__(
            message or f"Provider {provider} is unavailable",
            "PROVIDER_UNAVAILABLE",
            provider,
            retryable=True,
        )


class RateLimitError(ProviderError):
    def __init__(self, provider: str, retry_after: float | None = None):
        super().__init__(f"Rate limited by {provider}", "RATE_LIMITED", provider, retryable=True)
        self.retry_after = retry_after  # seconds


class ProviderTimeoutError(ProviderError):
    def __init__(self, provider: str, message: str | None = None):
        super().__init__(
            message or f"Request to {provider} timed out",
            "TIMEOUT",
            provider,
            retryable=True,
        )


class AuthenticationError(ProviderError):
    def __init__(self, provider: str, message: str | None = None):
        super().__init__(
            message or f"Authentication with {provider} failed",
            "AUTH_ERROR",
            provider,
            retryable=False,
        )


class InvalidNumberError(ProviderError):
    def __init__(self, provider: str, number: str):
        super().__init__(f"Invalid phone number: {number}", "INVALID_NUMBER", provider, retryable=False)
        self.number = number


class InsufficientFundsError(ProviderError):
    def __init__(self, provider: str):
        super().__init__(
            f"Insufficient funds in {provider} account",
            "INSUFFICIENT_FUNDS",
            provider,
            retryable=False,
        )


class NoAdaptersAvailableError(ConduitError):
    """Failover was asked to run with an empty adapter list."""

    def __init__(self, message: str = "No provider adapters available"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def should_failover(error: BaseException, conditions: Iterable[FailoverCondition | str]) -> bool:
    """True only for a ProviderError whose mapped condition is allowed."""
    if not isinstance(error, ProviderError):
        return False
    condition = error.failover_condition
    if condition is None:
        return False
    allowed = {FailoverCondition(c) for c in conditions}
    return condition in allowed


def is_retryable(error: BaseException) -> bool:
    """
    Default retry policy.

    Provider errors retry according to their flag, lifecycle errors never
    retry, anything unrecognized is treated as transient.
    """
    if isinstance(error, ProviderError):
        return error.retryable
    if isinstance(error, (IntegrationError, NoAdaptersAvailableError)):
        return False
    return True


# ---------------------------------------------------------------------------
# HTTP translation
# ---------------------------------------------------------------------------

def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def provider_error_from_response(provider: str, response: httpx.Response) -> ProviderError | None:
    """Map a non-success HTTP response to the taxonomy. Returns None for 2xx/3xx."""
    status = response.status_code
    if status < 400:
        return None
    if status == 429:
        return RateLimitError(provider, _parse_retry_after(response.headers.get("retry-after")))
    if status in (401, 403):
        return AuthenticationError(provider, f"HTTP {status} from {provider}")
    if status == 402:
        return InsufficientFundsError(provider)
    if status == 408:
        return ProviderTimeoutError(provider)
    if status >= 500:
        return ProviderUnavailableError(provider, f"HTTP {status} from {provider}: {response.text[:200]}")
    return ProviderError(f"HTTP {status} from {provider}: {response.text[:200]}", f"HTTP_{status}", provider)


def provider_error_from_exception(provider: str, exc: httpx.HTTPError) -> ProviderError:
    """Map an httpx transport failure to the taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(provider, f"Request to {provider} timed out: {exc}")
    return ProviderUnavailableError(provider, f"Provider {provider} is unavailable: {exc}")
