"""
Conduit Core Integrations — Lifecycle Framework.

Provides vendor-agnostic integration infrastructure:
- IntegrationController: connection state, credentials, health, webhooks
- transition: pure integration state machine
- Error taxonomy: retryable / failover-eligible provider errors
- HttpProviderAdapter: httpx adapter that raises typed provider errors
- StripeIntegration / GitHubIntegration: integration kinds
"""
from conduit.integrations.adapter_base import (
    AdapterRequest,
    AdapterResponse,
    AuthCredentials,
    AuthType,
    HttpProviderAdapter,
)
from conduit.integrations.contracts import (
    CredentialStore,
    EventEmitter,
    EventType,
    InMemoryCredentialStore,
    InMemoryEventEmitter,
    IntegrationEvent,
)
from conduit.integrations.errors import (
    AuthenticationError,
    ConduitError,
    FailoverCondition,
    InsufficientFundsError,
    IntegrationError,
    InvalidNumberError,
    NoAdaptersAvailableError,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
    is_retryable,
    provider_error_from_exception,
    provider_error_from_response,
    should_failover,
)
from conduit.integrations.github import GitHubConnectConfig, GitHubIntegration
from conduit.integrations.lifecycle import (
    ConnectPlan,
    HealthCheckResult,
    IntegrationConfig,
    IntegrationController,
    IntegrationKind,
)
from conduit.integrations.state import (
    Connected,
    Disconnected,
    IntegrationState,
    IntegrationStatus,
    StatusChanged,
    Touched,
    Updated,
    transition,
)
from conduit.integrations.stripe import StripeConnectConfig, StripeIntegration
from conduit.integrations.webhooks import (
    WebhookPayload,
    WebhookResult,
    sign_payload,
    verify_webhook_signature,
)

__all__ = [
    # Adapter
    "AdapterRequest",
    "AdapterResponse",
    "AuthCredentials",
    "AuthType",
    "HttpProviderAdapter",
    # Contracts
    "CredentialStore",
    "EventEmitter",
    "EventType",
    "InMemoryCredentialStore",
    "InMemoryEventEmitter",
    "IntegrationEvent",
    # Errors
    "AuthenticationError",
    "ConduitError",
    "FailoverCondition",
    "InsufficientFundsError",
    "IntegrationError",
    "InvalidNumberError",
    "NoAdaptersAvailableError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RateLimitError",
    "is_retryable",
    "provider_error_from_exception",
    "provider_error_from_response",
    "should_failover",
    # Lifecycle
    "ConnectPlan",
    "HealthCheckResult",
    "IntegrationConfig",
    "IntegrationController",
    "IntegrationKind",
    # State machine
    "Connected",
    "Disconnected",
    "IntegrationState",
    "IntegrationStatus",
    "StatusChanged",
    "Touched",
    "Updated",
    "transition",
    # Kinds
    "GitHubConnectConfig",
    "GitHubIntegration",
    "StripeConnectConfig",
    "StripeIntegration",
    # Webhooks
    "WebhookPayload",
    "WebhookResult",
    "sign_payload",
    "verify_webhook_signature",
]
