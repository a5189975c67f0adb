"""
Conduit Integration Lifecycle Controller.

One controller per integration instance. It owns the connection state and
all shared bookkeeping, and delegates the integration-specific parts
(validating connect config, parsing webhooks) to an IntegrationKind:
- State transitions through the pure ``transition`` function
- Namespaced credential storage: ``{instance_id}:{integration_type}:{name}``
- Lifecycle events (connected, disconnected, error, webhook received)
- Health reporting
- Retry-wrapped provider calls

A controller is not safe for concurrent mutation; callers serialize
lifecycle calls per instance.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, TypeVar, runtime_checkable
import asyncio
import logging
import time

from conduit.integrations.contracts import CredentialStore, EventEmitter, EventType, IntegrationEvent
from conduit.integrations.errors import IntegrationError
from conduit.integrations.state import (
    Connected,
    Disconnected,
    IntegrationState,
    IntegrationStatus,
    LifecycleEvent,
    StatusChanged,
    Touched,
    Updated,
    transition,
)
from conduit.integrations.webhooks import INVALID_PAYLOAD, WebhookPayload, WebhookResult
from conduit.resilience.retry import RetryOptions, Sleep, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Config / capability
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IntegrationConfig:
    """Identity and policy for one integration instance.

    ``instance_id`` namespaces every credential key. With
    ``purge_credentials_on_disconnect`` set, ``disconnect()`` deletes the
    instance's secrets; otherwise they are left in place for the caller.
    """
    instance_id: str
    workspace_id: str | None = None
    purge_credentials_on_disconnect: bool = False


@dataclass
class ConnectPlan:
    """What an integration kind wants recorded on connect."""
    attributes: dict[str, Any] = field(default_factory=dict)
    secrets: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class IntegrationKind(Protocol):
    """Integration-specific behaviour plugged into a controller."""

    type: str
    credential_names: tuple[str, ...]

    def prepare_connect(self, config: Any) -> ConnectPlan: ...

    async def handle_webhook(
        self, integration: "IntegrationController", payload: WebhookPayload
    ) -> WebhookResult: ...


@dataclass
class HealthCheckResult:
    healthy: bool
    status: IntegrationStatus
    latency_ms: float = 0.0
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 3),
            "error": self.error,
            "checked_at": self.checked_at.isoformat(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class IntegrationController:
    """Lifecycle state machine for one integration instance."""

    def __init__(
        self,
        kind: IntegrationKind,
        config: IntegrationConfig,
        credentials: CredentialStore,
        events: EventEmitter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.kind = kind
        self.config = config
        self._credentials = credentials
        self._events = events
        self._clock = clock
        self._state: IntegrationState | None = None
        self._stored_names: set[str] = set()

    @property
    def type(self) -> str:
        return self.kind.type

    # --- State ---

    def get_state(self) -> IntegrationState | None:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is not None

    def _apply(self, event: LifecycleEvent) -> IntegrationState | None:
        previous = self._state
        self._state = transition(previous, event)
        if previous is not None and self._state is not None and previous.status != self._state.status:
            logger.debug(
                "[%s] %s -> %s", self.type, previous.status.value, self._state.status.value,
            )
        return self._state

    def update_state(self, **changes: Any) -> None:
        """Shallow-merge fields into the state. No-op when not configured."""
        self._apply(Updated(changes=changes))

    def set_status(self, status: IntegrationStatus | str, error: str | None = None) -> None:
        """Set status and error, advancing last activity. No-op when not configured."""
        self._apply(StatusChanged(status=IntegrationStatus(status), at=self._clock(), error=error))

    def _require_state(self, action: str) -> IntegrationState:
        if self._state is None:
            raise IntegrationError(
                self.type,
                "NOT_CONFIGURED",
                f"Cannot {action}: integration not configured",
            )
        return self._state

    # --- Lifecycle ---

    async def connect(self, config: Any) -> IntegrationState:
        """
        Configure the integration. The kind validates ``config``; any
        secrets it extracts go to the credential store before the state
        becomes Active. A second call overwrites the previous state, and
        declared credentials missing from the new config are deleted.
        """
        plan = self.kind.prepare_connect(config)
        for name in self.kind.credential_names:
            if name not in plan.secrets and await self._credentials.has(self.credential_key(name)):
                await self.delete_credential(name)
        for name, value in plan.secrets.items():
            await self.store_credential(name, value)

        state = self._apply(Connected(integration_type=self.type, at=self._clock(), attributes=plan.attributes))
        self._emit(EventType.CONNECTED, {"integrationType": self.type})
        logger.info("[%s] connected instance %s", self.type, self.config.instance_id)
        return state

    async def disconnect(self) -> bool:
        """Clear the state. Returns False when there was nothing to disconnect."""
        if self._state is None:
            return False

        if self.config.purge_credentials_on_disconnect:
            try:
                await self._purge_credentials()
            except Exception as exc:
                logger.exception("[%s] credential cleanup failed", self.type)
                self.emit_error(str(exc) or "Disconnect failed")
                return False

        self._apply(Disconnected())
        self._emit(EventType.DISCONNECTED, {"integrationType": self.type})
        logger.info("[%s] disconnected instance %s", self.type, self.config.instance_id)
        return True

    async def _purge_credentials(self) -> None:
        names = set(self.kind.credential_names) | self._stored_names
        for name in sorted(names):
            await self.delete_credential(name)

    async def refresh(self) -> IntegrationState:
        """Record activity. Raises IntegrationError(NOT_CONFIGURED) when not connected."""
        self._require_state("refresh")
        return self._apply(Touched(at=self._clock()))

    async def health_check(self) -> HealthCheckResult:
        start = time.perf_counter()
        state = self._state
        if state is None:
            return HealthCheckResult(
                healthy=False,
                status=IntegrationStatus.NOT_CONFIGURED,
                error="Integration not configured",
            )
        return HealthCheckResult(
            healthy=state.status == IntegrationStatus.ACTIVE,
            status=state.status,
            latency_ms=(time.perf_counter() - start) * 1000,
            error=state.error,
        )

    # --- Webhooks ---

    async def handle_webhook(self, payload: WebhookPayload) -> WebhookResult:
        """Process an inbound webhook. Never raises."""
        try:
            result = await self.kind.handle_webhook(self, payload)
        except ValueError as exc:
            # json, unicode and pydantic validation failures are all ValueErrors
            logger.warning("[%s] rejected webhook: %s", self.type, exc)
            return WebhookResult.failed(INVALID_PAYLOAD)
        except Exception as exc:
            logger.exception("[%s] webhook handler failed", self.type)
            self.emit_error(str(exc) or type(exc).__name__)
            return WebhookResult.failed(str(exc) or "Webhook processing failed")

        if result.success:
            self._emit(
                EventType.WEBHOOK_RECEIVED,
                {"integrationType": self.type, "eventType": result.event_type},
            )
        else:
            logger.warning("[%s] webhook not processed: %s", self.type, result.error)
        return result

    # --- Credentials ---

    def credential_key(self, name: str) -> str:
        return f"{self.config.instance_id}:{self.type}:{name}"

    async def store_credential(
        self, name: str, value: str, metadata: Optional[Mapping[str, Any]] = None
    ) -> None:
        await self._credentials.set(self.credential_key(name), value, dict(metadata) if metadata else None)
        self._stored_names.add(name)

    async def get_credential(self, name: str) -> str | None:
        return await self._credentials.get(self.credential_key(name))

    async def delete_credential(self, name: str) -> None:
        await self._credentials.delete(self.credential_key(name))
        self._stored_names.discard(name)

    # --- Provider calls ---

    async def call(
        self,
        operation: Callable[[], Awaitable[T] | T],
        retry: Optional[RetryOptions] = None,
        *,
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        """
        Run a provider operation with retry. Requires a configured
        integration; records activity on success and emits an error event
        before re-raising the original error on failure.
        """
        self._require_state("call provider")
        try:
            result = await with_retry(operation, retry, should_retry=should_retry, sleep=sleep)
        except Exception as exc:
            self.emit_error(str(exc) or type(exc).__name__)
            raise
        self._apply(Touched(at=self._clock()))
        return result

    # --- Events ---

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        self._events.emit(IntegrationEvent(type=event_type, payload=payload))

    def emit_error(self, error: str) -> None:
        self._emit(EventType.ERROR, {"integrationType": self.type, "error": error})
