"""
Collaborator contracts consumed by the lifecycle controller.

The credential store and event emitter are owned outside the framework;
the in-memory implementations here back tests and single-process use.
Replace backing stores for production.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol, runtime_checkable
import logging

logger = logging.getLogger(__name__)


class EventType:
    CONNECTED = "integration:connected"
    DISCONNECTED = "integration:disconnected"
    ERROR = "integration:error"
    WEBHOOK_RECEIVED = "webhook:received"


@dataclass(frozen=True)
class IntegrationEvent:
    """Lifecycle event emitted by a controller."""
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class CredentialStore(Protocol):
    """Secret storage. Implementations should encrypt at rest."""

    async def set(self, key: str, value: str, metadata: Optional[dict[str, Any]] = None) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> None: ...

    async def has(self, key: str) -> bool: ...


@runtime_checkable
class EventEmitter(Protocol):
    def emit(self, event: IntegrationEvent) -> None: ...

    def subscribe(self, handler: Callable[[IntegrationEvent], None]) -> Callable[[], None]: ...


class InMemoryCredentialStore:
    """Dict-backed credential store."""

    def __init__(self):
        self._values: dict[str, str] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    async def set(self, key: str, value: str, metadata: Optional[dict[str, Any]] = None) -> None:
        self._values[key] = value
        self._metadata[key] = dict(metadata or {})

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._metadata.pop(key, None)

    async def has(self, key: str) -> bool:
        return key in self._values

    def metadata(self, key: str) -> dict[str, Any]:
        return dict(self._metadata.get(key, {}))

    def keys(self) -> list[str]:
        return sorted(self._values)


class InMemoryEventEmitter:
    """Synchronous fan-out emitter that keeps a history of emitted events."""

    def __init__(self, max_history: int = 500):
        self._handlers: list[Callable[[IntegrationEvent], None]] = []
        self._history: list[IntegrationEvent] = []
        self.max_history = max_history

    def emit(self, event: IntegrationEvent) -> None:
        self._history.append(event)
        if len(self._history) > self.max_history:
            self._history = self._history[-self.max_history:]

        # Fire-and-forget: a failing subscriber never reaches the emitter's caller
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.type)

    def subscribe(self, handler: Callable[[IntegrationEvent], None]) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def history(self) -> list[IntegrationEvent]:
        return list(self._history)

    def of_type(self, event_type: str) -> list[IntegrationEvent]:
        return [e for e in self._history if e.type == event_type]
