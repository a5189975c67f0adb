"""Integration state machine.

States are an enum; transitions are a pure function of
``(current_state, event) -> new_state``. The controller and the tests
drive the machine through the same function, so there is no mutable
state to reach into.

    NotConfigured --Connected--> Active
    Active / Error / Suspended --StatusChanged(x)--> x
    any --Disconnected--> NotConfigured (state is None)
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class IntegrationStatus(str, Enum):
    """Connection status of an integration instance."""

    NOT_CONFIGURED = "NotConfigured"
    ACTIVE = "Active"
    ERROR = "Error"
    SUSPENDED = "Suspended"


@dataclass(frozen=True)
class IntegrationState:
    """Snapshot of a configured integration.

    ``None`` stands for NotConfigured, so a record always carries a
    configured status.
    """

    type: str
    status: IntegrationStatus
    connected_at: datetime
    last_activity_at: datetime
    error: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.status == IntegrationStatus.NOT_CONFIGURED:
            raise ValueError("A configured integration state cannot have status NotConfigured")
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def get(self, name: str, default: Any = None) -> Any:
        """Look up an integration-specific attribute."""
        return self.attributes.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status.value,
            "connected_at": self.connected_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "error": self.error,
            **dict(self.attributes),
        }


_STATE_FIELDS = {f.name for f in fields(IntegrationState)} - {"attributes"}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Connected:
    integration_type: str
    at: datetime
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusChanged:
    status: IntegrationStatus
    at: datetime
    error: Optional[str] = None


@dataclass(frozen=True)
class Touched:
    """Activity observed (refresh, successful call)."""

    at: datetime


@dataclass(frozen=True)
class Updated:
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class Disconnected:
    pass


LifecycleEvent = Union[Connected, StatusChanged, Touched, Updated, Disconnected]


# ---------------------------------------------------------------------------
# Transition function
# ---------------------------------------------------------------------------

def _advance(current: datetime, at: datetime) -> datetime:
    # last_activity_at never moves backwards
    return at if at > current else current


def transition(state: Optional[IntegrationState], event: LifecycleEvent) -> Optional[IntegrationState]:
    """Apply a lifecycle event and return the resulting state.

    Events other than ``Connected`` leave an unconfigured (``None``) state
    untouched. Raises ValueError for a status change to NotConfigured.
    """
    if isinstance(event, Connected):
        # Reconnecting overwrites; nothing is merged from the previous record
        return IntegrationState(
            type=event.integration_type,
            status=IntegrationStatus.ACTIVE,
            connected_at=event.at,
            last_activity_at=event.at,
            attributes=dict(event.attributes),
        )

    if isinstance(event, Disconnected):
        return None

    if isinstance(event, StatusChanged) and event.status == IntegrationStatus.NOT_CONFIGURED:
        raise ValueError("Cannot set status NotConfigured; disconnect the integration instead")

    if state is None:
        return None

    if isinstance(event, StatusChanged):
        return replace(
            state,
            status=IntegrationStatus(event.status),
            error=event.error,
            last_activity_at=_advance(state.last_activity_at, event.at),
        )

    if isinstance(event, Touched):
        return replace(state, last_activity_at=_advance(state.last_activity_at, event.at))

    if isinstance(event, Updated):
        known = {k: v for k, v in event.changes.items() if k in _STATE_FIELDS}
        extra = {k: v for k, v in event.changes.items() if k not in _STATE_FIELDS}
        if "status" in known:
            known["status"] = IntegrationStatus(known["status"])
        attributes = {**state.attributes, **extra}
        return replace(state, attributes=attributes, **known)

    raise TypeError(f"Unknown lifecycle event: {event!r}")
