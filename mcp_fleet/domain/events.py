"""Domain events published on the fleet event bus.

Events are immutable facts named in past tense. Supervisors and the fleet
manager publish them; the health monitor, context aggregator and any external
subscriber (server, logging, tests) consume them independently.
"""

from dataclasses import dataclass, field
import time
from typing import Any
import uuid

from .model.capabilities import FleetContextSnapshot
from .model.health import HealthCheckResult
from .model.provider_config import ProviderConfig
from .model.provider_status import ProviderStatus


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: uuid.uuid4().hex, kw_only=True)
    occurred_at: float = field(default_factory=time.time, kw_only=True)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {"event_type": self.event_type, "event_id": self.event_id, "occurred_at": self.occurred_at}


@dataclass(frozen=True)
class ProviderAdded(DomainEvent):
    provider_id: str
    config: ProviderConfig


@dataclass(frozen=True)
class ProviderRemoved(DomainEvent):
    provider_id: str


@dataclass(frozen=True)
class ProviderStateChanged(DomainEvent):
    """Published on every lifecycle transition; carries the new status record."""

    provider_id: str
    old_state: str
    new_state: str
    status: ProviderStatus


@dataclass(frozen=True)
class ProviderConnected(DomainEvent):
    provider_id: str
    tools_supported: bool = False


@dataclass(frozen=True)
class ProviderDisconnected(DomainEvent):
    """Channel went away: explicit stop or process exit."""

    provider_id: str
    reason: str = "stopped"
    exit_code: int | None = None


@dataclass(frozen=True)
class ProviderError(DomainEvent):
    provider_id: str
    error_message: str
    error_type: str = "FleetError"


@dataclass(frozen=True)
class HealthCheckCompleted(DomainEvent):
    """One liveness probe finished, healthy or not."""

    result: HealthCheckResult

    @property
    def provider_id(self) -> str:
        return self.result.provider_id


@dataclass(frozen=True)
class HealthCheckFailed(DomainEvent):
    provider_id: str
    error_message: str
    result: HealthCheckResult | None = None


@dataclass(frozen=True)
class ContextUpdated(DomainEvent):
    snapshot: FleetContextSnapshot


__all__ = [
    "DomainEvent",
    "ProviderAdded",
    "ProviderRemoved",
    "ProviderStateChanged",
    "ProviderConnected",
    "ProviderDisconnected",
    "ProviderError",
    "HealthCheckCompleted",
    "HealthCheckFailed",
    "ContextUpdated",
]
