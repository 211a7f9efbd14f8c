"""Provider status record.

A ProviderStatus is immutable. The owning supervisor replaces its record on
every mutation, so any copy handed to a caller stays consistent.
"""

from dataclasses import dataclass, replace
from typing import Any

from ..value_objects import ProviderState


@dataclass(frozen=True)
class ProviderCapabilities:
    """Capability flags advertised by a provider during initialization."""

    tools: bool = False
    resources: bool = False
    prompts: bool = False
    sampling: bool = False
    logging: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "tools": self.tools,
            "resources": self.resources,
            "prompts": self.prompts,
            "sampling": self.sampling,
            "logging": self.logging,
        }


@dataclass(frozen=True)
class ProviderStatus:
    """Point-in-time lifecycle status of one provider."""

    provider_id: str
    state: ProviderState = ProviderState.STOPPED
    last_error: str | None = None
    last_seen: float | None = None
    restart_count: int = 0
    connection_time: float | None = None
    capabilities: ProviderCapabilities | None = None

    @property
    def is_running(self) -> bool:
        return self.state == ProviderState.RUNNING

    def evolve(self, **changes: Any) -> "ProviderStatus":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "state": self.state.value,
            "last_error": self.last_error,
            "last_seen": self.last_seen,
            "restart_count": self.restart_count,
            "connection_time": self.connection_time,
            "capabilities": self.capabilities.to_dict() if self.capabilities else None,
        }
