"""Search query and result records for the context index."""

from dataclasses import dataclass
from typing import Any

from ..value_objects import CapabilityType
from .capabilities import CapabilityItem


@dataclass(frozen=True)
class ContextQuery:
    """Keyword search over the aggregated capabilities.

    A falsy limit means unlimited.
    """

    query: str
    type: CapabilityType = CapabilityType.ANY
    provider_id: str | None = None
    limit: int | None = None

    def __post_init__(self):
        if not isinstance(self.type, CapabilityType):
            object.__setattr__(self, "type", CapabilityType(self.type))


@dataclass(frozen=True)
class ContextMatch:
    type: CapabilityType
    item: CapabilityItem
    relevance_score: int
    provider_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "item": self.item.to_dict(),
            "relevance_score": self.relevance_score,
            "provider_id": self.provider_id,
        }


@dataclass(frozen=True)
class ContextSummary:
    """Capability counts; 'available' counts only items of running providers."""

    total_tools: int = 0
    available_tools: int = 0
    total_resources: int = 0
    available_resources: int = 0
    total_prompts: int = 0
    available_prompts: int = 0
    connected_servers: int = 0
    total_servers: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_tools": self.total_tools,
            "available_tools": self.available_tools,
            "total_resources": self.total_resources,
            "available_resources": self.available_resources,
            "total_prompts": self.total_prompts,
            "available_prompts": self.available_prompts,
            "connected_servers": self.connected_servers,
            "total_servers": self.total_servers,
        }
