"""Capability items advertised by providers, and the fleet-wide snapshot."""

from collections.abc import Iterable
from dataclasses import dataclass, field
import time
from typing import Any, TypeVar

from .provider_status import ProviderStatus


@dataclass(frozen=True)
class Tool:
    """An invokable, schema-described capability."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=dict, compare=False)
    provider_id: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.provider_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "provider_id": self.provider_id,
        }


@dataclass(frozen=True)
class Resource:
    """A URI-addressable readable artifact."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None
    provider_id: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.uri, self.provider_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
            "provider_id": self.provider_id,
        }


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str | None = None
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "required": self.required}


@dataclass(frozen=True)
class Prompt:
    """A named, parameterized prompt template."""

    name: str
    description: str | None = None
    arguments: tuple[PromptArgument, ...] = ()
    provider_id: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.provider_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [a.to_dict() for a in self.arguments],
            "provider_id": self.provider_id,
        }


CapabilityItem = Tool | Resource | Prompt

_Item = TypeVar("_Item", Tool, Resource, Prompt)


def _unique(items: Iterable[_Item]) -> tuple[_Item, ...]:
    """Drop items whose identity key was already seen (first one wins)."""
    seen: set[tuple[str, str]] = set()
    unique = []
    for item in items:
        if item.key in seen:
            continue
        seen.add(item.key)
        unique.append(item)
    return tuple(unique)


@dataclass(frozen=True)
class FleetContextSnapshot:
    """Immutable point-in-time aggregation of fleet capabilities and statuses."""

    tools: tuple[Tool, ...] = ()
    resources: tuple[Resource, ...] = ()
    prompts: tuple[Prompt, ...] = ()
    statuses: tuple[ProviderStatus, ...] = ()
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def build(
        cls,
        tools: Iterable[Tool] = (),
        resources: Iterable[Resource] = (),
        prompts: Iterable[Prompt] = (),
        statuses: Iterable[ProviderStatus] = (),
        timestamp: float | None = None,
    ) -> "FleetContextSnapshot":
        """Build a snapshot, dropping later duplicates by identity key."""
        return cls(
            tools=_unique(tools),
            resources=_unique(resources),
            prompts=_unique(prompts),
            statuses=tuple(statuses),
            timestamp=time.time() if timestamp is None else timestamp,
        )

    @classmethod
    def empty(cls) -> "FleetContextSnapshot":
        return cls()

    def running_provider_ids(self) -> set[str]:
        return {s.provider_id for s in self.statuses if s.is_running}

    def to_dict(self) -> dict[str, Any]:
        return {
            "tools": [t.to_dict() for t in self.tools],
            "resources": [r.to_dict() for r in self.resources],
            "prompts": [p.to_dict() for p in self.prompts],
            "servers": [s.to_dict() for s in self.statuses],
            "last_updated": self.timestamp,
        }


@dataclass(frozen=True)
class ToolCallRequest:
    provider_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of a tool invocation; failures are values, not exceptions."""

    success: bool
    content: list[dict[str, Any]] = field(default_factory=list, compare=False)
    error: str | None = None
    is_text: bool = False

    @classmethod
    def failure(cls, error: str) -> "ToolCallResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "content": self.content,
            "error": self.error,
            "is_text": self.is_text,
        }


@dataclass(frozen=True)
class ResourceRequest:
    provider_id: str
    uri: str


@dataclass(frozen=True)
class ResourceContent:
    """Contents of a read resource, or a structured failure."""

    uri: str
    success: bool = True
    mime_type: str | None = None
    text: str | None = None
    blob: bytes | None = None
    error: str | None = None

    @classmethod
    def failure(cls, uri: str, error: str) -> "ResourceContent":
        return cls(uri=uri, success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "success": self.success,
            "mimeType": self.mime_type,
            "text": self.text,
            "blob_size": len(self.blob) if self.blob is not None else None,
            "error": self.error,
        }
