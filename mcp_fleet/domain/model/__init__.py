"""Domain model - configuration, status, capability and health records."""

# Re-export enums from value_objects for convenience
from ..value_objects import CapabilityType, HealthStatus, ProviderState, TransportKind
from .capabilities import (
    CapabilityItem,
    FleetContextSnapshot,
    Prompt,
    PromptArgument,
    Resource,
    ResourceContent,
    ResourceRequest,
    Tool,
    ToolCallRequest,
    ToolCallResult,
)
from .health import HealthCheckResult, HealthMetrics, HealthReport, HealthSummary
from .provider_config import ProviderConfig
from .provider_status import ProviderCapabilities, ProviderStatus
from .search import ContextMatch, ContextQuery, ContextSummary

__all__ = [
    "CapabilityItem",
    "CapabilityType",
    "ContextMatch",
    "ContextQuery",
    "ContextSummary",
    "FleetContextSnapshot",
    "HealthCheckResult",
    "HealthMetrics",
    "HealthReport",
    "HealthStatus",
    "HealthSummary",
    "Prompt",
    "PromptArgument",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderState",
    "ProviderStatus",
    "Resource",
    "ResourceContent",
    "ResourceRequest",
    "Tool",
    "ToolCallRequest",
    "ToolCallResult",
    "TransportKind",
]
