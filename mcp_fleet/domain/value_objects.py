"""Value objects shared across the domain."""

from enum import Enum


class ProviderState(str, Enum):
    """Lifecycle state of a supervised provider."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"
    CRASHED = "crashed"

    def __str__(self) -> str:
        return self.value


class TransportKind(str, Enum):
    """How the fleet talks to a provider process."""

    STDIO = "stdio"
    SSE = "sse"
    WEBSOCKET = "websocket"

    def __str__(self) -> str:
        return self.value


class CapabilityType(str, Enum):
    """Kind of capability item, used for search filtering."""

    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"
    ANY = "any"

    def __str__(self) -> str:
        return self.value


class HealthStatus(str, Enum):
    """Classification bucket derived from rolling uptime."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value
