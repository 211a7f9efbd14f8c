"""Health telemetry records."""

from dataclasses import dataclass, field
import time
from typing import Any

from ..value_objects import HealthStatus


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a single liveness probe."""

    provider_id: str
    healthy: bool
    response_time_ms: float
    error: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class HealthMetrics:
    """Rolling health metrics for one provider."""

    provider_id: str
    uptime: float = 0.0
    total_checks: int = 0
    failed_checks: int = 0
    average_response_time_ms: float = 0.0
    last_success_at: float | None = None
    last_failure_at: float | None = None

    @property
    def last_check_at(self) -> float | None:
        candidates = [t for t in (self.last_success_at, self.last_failure_at) if t is not None]
        return max(candidates) if candidates else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "uptime": round(self.uptime, 2),
            "total_checks": self.total_checks,
            "failed_checks": self.failed_checks,
            "average_response_time_ms": round(self.average_response_time_ms, 2),
            "last_success_at": self.last_success_at,
            "last_failure_at": self.last_failure_at,
        }


@dataclass(frozen=True)
class HealthSummary:
    provider_id: str
    status: HealthStatus
    uptime: float = 0.0
    average_response_time_ms: float = 0.0
    last_check_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "status": self.status.value,
            "uptime": round(self.uptime, 2),
            "response_time_ms": round(self.average_response_time_ms, 2),
            "last_check_at": self.last_check_at,
        }


@dataclass(frozen=True)
class HealthReport:
    """Fleet-wide health counts per classification bucket."""

    timestamp: float
    total: int
    healthy: int
    degraded: int
    unhealthy: int
    servers: tuple[HealthSummary, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "summary": {
                "total_servers": self.total,
                "healthy_servers": self.healthy,
                "degraded_servers": self.degraded,
                "unhealthy_servers": self.unhealthy,
            },
            "servers": [s.to_dict() for s in self.servers],
        }
