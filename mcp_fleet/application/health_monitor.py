"""Health monitor - rolling health metrics and classification per provider."""

from collections import deque
import threading
import time

from ..domain.events import DomainEvent, HealthCheckCompleted, ProviderRemoved
from ..domain.model import HealthCheckResult, HealthMetrics, HealthReport, HealthStatus, HealthSummary
from ..logging_config import get_logger

logger = get_logger(__name__)

HISTORY_CAPACITY = 100
UPTIME_WINDOW = 20
HEALTHY_WINDOW = 10
HEALTHY_SUCCESS_RATE = 0.8
HEALTHY_RECENCY_S = 60.0
RESPONSE_TIME_ALPHA = 0.1

HEALTHY_UPTIME = 95.0
DEGRADED_UPTIME = 80.0


class HealthMonitor:
    """
    Consumes health-check results and keeps per-provider metrics.

    Uptime is the success ratio over the last UPTIME_WINDOW history entries
    recorded before the current result. Response time is exponentially
    smoothed; the first sample seeds the average.
    """

    def __init__(self):
        self._metrics: dict[str, HealthMetrics] = {}
        self._history: dict[str, deque[HealthCheckResult]] = {}
        self._lock = threading.Lock()

    def handle(self, event: DomainEvent) -> None:
        """Event bus entry point."""
        if isinstance(event, HealthCheckCompleted):
            self.record_health_check(event.result)
        elif isinstance(event, ProviderRemoved):
            self.clear_metrics(event.provider_id)

    def record_health_check(self, result: HealthCheckResult) -> HealthMetrics:
        with self._lock:
            metrics = self._metrics.get(result.provider_id)
            if metrics is None:
                metrics = HealthMetrics(provider_id=result.provider_id)
                self._metrics[result.provider_id] = metrics
            history = self._history.setdefault(result.provider_id, deque(maxlen=HISTORY_CAPACITY))

            metrics.total_checks += 1
            if result.healthy:
                metrics.last_success_at = result.timestamp
            else:
                metrics.failed_checks += 1
                metrics.last_failure_at = result.timestamp

            window = list(history)[-UPTIME_WINDOW:]
            if window:
                metrics.uptime = sum(1 for r in window if r.healthy) * 100 / len(window)
            else:
                metrics.uptime = 0.0

            if metrics.total_checks == 1:
                metrics.average_response_time_ms = result.response_time_ms
            else:
                metrics.average_response_time_ms = (
                    RESPONSE_TIME_ALPHA * result.response_time_ms
                    + (1 - RESPONSE_TIME_ALPHA) * metrics.average_response_time_ms
                )

            history.append(result)

        if not result.healthy:
            logger.debug("health_check_recorded_failure", provider_id=result.provider_id, error=result.error)
        return metrics

    # --- Classification ---

    @staticmethod
    def _classify(metrics: HealthMetrics | None) -> HealthStatus:
        if metrics is None:
            return HealthStatus.UNKNOWN
        if metrics.uptime >= HEALTHY_UPTIME:
            return HealthStatus.HEALTHY
        if metrics.uptime >= DEGRADED_UPTIME:
            return HealthStatus.DEGRADED
        return HealthStatus.UNHEALTHY

    @staticmethod
    def _summarize(provider_id: str, metrics: HealthMetrics | None) -> HealthSummary:
        if metrics is None:
            return HealthSummary(provider_id=provider_id, status=HealthStatus.UNKNOWN)
        return HealthSummary(
            provider_id=provider_id,
            status=HealthMonitor._classify(metrics),
            uptime=metrics.uptime,
            average_response_time_ms=metrics.average_response_time_ms,
            last_check_at=metrics.last_check_at,
        )

    def get_server_health_summary(self, provider_id: str) -> HealthSummary:
        with self._lock:
            return self._summarize(provider_id, self._metrics.get(provider_id))

    def is_server_healthy(self, provider_id: str, now: float | None = None) -> bool:
        """
        True if the last HEALTHY_WINDOW checks succeeded at least 80% of the
        time and the most recent one succeeded within HEALTHY_RECENCY_S.
        """
        now = time.time() if now is None else now
        with self._lock:
            if provider_id not in self._metrics:
                return False
            recent = list(self._history.get(provider_id, ()))[-HEALTHY_WINDOW:]

        if not recent:
            return False
        success_rate = sum(1 for r in recent if r.healthy) / len(recent)
        latest = recent[-1]
        return success_rate >= HEALTHY_SUCCESS_RATE and latest.healthy and now - latest.timestamp <= HEALTHY_RECENCY_S

    def generate_health_report(self) -> HealthReport:
        with self._lock:
            servers = tuple(self._summarize(pid, metrics) for pid, metrics in self._metrics.items())

        return HealthReport(
            timestamp=time.time(),
            total=len(servers),
            healthy=sum(1 for s in servers if s.status == HealthStatus.HEALTHY),
            degraded=sum(1 for s in servers if s.status == HealthStatus.DEGRADED),
            unhealthy=sum(1 for s in servers if s.status == HealthStatus.UNHEALTHY),
            servers=servers,
        )

    # --- Queries ---

    def get_metrics(self, provider_id: str) -> HealthMetrics | None:
        with self._lock:
            metrics = self._metrics.get(provider_id)
            return HealthMetrics(**vars(metrics)) if metrics else None

    def get_all_metrics(self) -> list[HealthMetrics]:
        with self._lock:
            return [HealthMetrics(**vars(m)) for m in self._metrics.values()]

    def get_health_history(self, provider_id: str, limit: int = 20) -> list[HealthCheckResult]:
        """Most recent results, oldest first."""
        with self._lock:
            history = list(self._history.get(provider_id, ()))
        return history[-limit:] if limit else history

    def clear_metrics(self, provider_id: str | None = None) -> None:
        with self._lock:
            if provider_id is None:
                self._metrics.clear()
                self._history.clear()
            else:
                self._metrics.pop(provider_id, None)
                self._history.pop(provider_id, None)
