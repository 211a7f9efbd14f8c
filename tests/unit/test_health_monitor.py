"""Tests for HealthMonitor metrics and classification."""

import time

import pytest

from mcp_fleet.application.health_monitor import HISTORY_CAPACITY, HealthMonitor
from mcp_fleet.domain.events import HealthCheckCompleted, ProviderRemoved
from mcp_fleet.domain.model import HealthCheckResult, HealthStatus


@pytest.fixture
def monitor():
    return HealthMonitor()


def _result(healthy=True, response_time_ms=10.0, provider_id="fs", timestamp=None, error=None):
    return HealthCheckResult(
        provider_id=provider_id,
        healthy=healthy,
        response_time_ms=response_time_ms,
        error=error if healthy is False else None,
        timestamp=time.time() if timestamp is None else timestamp,
    )


def _record(monitor, successes=0, failures=0, provider_id="fs"):
    for _ in range(successes):
        monitor.record_health_check(_result(True, provider_id=provider_id))
    for _ in range(failures):
        monitor.record_health_check(_result(False, provider_id=provider_id, error="timeout"))


class TestRecord:
    """Tests for record_health_check()."""

    def test_first_check_creates_metrics(self, monitor):
        monitor.record_health_check(_result(True, response_time_ms=42.0))

        metrics = monitor.get_metrics("fs")
        assert metrics.total_checks == 1
        assert metrics.failed_checks == 0
        assert metrics.average_response_time_ms == 42.0
        assert metrics.last_success_at is not None
        # No earlier history to compute uptime from
        assert metrics.uptime == 0.0

    def test_counts_failures(self, monitor):
        _record(monitor, successes=2, failures=3)

        metrics = monitor.get_metrics("fs")
        assert metrics.total_checks == 5
        assert metrics.failed_checks == 3
        assert metrics.last_failure_at is not None

    def test_response_time_is_smoothed(self, monitor):
        monitor.record_health_check(_result(response_time_ms=100.0))
        monitor.record_health_check(_result(response_time_ms=200.0))

        assert monitor.get_metrics("fs").average_response_time_ms == pytest.approx(110.0)

    def test_uptime_uses_prior_history(self, monitor):
        _record(monitor, successes=1)
        monitor.record_health_check(_result(False, error="timeout"))

        # Window before the failure held one success
        assert monitor.get_metrics("fs").uptime == 100.0

    def test_uptime_stays_in_range(self, monitor):
        _record(monitor, successes=30, failures=30)

        assert 0.0 <= monitor.get_metrics("fs").uptime <= 100.0

    def test_history_is_bounded(self, monitor):
        _record(monitor, successes=HISTORY_CAPACITY + 25)

        assert len(monitor.get_health_history("fs", limit=0)) == HISTORY_CAPACITY

    def test_history_limit(self, monitor):
        _record(monitor, successes=30)

        assert len(monitor.get_health_history("fs")) == 20
        assert len(monitor.get_health_history("fs", limit=5)) == 5
        assert monitor.get_health_history("missing") == []

    def test_returned_metrics_are_copies(self, monitor):
        _record(monitor, successes=1)

        monitor.get_metrics("fs").total_checks = 99

        assert monitor.get_metrics("fs").total_checks == 1


class TestClassification:
    """Tests for health summaries and the report."""

    def test_unknown_without_metrics(self, monitor):
        summary = monitor.get_server_health_summary("missing")

        assert summary.status == HealthStatus.UNKNOWN
        assert monitor.is_server_healthy("missing") is False

    def test_healthy(self, monitor):
        _record(monitor, successes=25)

        assert monitor.get_server_health_summary("fs").status == HealthStatus.HEALTHY

    def test_twenty_successes_then_five_failures_is_degraded(self, monitor):
        _record(monitor, successes=20, failures=5)

        summary = monitor.get_server_health_summary("fs")
        assert summary.uptime == 80.0
        assert summary.status == HealthStatus.DEGRADED

    def test_unhealthy(self, monitor):
        _record(monitor, successes=5, failures=20)

        assert monitor.get_server_health_summary("fs").status == HealthStatus.UNHEALTHY

    def test_report_counts_buckets(self, monitor):
        _record(monitor, successes=25, provider_id="a")
        _record(monitor, successes=20, failures=5, provider_id="b")
        _record(monitor, failures=25, provider_id="c")

        report = monitor.generate_health_report()

        assert (report.total, report.healthy, report.degraded, report.unhealthy) == (3, 1, 1, 1)
        data = report.to_dict()
        assert data["summary"]["total_servers"] == 3
        assert {s["provider_id"] for s in data["servers"]} == {"a", "b", "c"}


class TestIsServerHealthy:
    """Tests for is_server_healthy()."""

    def test_recent_successes(self, monitor):
        _record(monitor, successes=10)

        assert monitor.is_server_healthy("fs")

    def test_last_check_failed(self, monitor):
        _record(monitor, successes=9, failures=1)

        assert not monitor.is_server_healthy("fs")

    def test_low_success_rate(self, monitor):
        _record(monitor, successes=2, failures=3)
        _record(monitor, successes=1)

        assert not monitor.is_server_healthy("fs")

    def test_stale_last_check(self, monitor):
        now = time.time()
        monitor.record_health_check(_result(True, timestamp=now - 120))

        assert not monitor.is_server_healthy("fs", now=now)
        assert monitor.is_server_healthy("fs", now=now - 100)


class TestEvents:
    """Tests for event-bus wiring."""

    def test_handles_completed_checks(self, monitor):
        monitor.handle(HealthCheckCompleted(result=_result(True)))

        assert monitor.get_metrics("fs").total_checks == 1

    def test_provider_removed_clears_state(self, monitor):
        _record(monitor, successes=3)

        monitor.handle(ProviderRemoved(provider_id="fs"))

        assert monitor.get_metrics("fs") is None
        assert monitor.get_health_history("fs") == []

    def test_clear_all(self, monitor):
        _record(monitor, successes=1, provider_id="a")
        _record(monitor, successes=1, provider_id="b")

        monitor.clear_metrics()

        assert monitor.get_all_metrics() == []
