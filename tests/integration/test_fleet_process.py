"""End-to-end fleet tests with real provider subprocesses."""

from pathlib import Path
import sys
import time

import pytest

from mcp_fleet.domain.events import ProviderError
from mcp_fleet.domain.model import HealthStatus, ProviderConfig, ProviderState
from mcp_fleet.hub import CapabilityHub

pytestmark = pytest.mark.integration

MOCK_PROVIDER = str(Path(__file__).resolve().parent.parent / "mock_provider.py")


def _config(provider_id: str, **overrides) -> ProviderConfig:
    values = {
        "command": sys.executable,
        "args": (MOCK_PROVIDER,),
        "env": {"MOCK_PROVIDER_NAME": provider_id},
        "health_check_interval_s": 0,
    }
    values.update(overrides)
    return ProviderConfig(provider_id=provider_id, **values)


def _wait_for(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


@pytest.fixture
def hub():
    hub = CapabilityHub(restart_delay_s=0.1)
    yield hub
    hub.shutdown()


class TestLifecycle:
    """Start, use and stop real providers."""

    def test_start_lists_capabilities(self, hub):
        hub.initialize([_config("alpha", auto_start=True), _config("beta", auto_start=True)])

        assert sorted(hub.get_connected_servers()) == ["alpha", "beta"]
        status = hub.get_server_status("alpha")
        assert status.state == ProviderState.RUNNING
        assert status.capabilities.tools and status.capabilities.prompts

        context = hub.get_aggregated_context()
        assert sorted(t.name for t in context.tools if t.provider_id == "alpha") == ["add", "crash", "echo"]
        assert [r.uri for r in context.resources if r.provider_id == "beta"] == ["mock://notes/readme"]
        assert len(context.prompts) == 2

    def test_call_tool_and_read_resource(self, hub):
        hub.add_server(_config("alpha", auto_start=True))

        added = hub.call_tool("alpha", "add", {"a": 2, "b": 3})
        unknown = hub.call_tool("alpha", "missing")
        content = hub.read_resource("alpha", "mock://notes/readme")
        missing = hub.read_resource("alpha", "mock://nope")

        assert added.success and added.content[0]["text"] == "5"
        assert not unknown.success
        assert content.text == "hello from the mock provider"
        assert not missing.success

    def test_search_across_fleet(self, hub):
        hub.initialize([_config("alpha", auto_start=True), _config("beta", auto_start=True)])

        matches = hub.search("echo", type="tool")

        assert sorted(m.provider_id for m in matches) == ["alpha", "beta"]

    def test_stop_terminates_process(self, hub):
        hub.add_server(_config("alpha", auto_start=True))
        process = hub.fleet.get_supervisor("alpha")._process

        hub.stop_server("alpha")

        assert process.poll() is not None
        assert hub.get_server_status("alpha").state == ProviderState.STOPPED
        assert hub.get_aggregated_context().tools == ()

    def test_spawn_failure_is_error_state(self, hub):
        hub.add_server(_config("ghost", command="/nonexistent/provider-binary", args=(), restart_on_failure=False))

        hub.start_server("ghost")

        status = hub.get_server_status("ghost")
        assert status.state == ProviderState.ERROR
        assert "spawn_failed" in status.last_error


class TestFailureRecovery:
    """Crash detection and restart policy with real processes."""

    def test_crash_is_restarted(self, hub):
        errors = []
        hub.subscribe(errors.append, ProviderError)
        hub.add_server(_config("alpha", auto_start=True))
        first_pid = hub.fleet.get_supervisor("alpha")._process.pid

        hub.call_tool("alpha", "crash")

        assert _wait_for(lambda: errors)
        assert _wait_for(
            lambda: hub.get_server_status("alpha").state == ProviderState.RUNNING
            and hub.fleet.get_supervisor("alpha")._process.pid != first_pid
        )
        assert hub.get_server_status("alpha").restart_count == 1
        assert hub.call_tool("alpha", "echo", {"text": "back"}).content[0]["text"] == "back"

    def test_exit_after_handshake_exhausts_restarts(self, hub):
        errors = []
        hub.subscribe(errors.append, ProviderError)
        hub.add_server(_config("flaky", auto_start=True, max_restarts=2, env={"MOCK_PROVIDER_EXIT_CODE": "3"}))

        # Initial run plus two restarts
        assert _wait_for(lambda: len(errors) == 3)
        time.sleep(0.3)
        assert len(errors) == 3
        assert errors[-1].error_message == "process_exited: code=3"
        assert hub.get_server_status("flaky").restart_count == 2
        assert hub.get_server_status("flaky").state == ProviderState.CRASHED

    def test_clean_exit_is_not_restarted(self, hub):
        hub.add_server(_config("once", auto_start=True, env={"MOCK_PROVIDER_EXIT_CODE": "0"}))

        assert _wait_for(lambda: hub.get_server_status("once").state == ProviderState.STOPPED)
        time.sleep(0.3)
        assert hub.get_server_status("once").restart_count == 0


class TestNoisyOutput:
    """Providers whose stdout misbehaves."""

    def test_invalid_utf8_lines_are_skipped(self, hub):
        hub.add_server(
            _config("noisy", auto_start=True, env={"MOCK_PROVIDER_GARBAGE": "1"}, restart_on_failure=False)
        )
        supervisor = hub.fleet.get_supervisor("noisy")

        assert hub.get_server_status("noisy").state == ProviderState.RUNNING
        assert sorted(t.name for t in hub.get_aggregated_context().tools) == ["add", "crash", "echo"]
        assert supervisor.perform_health_check().healthy
        assert hub.call_tool("noisy", "echo", {"text": "still here"}).content[0]["text"] == "still here"

    def test_silent_provider_is_treated_as_crashed(self, hub):
        hub.add_server(
            _config("mute", auto_start=True, env={"MOCK_PROVIDER_MUTE": "1"}, restart_on_failure=False)
        )

        assert _wait_for(lambda: hub.get_server_status("mute").state == ProviderState.CRASHED)
        assert hub.get_server_status("mute").last_error.startswith("process_exited")


class TestHealth:
    """Health probes over the real channel."""

    def test_probes_feed_health_report(self, hub):
        hub.add_server(_config("alpha", auto_start=True, health_check_interval_s=0.05))

        assert _wait_for(lambda: hub.is_server_healthy("alpha"))
        assert _wait_for(lambda: hub.get_health_report().servers[0].status == HealthStatus.HEALTHY)
        assert hub.health_monitor.get_metrics("alpha").failed_checks == 0
