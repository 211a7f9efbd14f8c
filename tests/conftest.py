"""Shared fixtures: in-memory stand-ins for provider processes and channels."""

import itertools
import subprocess
import threading
import time

import pytest

from mcp_fleet.domain.model import (
    Prompt,
    ProviderCapabilities,
    ProviderConfig,
    Resource,
    ResourceContent,
    Tool,
    ToolCallResult,
)
from mcp_fleet.infrastructure.event_bus import EventBus


class FakeProcess:
    """Popen look-alike whose exit is controlled by the test."""

    _pids = itertools.count(1000)

    def __init__(self, exit_code: int | None = None):
        self.pid = next(self._pids)
        self.returncode = None
        self.killed = False
        self._exited = threading.Event()
        if exit_code is not None:
            self.exit(exit_code)

    def exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired("fake-provider", timeout)
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    terminate = kill


class FakeLauncher:
    """Hands out FakeProcess objects; optionally ones that already exited."""

    def __init__(self, exit_code: int | None = None, error: Exception | None = None):
        self.exit_code = exit_code
        self.error = error
        self.processes: list[FakeProcess] = []
        self._lock = threading.Lock()

    @property
    def launch_count(self) -> int:
        with self._lock:
            return len(self.processes)

    def launch(self, config: ProviderConfig) -> FakeProcess:
        if self.error is not None:
            raise self.error
        process = FakeProcess(exit_code=self.exit_code)
        with self._lock:
            self.processes.append(process)
        return process


class FakeChannel:
    """In-memory capability channel."""

    def __init__(
        self,
        provider_id: str,
        tools: list[str] | None = None,
        resources: list[tuple[str, str]] | None = None,
        prompts: list[str] | None = None,
        descriptions: dict[str, str] | None = None,
        connect_error: Exception | None = None,
        close_error: Exception | None = None,
        ping_error: Exception | None = None,
        list_error: Exception | None = None,
        call_error: Exception | None = None,
    ):
        self.provider_id = provider_id
        self.tool_names = tools or []
        self.resource_specs = resources or []
        self.prompt_names = prompts or []
        self.descriptions = descriptions or {}
        self.connect_error = connect_error
        self.close_error = close_error
        self.ping_error = ping_error
        self.list_error = list_error
        self.call_error = call_error
        self.closed = False
        self.pings = 0
        self.calls: list[tuple[str, dict]] = []

    def connect(self) -> ProviderCapabilities:
        if self.connect_error is not None:
            raise self.connect_error
        return ProviderCapabilities(tools=True, resources=True, prompts=True)

    def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    def is_alive(self) -> bool:
        return not self.closed

    def list_tools(self) -> list[Tool]:
        if self.list_error is not None:
            raise self.list_error
        return [
            Tool(name=n, description=self.descriptions.get(n, ""), provider_id=self.provider_id)
            for n in self.tool_names
        ]

    def list_resources(self) -> list[Resource]:
        if self.list_error is not None:
            raise self.list_error
        return [
            Resource(uri=uri, name=name, description=self.descriptions.get(uri), provider_id=self.provider_id)
            for uri, name in self.resource_specs
        ]

    def list_prompts(self) -> list[Prompt]:
        if self.list_error is not None:
            raise self.list_error
        return [
            Prompt(name=n, description=self.descriptions.get(n), provider_id=self.provider_id)
            for n in self.prompt_names
        ]

    def call_tool(self, name: str, arguments: dict) -> ToolCallResult:
        self.calls.append((name, arguments))
        if self.call_error is not None:
            raise self.call_error
        return ToolCallResult(success=True, content=[{"type": "text", "text": f"{name} ok"}], is_text=True)

    def read_resource(self, uri: str) -> ResourceContent:
        return ResourceContent(uri=uri, mime_type="text/plain", text=f"contents of {uri}")

    def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error


class FakeChannelFactory:
    """Channel factory with per-provider channel options."""

    def __init__(self):
        self.options: dict[str, dict] = {}
        self.channels: list[FakeChannel] = []
        self._lock = threading.Lock()

    def configure(self, provider_id: str, **options) -> None:
        self.options[provider_id] = options

    def latest(self, provider_id: str) -> FakeChannel:
        with self._lock:
            return [c for c in self.channels if c.provider_id == provider_id][-1]

    def __call__(self, config: ProviderConfig, process) -> FakeChannel:
        channel = FakeChannel(config.provider_id, **self.options.get(config.provider_id, {}))
        with self._lock:
            self.channels.append(channel)
        return channel


def _wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Every event published on the bus, in order."""
    events = []
    event_bus.subscribe_to_all(events.append)
    return events


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def channels():
    return FakeChannelFactory()


@pytest.fixture
def make_config():
    """Factory for provider configs with probes disabled by default."""

    def factory(provider_id: str = "fs", **overrides) -> ProviderConfig:
        values = {"command": "fake-server", "health_check_interval_s": 0}
        values.update(overrides)
        return ProviderConfig(provider_id=provider_id, **values)

    return factory


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def launcher_factory():
    """Build launchers with custom behaviour (crashing processes, spawn errors)."""
    return FakeLauncher
