"""CapabilityHub - the caller-facing facade over the fleet.

Wires one event bus to the fleet manager, health monitor and context
aggregator, and exposes the operations used by the server and by embedding
applications.
"""

import os
import threading
from typing import Any

from .application.context_aggregator import ContextAggregator
from .application.fleet_manager import FleetManager
from .application.health_monitor import HealthMonitor
from .application.supervisor import ChannelFactory, RESTART_DELAY_SECONDS
from .domain.events import ContextUpdated, DomainEvent, HealthCheckCompleted, ProviderRemoved
from .domain.model import (
    CapabilityType,
    ContextMatch,
    ContextQuery,
    ContextSummary,
    FleetContextSnapshot,
    HealthReport,
    ProviderConfig,
    ProviderStatus,
    ResourceContent,
    ResourceRequest,
    ToolCallRequest,
    ToolCallResult,
)
from .infrastructure.event_bus import EventBus, EventHandler
from .logging_config import get_logger

logger = get_logger(__name__)

RELEVANT_TOOLS_LIMIT = 5
RELEVANT_RESOURCES_LIMIT = 10


class LoggingEventHandler:
    """Logs every domain event at debug level."""

    def handle(self, event: DomainEvent) -> None:
        data = event.to_dict()
        provider_id = getattr(event, "provider_id", None)
        logger.debug("domain_event", event_type=data["event_type"], provider_id=provider_id)


class CapabilityHub:
    """
    Facade wiring the fleet components together.

    Usage:
        hub = CapabilityHub()
        hub.initialize(configs)
        matches = hub.search("git status")
        hub.shutdown()
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        launcher: Any = None,
        channel_factory: ChannelFactory | None = None,
        restart_delay_s: float = RESTART_DELAY_SECONDS,
    ):
        self.event_bus = event_bus or EventBus()
        self.health_monitor = HealthMonitor()
        self.aggregator = ContextAggregator()

        self.event_bus.subscribe(HealthCheckCompleted, self.health_monitor.handle)
        self.event_bus.subscribe(ProviderRemoved, self.health_monitor.handle)
        self.event_bus.subscribe(ContextUpdated, self.aggregator.handle)
        self.event_bus.subscribe_to_all(LoggingEventHandler().handle)

        self.fleet = FleetManager(
            self.event_bus,
            launcher=launcher,
            channel_factory=channel_factory,
            restart_delay_s=restart_delay_s,
        )

        self._initialized = False
        self._init_lock = threading.Lock()

    # --- Lifecycle ---

    def initialize(self, configs: list[ProviderConfig]) -> None:
        """
        Register every enabled config, then start the auto-start ones
        concurrently. Calling it again is a no-op.
        """
        with self._init_lock:
            if self._initialized:
                return
            self._initialized = True

        for config in configs:
            if not config.enabled:
                logger.info("provider_disabled_skipped", provider_id=config.provider_id)
                continue
            # Registration first; start_all launches the auto-start ones concurrently
            self.fleet.add_provider(config, start=False)

        self.fleet.start_all()
        logger.info("fleet_initialized", providers=self.fleet.provider_ids(), connected=self.fleet.get_connected())

    def shutdown(self) -> None:
        """Best-effort stop of every provider."""
        outcomes = self.fleet.stop_all()
        for provider_id, error in outcomes.items():
            if error is not None:
                logger.error("provider_shutdown_failed", provider_id=provider_id, error=error)
        logger.info("fleet_shutdown_complete", providers=len(outcomes))

    def subscribe(self, handler: EventHandler, event_type: type[DomainEvent] | None = None) -> None:
        """Attach a downstream consumer to the fleet's event stream."""
        if event_type is None:
            self.event_bus.subscribe_to_all(handler)
        else:
            self.event_bus.subscribe(event_type, handler)

    # --- Provider management ---

    def add_server(self, config: ProviderConfig) -> None:
        self.fleet.add_provider(config)

    def remove_server(self, provider_id: str) -> None:
        self.fleet.remove_provider(provider_id)

    def start_server(self, provider_id: str) -> None:
        self.fleet.start_provider(provider_id)

    def stop_server(self, provider_id: str) -> None:
        self.fleet.stop_provider(provider_id)

    def restart_server(self, provider_id: str) -> None:
        self.fleet.restart_provider(provider_id)

    def start_all(self) -> dict[str, str | None]:
        return self.fleet.start_all()

    def stop_all(self) -> dict[str, str | None]:
        return self.fleet.stop_all()

    def get_server_status(self, provider_id: str) -> ProviderStatus | None:
        return self.fleet.get_status(provider_id)

    def get_server_statuses(self) -> list[ProviderStatus]:
        return self.fleet.get_all_statuses()

    def get_connected_servers(self) -> list[str]:
        return self.fleet.get_connected()

    # --- Context ---

    def get_aggregated_context(self) -> FleetContextSnapshot:
        return self.aggregator.get_context()

    def get_context_summary(self) -> ContextSummary:
        return self.aggregator.get_context_summary()

    def search(
        self,
        query: str,
        type: CapabilityType | str = CapabilityType.ANY,
        provider_id: str | None = None,
        limit: int | None = None,
    ) -> list[ContextMatch]:
        return self.aggregator.search(ContextQuery(query=query, type=type, provider_id=provider_id, limit=limit))

    def get_relevant_context(self, command: str, working_directory: str) -> dict[str, Any]:
        """
        Capabilities relevant to a shell command run in a directory.

        Returns a dict with 'tools', 'resources' (lists of ContextMatch) and
        human-readable 'suggestions'.
        """
        tools = self.aggregator.search(
            ContextQuery(query=command, type=CapabilityType.TOOL, limit=RELEVANT_TOOLS_LIMIT)
        )
        directory = os.path.basename(os.path.normpath(working_directory)) if working_directory else ""
        resources = self.aggregator.search(
            ContextQuery(
                query=f"file directory {directory}",
                type=CapabilityType.RESOURCE,
                limit=RELEVANT_RESOURCES_LIMIT,
            )
        )

        suggestions = []
        if tools:
            suggestions.append(f"Available tools: {', '.join(m.item.name for m in tools)}")
        if resources:
            suggestions.append(f"Related files: {', '.join(os.path.basename(m.item.uri) for m in resources[:3])}")

        return {"tools": tools, "resources": resources, "suggestions": suggestions}

    # --- Invocation ---

    def call_tool(self, provider_id: str, name: str, arguments: dict[str, Any] | None = None) -> ToolCallResult:
        return self.fleet.call_tool(ToolCallRequest(provider_id=provider_id, name=name, arguments=arguments or {}))

    def read_resource(self, provider_id: str, uri: str) -> ResourceContent:
        return self.fleet.read_resource(ResourceRequest(provider_id=provider_id, uri=uri))

    # --- Health ---

    def get_health_report(self) -> HealthReport:
        return self.health_monitor.generate_health_report()

    def is_server_healthy(self, provider_id: str) -> bool:
        return self.health_monitor.is_server_healthy(provider_id)
