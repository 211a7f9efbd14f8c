"""Fleet manager - owns the supervisors and the aggregated capability snapshot.

Cross-provider operations (start_all, stop_all, snapshot recomputation) fan out
over a thread pool; one provider's failure never affects the others.
"""

from concurrent.futures import as_completed, ThreadPoolExecutor
import threading
from typing import Any

from ..domain.events import (
    ContextUpdated,
    DomainEvent,
    ProviderAdded,
    ProviderConnected,
    ProviderDisconnected,
    ProviderRemoved,
    ProviderStateChanged,
)
from ..domain.exceptions import ProviderAlreadyExistsError, ProviderNotFoundError
from ..domain.model import (
    FleetContextSnapshot,
    Prompt,
    ProviderConfig,
    ProviderStatus,
    Resource,
    ResourceContent,
    ResourceRequest,
    Tool,
    ToolCallRequest,
    ToolCallResult,
)
from ..infrastructure.event_bus import EventBus
from ..logging_config import get_logger
from .supervisor import ChannelFactory, ProviderSupervisor, RESTART_DELAY_SECONDS

logger = get_logger(__name__)

MAX_WORKERS = 16

_Contribution = tuple[list[Tool], list[Resource], list[Prompt]]


class FleetManager:
    """
    Registry of provider supervisors keyed by provider id.

    The snapshot is recomputed whenever a managed provider changes state,
    connects or disconnects. Recomputations are serialized, so a snapshot
    built from older statuses can never replace a newer one.
    """

    def __init__(
        self,
        event_bus: EventBus,
        launcher: Any = None,
        channel_factory: ChannelFactory | None = None,
        restart_delay_s: float = RESTART_DELAY_SECONDS,
        max_workers: int = MAX_WORKERS,
    ):
        self._event_bus = event_bus
        self._launcher = launcher
        self._channel_factory = channel_factory
        self._restart_delay_s = restart_delay_s
        self._max_workers = max_workers

        self._supervisors: dict[str, ProviderSupervisor] = {}
        self._lock = threading.RLock()
        self._snapshot = FleetContextSnapshot.empty()
        self._snapshot_lock = threading.RLock()

        for event_type in (ProviderStateChanged, ProviderConnected, ProviderDisconnected):
            event_bus.subscribe(event_type, self._on_provider_event)

    # --- Registry ---

    def add_provider(self, config: ProviderConfig, start: bool = True) -> ProviderSupervisor:
        """
        Register a provider and start it if it is enabled and auto-start.

        Pass start=False to only register it (start_all starts it later).

        Raises:
            ProviderAlreadyExistsError: If the id is already registered
        """
        with self._lock:
            if config.provider_id in self._supervisors:
                raise ProviderAlreadyExistsError(config.provider_id)
            supervisor = ProviderSupervisor(
                config,
                self._event_bus,
                launcher=self._launcher,
                channel_factory=self._channel_factory,
                restart_delay_s=self._restart_delay_s,
            )
            self._supervisors[config.provider_id] = supervisor

        logger.info("provider_added", provider_id=config.provider_id, auto_start=config.auto_start)
        self._event_bus.publish(ProviderAdded(provider_id=config.provider_id, config=config))
        self.recompute_snapshot()

        if start and config.enabled and config.auto_start:
            try:
                supervisor.start()
            except Exception as e:
                logger.error("provider_auto_start_failed", provider_id=config.provider_id, error=str(e))
        return supervisor

    def remove_provider(self, provider_id: str) -> None:
        """Stop and forget a provider. Unknown ids are ignored."""
        with self._lock:
            supervisor = self._supervisors.pop(provider_id, None)
        if supervisor is None:
            return

        try:
            supervisor.stop()
        except Exception as e:
            logger.error("provider_stop_failed", provider_id=provider_id, error=str(e))

        logger.info("provider_removed", provider_id=provider_id)
        self._event_bus.publish(ProviderRemoved(provider_id=provider_id))
        self.recompute_snapshot()

    def get_supervisor(self, provider_id: str) -> ProviderSupervisor:
        """
        Raises:
            ProviderNotFoundError: If the id is not registered
        """
        with self._lock:
            supervisor = self._supervisors.get(provider_id)
        if supervisor is None:
            raise ProviderNotFoundError(provider_id)
        return supervisor

    def provider_ids(self) -> list[str]:
        with self._lock:
            return list(self._supervisors)

    def _all_supervisors(self) -> list[ProviderSupervisor]:
        with self._lock:
            return list(self._supervisors.values())

    def __contains__(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._supervisors

    def __len__(self) -> int:
        with self._lock:
            return len(self._supervisors)

    # --- Lifecycle ---

    def start_provider(self, provider_id: str) -> None:
        self.get_supervisor(provider_id).start()

    def stop_provider(self, provider_id: str) -> None:
        self.get_supervisor(provider_id).stop()

    def restart_provider(self, provider_id: str) -> None:
        self.get_supervisor(provider_id).restart()

    def start_all(self) -> dict[str, str | None]:
        """Start every enabled auto-start provider concurrently.

        Returns a mapping of provider id to error message (None on success).
        """
        targets = [s for s in self._all_supervisors() if s.config.enabled and s.config.auto_start]
        return self._fan_out(targets, "start")

    def stop_all(self) -> dict[str, str | None]:
        """Stop every provider concurrently; failures are logged, never raised."""
        return self._fan_out(self._all_supervisors(), "stop")

    def _fan_out(self, supervisors: list[ProviderSupervisor], operation: str) -> dict[str, str | None]:
        outcomes: dict[str, str | None] = {}
        if not supervisors:
            return outcomes

        workers = min(len(supervisors), self._max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"fleet-{operation}") as executor:
            futures = {executor.submit(getattr(s, operation)): s.provider_id for s in supervisors}
            for future in as_completed(futures):
                provider_id = futures[future]
                try:
                    future.result()
                    outcomes[provider_id] = None
                except Exception as e:
                    outcomes[provider_id] = str(e) or type(e).__name__
                    logger.error(f"provider_{operation}_failed", provider_id=provider_id, error=str(e))

        logger.info(
            f"fleet_{operation}_all_complete",
            total=len(outcomes),
            failed=sum(1 for error in outcomes.values() if error is not None),
        )
        return outcomes

    # --- Status ---

    def get_status(self, provider_id: str) -> ProviderStatus | None:
        with self._lock:
            supervisor = self._supervisors.get(provider_id)
        return supervisor.get_status() if supervisor else None

    def get_all_statuses(self) -> list[ProviderStatus]:
        return [s.get_status() for s in self._all_supervisors()]

    def get_connected(self) -> list[str]:
        return [s.provider_id for s in self._all_supervisors() if s.is_connected()]

    def get_snapshot(self) -> FleetContextSnapshot:
        with self._snapshot_lock:
            return self._snapshot

    # --- Snapshot ---

    def _on_provider_event(self, event: DomainEvent) -> None:
        if getattr(event, "provider_id", None) in self:
            self.recompute_snapshot()

    def recompute_snapshot(self) -> FleetContextSnapshot:
        """
        Query every running provider and publish a fresh snapshot.

        A provider whose queries fail contributes nothing to this snapshot.
        """
        with self._snapshot_lock:
            supervisors = self._all_supervisors()
            statuses = [s.get_status() for s in supervisors]
            running = [s for s, status in zip(supervisors, statuses) if status.is_running]

            contributions: dict[str, _Contribution] = {}
            if running:
                workers = min(len(running), self._max_workers)
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fleet-snapshot") as executor:
                    futures = {executor.submit(self._query_capabilities, s): s.provider_id for s in running}
                    for future in as_completed(futures):
                        provider_id = futures[future]
                        try:
                            contributions[provider_id] = future.result()
                        except Exception as e:
                            logger.warning("provider_capability_query_failed", provider_id=provider_id, error=str(e))

            # Registration order keeps the merged lists deterministic
            ordered = [contributions[s.provider_id] for s in running if s.provider_id in contributions]
            snapshot = FleetContextSnapshot.build(
                tools=[t for tools, _, _ in ordered for t in tools],
                resources=[r for _, resources, _ in ordered for r in resources],
                prompts=[p for _, _, prompts in ordered for p in prompts],
                statuses=statuses,
            )
            self._snapshot = snapshot

            logger.debug(
                "fleet_snapshot_updated",
                running=len(running),
                tools=len(snapshot.tools),
                resources=len(snapshot.resources),
                prompts=len(snapshot.prompts),
            )
            self._event_bus.publish(ContextUpdated(snapshot=snapshot))
        return snapshot

    @staticmethod
    def _query_capabilities(supervisor: ProviderSupervisor) -> _Contribution:
        capabilities = supervisor.get_status().capabilities
        # Skip listings the provider did not advertise
        wants_tools = capabilities is None or capabilities.tools
        wants_resources = capabilities is None or capabilities.resources
        wants_prompts = capabilities is None or capabilities.prompts
        return (
            supervisor.list_tools() if wants_tools else [],
            supervisor.list_resources() if wants_resources else [],
            supervisor.list_prompts() if wants_prompts else [],
        )

    # --- Invocation ---

    def call_tool(self, request: ToolCallRequest) -> ToolCallResult:
        """Invoke a tool. Never raises; failures come back as results."""
        with self._lock:
            supervisor = self._supervisors.get(request.provider_id)
        if supervisor is None:
            return ToolCallResult.failure(f"provider_not_found: {request.provider_id}")
        if not supervisor.is_connected():
            return ToolCallResult.failure(f"provider_not_connected: {request.provider_id}")

        try:
            return supervisor.call_tool(request.name, request.arguments)
        except Exception as e:
            logger.warning("tool_call_failed", provider_id=request.provider_id, tool=request.name, error=str(e))
            return ToolCallResult.failure(str(e) or type(e).__name__)

    def read_resource(self, request: ResourceRequest) -> ResourceContent:
        """Read a resource. Never raises; failures come back as results."""
        with self._lock:
            supervisor = self._supervisors.get(request.provider_id)
        if supervisor is None:
            return ResourceContent.failure(request.uri, f"provider_not_found: {request.provider_id}")
        if not supervisor.is_connected():
            return ResourceContent.failure(request.uri, f"provider_not_connected: {request.provider_id}")

        try:
            return supervisor.read_resource(request.uri)
        except Exception as e:
            logger.warning("resource_read_failed", provider_id=request.provider_id, uri=request.uri, error=str(e))
            return ResourceContent.failure(request.uri, str(e) or type(e).__name__)
