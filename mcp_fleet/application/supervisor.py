"""Provider supervisor - lifecycle state machine for one provider process."""

from collections.abc import Callable
import subprocess
import threading
import time
from typing import Any

from ..domain.events import (
    HealthCheckCompleted,
    HealthCheckFailed,
    ProviderConnected,
    ProviderDisconnected,
    ProviderError,
    ProviderStateChanged,
)
from ..domain.exceptions import NotConnectedError
from ..domain.model import (
    HealthCheckResult,
    Prompt,
    ProviderConfig,
    ProviderState,
    ProviderStatus,
    Resource,
    ResourceContent,
    Tool,
    ToolCallResult,
)
from ..domain.model.aggregate import AggregateRoot
from ..infrastructure.capability_client import CapabilityChannel, open_stdio_channel
from ..infrastructure.event_bus import EventBus
from ..infrastructure.launcher import SubprocessLauncher
from ..logging_config import get_logger

logger = get_logger(__name__)

RESTART_DELAY_SECONDS = 5.0
PROCESS_KILL_TIMEOUT = 5.0

ChannelFactory = Callable[[ProviderConfig, Any], CapabilityChannel]


class ProviderSupervisor(AggregateRoot):
    """
    Owns one provider process and its capability channel.

    States: stopped -> starting -> running -> {error, crashed} -> starting
    (automatic retry) or stopped (explicit stop).

    Two locks are used. ``_lock`` serializes lifecycle operations (start, stop,
    restart, exit handling, timer-driven restarts). ``_state_lock`` guards only
    the status record and the channel reference, so list and call operations
    never wait behind a slow spawn or handshake. Events raised under either
    lock are published after both are released.
    """

    def __init__(
        self,
        config: ProviderConfig,
        event_bus: EventBus,
        launcher: Any = None,
        channel_factory: ChannelFactory | None = None,
        restart_delay_s: float = RESTART_DELAY_SECONDS,
    ):
        super().__init__()
        self._config = config
        self._event_bus = event_bus
        self._launcher = launcher or SubprocessLauncher()
        self._channel_factory = channel_factory or open_stdio_channel
        self._restart_delay_s = restart_delay_s

        self._status = ProviderStatus(provider_id=config.provider_id)
        self._process: Any = None
        self._channel: CapabilityChannel | None = None

        self._health_stop: threading.Event | None = None
        self._restart_timer: threading.Timer | None = None
        self._restart_generation = 0

        self._lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._publish_lock = threading.RLock()

    # --- Properties ---

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def provider_id(self) -> str:
        return self._config.provider_id

    def get_status(self) -> ProviderStatus:
        """Current immutable status record."""
        with self._state_lock:
            return self._status

    def is_connected(self) -> bool:
        with self._state_lock:
            return self._status.state == ProviderState.RUNNING and self._channel is not None

    # --- Lifecycle ---

    def start(self) -> None:
        """
        Spawn the process and connect. No-op while starting or running.

        Failures never raise: the provider moves to error, a ProviderError
        event is published and the restart policy applies.
        """
        with self._lock:
            self._cancel_restart_timer()
            self._start_internal()
        self._flush_events()

    def stop(self) -> None:
        """Stop the provider. Idempotent; cleanup failures are logged."""
        with self._lock:
            self._stop_internal(reason="stopped")
        self._flush_events()

    def restart(self) -> None:
        """Count a restart, then stop and start regardless of current state."""
        with self._lock:
            self._set_status(restart_count=self._status.restart_count + 1)
            logger.info("provider_restarting", provider_id=self.provider_id, restart_count=self._status.restart_count)
            self._stop_internal(reason="restart")
            self._start_internal()
        self._flush_events()

    def _start_internal(self) -> None:
        """Must hold _lock."""
        if self._status.state in (ProviderState.STARTING, ProviderState.RUNNING):
            return

        self._transition(ProviderState.STARTING)
        start_time = time.perf_counter()

        process = None
        channel = None
        try:
            process = self._launcher.launch(self._config)
            channel = self._channel_factory(self._config, process)
            capabilities = channel.connect()
        except Exception as e:
            self._discard(channel, process)
            self._handle_failure(ProviderState.ERROR, str(e) or type(e).__name__, type(e).__name__)
            return

        with self._state_lock:
            self._process = process
            self._channel = channel

        self._start_health_loop()
        self._start_exit_watcher(process)

        now = time.time()
        self._transition(
            ProviderState.RUNNING,
            connection_time=now,
            last_seen=now,
            capabilities=capabilities,
        )
        self._record_event(ProviderConnected(provider_id=self.provider_id, tools_supported=capabilities.tools))

        logger.info(
            "provider_started",
            provider_id=self.provider_id,
            pid=getattr(process, "pid", None),
            tools=capabilities.tools,
            resources=capabilities.resources,
            prompts=capabilities.prompts,
            startup_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

    def _stop_internal(self, reason: str) -> None:
        """Must hold _lock."""
        self._cancel_restart_timer()
        self._stop_health_loop()

        with self._state_lock:
            channel, process = self._channel, self._process
            self._channel = None
            self._process = None

        if channel is None and process is None and self._status.state == ProviderState.STOPPED:
            return

        self._discard(channel, process)
        self._transition(ProviderState.STOPPED)
        self._record_event(ProviderDisconnected(provider_id=self.provider_id, reason=reason))
        logger.info("provider_stopped", provider_id=self.provider_id, reason=reason)

    def _handle_failure(self, state: ProviderState, message: str, error_type: str) -> None:
        """Move to error/crashed and apply the restart policy. Must hold _lock."""
        self._transition(state, last_error=message)
        self._record_event(ProviderError(provider_id=self.provider_id, error_message=message, error_type=error_type))
        logger.error("provider_failed", provider_id=self.provider_id, state=state.value, error=message)
        self._schedule_restart()

    def _discard(self, channel: CapabilityChannel | None, process: Any) -> None:
        """Close the channel and kill the process, logging every failure."""
        if channel is not None:
            try:
                channel.close()
            except Exception as e:
                logger.warning("channel_close_failed", provider_id=self.provider_id, error=str(e))

        if process is not None and process.poll() is None:
            try:
                process.kill()
                process.wait(timeout=PROCESS_KILL_TIMEOUT)
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning("process_kill_failed", provider_id=self.provider_id, error=str(e))

    # --- Restart policy ---

    def _schedule_restart(self) -> None:
        """Arm the restart timer if the policy allows. Must hold _lock."""
        if not self._config.restart_on_failure:
            return

        if self._status.restart_count >= self._config.max_restarts:
            logger.warning(
                "provider_restart_limit_reached",
                provider_id=self.provider_id,
                restart_count=self._status.restart_count,
                max_restarts=self._config.max_restarts,
            )
            return

        self._cancel_restart_timer()
        self._set_status(restart_count=self._status.restart_count + 1)
        generation = self._restart_generation

        timer = threading.Timer(self._restart_delay_s, self._restart_from_timer, args=(generation,))
        timer.daemon = True
        timer.name = f"restart-{self.provider_id}"
        self._restart_timer = timer
        timer.start()

        logger.info(
            "provider_restart_scheduled",
            provider_id=self.provider_id,
            delay_s=self._restart_delay_s,
            attempt=self._status.restart_count,
        )

    def _cancel_restart_timer(self) -> None:
        """Invalidate any armed restart. Must hold _lock."""
        self._restart_generation += 1
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    def _restart_from_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._restart_generation:
                logger.debug("stale_restart_ignored", provider_id=self.provider_id)
                return
            self._restart_timer = None
            self._stop_internal(reason="restart")
            self._start_internal()
        self._flush_events()

    # --- Process exit ---

    def _start_exit_watcher(self, process: Any) -> None:
        threading.Thread(
            target=self._watch_process,
            args=(process,),
            name=f"exit-watcher-{self.provider_id}",
            daemon=True,
        ).start()

    def _watch_process(self, process: Any) -> None:
        try:
            exit_code = process.wait()
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("process_wait_failed", provider_id=self.provider_id, error=str(e))
            return
        self._on_process_exit(process, exit_code)

    def _on_process_exit(self, process: Any, exit_code: int | None) -> None:
        with self._lock:
            # Already stopped or replaced by a newer process
            if process is not self._process or self._status.state != ProviderState.RUNNING:
                return

            self._stop_health_loop()
            with self._state_lock:
                channel = self._channel
                self._channel = None
                self._process = None
            self._discard(channel, None)

            self._record_event(
                ProviderDisconnected(provider_id=self.provider_id, reason="exited", exit_code=exit_code)
            )
            if exit_code == 0:
                self._transition(ProviderState.STOPPED)
                logger.info("provider_exited", provider_id=self.provider_id, exit_code=exit_code)
            else:
                self._handle_failure(ProviderState.CRASHED, f"process_exited: code={exit_code}", "ProcessExit")
        self._flush_events()

    # --- Health checks ---

    def _start_health_loop(self) -> None:
        interval = self._config.health_check_interval_s
        if interval <= 0:
            return

        stop_event = threading.Event()
        self._health_stop = stop_event
        threading.Thread(
            target=self._health_loop,
            args=(stop_event, interval),
            name=f"health-{self.provider_id}",
            daemon=True,
        ).start()

    def _stop_health_loop(self) -> None:
        if self._health_stop is not None:
            self._health_stop.set()
            self._health_stop = None

    def _health_loop(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            try:
                self.perform_health_check()
            except Exception as e:
                logger.error("health_check_loop_error", provider_id=self.provider_id, error=str(e), exc_info=True)

    def perform_health_check(self) -> HealthCheckResult:
        """
        Ping the provider once.

        Success refreshes last_seen, failure records last_error. The
        lifecycle state is never changed here.
        """
        with self._state_lock:
            channel = self._channel

        started = time.perf_counter()
        error = None
        if channel is None:
            error = "provider_not_connected"
        else:
            try:
                channel.ping()
            except Exception as e:
                error = str(e) or type(e).__name__
        elapsed_ms = (time.perf_counter() - started) * 1000

        now = time.time()
        result = HealthCheckResult(
            provider_id=self.provider_id,
            healthy=error is None,
            response_time_ms=elapsed_ms,
            error=error,
            timestamp=now,
        )

        if error is None:
            self._set_status(last_seen=now)
        else:
            self._set_status(last_error=error)
            logger.warning("health_check_failed", provider_id=self.provider_id, error=error)

        self._record_event(HealthCheckCompleted(result=result))
        if error is not None:
            self._record_event(HealthCheckFailed(provider_id=self.provider_id, error_message=error, result=result))
        self._flush_events()
        return result

    # --- Capability pass-through ---

    def _require_channel(self) -> CapabilityChannel:
        with self._state_lock:
            channel = self._channel
            running = self._status.state == ProviderState.RUNNING
        if channel is None or not running:
            raise NotConnectedError(self.provider_id)
        return channel

    def list_tools(self) -> list[Tool]:
        return self._require_channel().list_tools()

    def list_resources(self) -> list[Resource]:
        return self._require_channel().list_resources()

    def list_prompts(self) -> list[Prompt]:
        return self._require_channel().list_prompts()

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolCallResult:
        """
        Invoke a tool on the provider.

        Raises:
            NotConnectedError: If there is no active channel

        Channel failures are returned as a failed ToolCallResult.
        """
        channel = self._require_channel()
        try:
            return channel.call_tool(name, arguments or {})
        except Exception as e:
            logger.warning("tool_call_failed", provider_id=self.provider_id, tool=name, error=str(e))
            return ToolCallResult.failure(str(e) or type(e).__name__)

    def read_resource(self, uri: str) -> ResourceContent:
        """Read a resource; channel failures come back as a failed ResourceContent."""
        channel = self._require_channel()
        try:
            return channel.read_resource(uri)
        except Exception as e:
            logger.warning("resource_read_failed", provider_id=self.provider_id, uri=uri, error=str(e))
            return ResourceContent.failure(uri, str(e) or type(e).__name__)

    # --- Status bookkeeping ---

    def _set_status(self, **changes: Any) -> ProviderStatus:
        with self._state_lock:
            self._status = self._status.evolve(**changes)
            return self._status

    def _transition(self, new_state: ProviderState, **changes: Any) -> None:
        with self._state_lock:
            old_state = self._status.state
            self._status = self._status.evolve(state=new_state, **changes)
            status = self._status

        if old_state == new_state:
            return

        self._increment_version()
        self._record_event(
            ProviderStateChanged(
                provider_id=self.provider_id,
                old_state=old_state.value,
                new_state=new_state.value,
                status=status,
            )
        )
        logger.debug(
            "provider_state_changed",
            provider_id=self.provider_id,
            old_state=old_state.value,
            new_state=new_state.value,
        )

    def _flush_events(self) -> None:
        """Publish recorded events in order. Never called with _state_lock held."""
        with self._publish_lock:
            while True:
                events = self.collect_events()
                if not events:
                    return
                self._event_bus.publish_all(events)

    def __repr__(self) -> str:
        return f"ProviderSupervisor(provider_id={self.provider_id!r}, state={self.get_status().state.value!r})"
