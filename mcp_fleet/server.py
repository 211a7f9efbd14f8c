"""Fleet server - exposes the capability hub as MCP tools over stdio."""

import argparse
from collections.abc import Callable
import functools
import logging
import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_CONFIG_PATH, load_config_from_file, load_fleet_settings, load_provider_configs
from .domain.exceptions import FleetError
from .domain.model import CapabilityType, ProviderState
from .hub import CapabilityHub
from .logging_config import get_logger, setup_logging

logger = get_logger(__name__)

DEFAULT_SEARCH_LIMIT = 10


def _tool_error_mapper(exc: Exception) -> dict:
    """Map exceptions to a stable MCP tool error payload."""
    if isinstance(exc, FleetError):
        return exc.to_dict()
    return {
        "error": str(exc) or "unknown error",
        "type": type(exc).__name__,
        "details": {},
    }


def fleet_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    """Turn exceptions raised by a tool into error payloads."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> dict:
        try:
            return fn(*args, **kwargs)
        except (FleetError, ValueError) as e:
            logger.warning("tool_failed", tool=fn.__name__, error=str(e), error_type=type(e).__name__)
            return _tool_error_mapper(e)

    return wrapper


class FleetTools:
    """Tool implementations bound to one hub."""

    def __init__(self, hub: CapabilityHub):
        self._hub = hub

    @fleet_tool
    def fleet_list(self, state_filter: str | None = None) -> dict:
        """
        List all providers with their lifecycle status.

        Args:
            state_filter: Optional state to filter by (stopped, starting, running, error, crashed)
        """
        statuses = self._hub.get_server_statuses()
        if state_filter:
            state = ProviderState(state_filter)
            statuses = [s for s in statuses if s.state == state]
        return {"providers": [s.to_dict() for s in statuses]}

    @fleet_tool
    def fleet_start(self, provider: str) -> dict:
        """Start a provider and return its status."""
        self._hub.start_server(provider)
        return self._status(provider)

    @fleet_tool
    def fleet_stop(self, provider: str) -> dict:
        """Stop a provider."""
        self._hub.stop_server(provider)
        return self._status(provider)

    @fleet_tool
    def fleet_restart(self, provider: str) -> dict:
        """Restart a provider; counts towards its restart total."""
        self._hub.restart_server(provider)
        return self._status(provider)

    @fleet_tool
    def fleet_search(
        self,
        query: str,
        type: str = "any",
        provider: str | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> dict:
        """
        Search tools, resources and prompts across the fleet by keyword.

        Args:
            query: Free-text query
            type: tool, resource, prompt or any
            provider: Only match items owned by this provider
            limit: Maximum number of matches (0 for all)
        """
        matches = self._hub.search(query, type=CapabilityType(type), provider_id=provider, limit=limit)
        return {"query": query, "matches": [m.to_dict() for m in matches]}

    @fleet_tool
    def fleet_relevant(self, command: str, working_directory: str = ".") -> dict:
        """Capabilities relevant to a shell command run in a directory."""
        context = self._hub.get_relevant_context(command, os.path.abspath(working_directory))
        return {
            "tools": [m.to_dict() for m in context["tools"]],
            "resources": [m.to_dict() for m in context["resources"]],
            "suggestions": context["suggestions"],
        }

    @fleet_tool
    def fleet_invoke(self, provider: str, tool: str, arguments: dict[str, Any] | None = None) -> dict:
        """Invoke a tool on a provider. Failures are reported in the result."""
        return self._hub.call_tool(provider, tool, arguments or {}).to_dict()

    @fleet_tool
    def fleet_read(self, provider: str, uri: str) -> dict:
        """Read a resource from a provider."""
        return self._hub.read_resource(provider, uri).to_dict()

    @fleet_tool
    def fleet_health(self) -> dict:
        """Fleet health report with per-provider classification."""
        return self._hub.get_health_report().to_dict()

    @fleet_tool
    def fleet_summary(self) -> dict:
        """Capability counts and connected providers."""
        return {
            "summary": self._hub.get_context_summary().to_dict(),
            "connected": self._hub.get_connected_servers(),
        }

    def _status(self, provider: str) -> dict:
        status = self._hub.get_server_status(provider)
        return status.to_dict() if status else {"provider_id": provider, "state": None}

    TOOL_NAMES = (
        "fleet_list",
        "fleet_start",
        "fleet_stop",
        "fleet_restart",
        "fleet_search",
        "fleet_relevant",
        "fleet_invoke",
        "fleet_read",
        "fleet_health",
        "fleet_summary",
    )


def create_mcp_server(hub: CapabilityHub, name: str = "mcp-fleet") -> FastMCP:
    """Build a FastMCP server with every fleet tool registered."""
    mcp = FastMCP(name)
    tools = FleetTools(hub)
    for tool_name in FleetTools.TOOL_NAMES:
        mcp.tool(name=tool_name)(getattr(tools, tool_name))
    return mcp


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the fleet server."""
    parser = argparse.ArgumentParser(description="MCP capability provider fleet")
    parser.add_argument("--config", type=str, default=None, help=f"YAML config path (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--log-level", type=str, default=None, help="Log level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", default=None, help="Render logs as JSON lines")
    args = parser.parse_args(argv)

    config_path = args.config or os.getenv("MCP_FLEET_CONFIG", DEFAULT_CONFIG_PATH)
    log_level = args.log_level or os.getenv("MCP_FLEET_LOG_LEVEL", "INFO")
    json_logs = args.json_logs if args.json_logs is not None else _env_flag("MCP_FLEET_JSON_LOGS", False)

    setup_logging(level=log_level, json_format=json_logs)

    if Path(config_path).exists():
        logger.info("loading_config_from_file", path=config_path)
        full_config = load_config_from_file(config_path)
        settings = load_fleet_settings(full_config)
        configs = load_provider_configs(full_config)
    else:
        logger.warning("config_not_found_starting_empty", path=config_path)
        settings = load_fleet_settings({})
        configs = []

    hub = CapabilityHub(restart_delay_s=settings.restart_delay_s)
    hub.initialize(configs)
    mcp = create_mcp_server(hub)

    logger.info("mcp_fleet_ready", providers=hub.fleet.provider_ids(), connected=hub.get_connected_servers())
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("mcp_fleet_interrupted")
    finally:
        hub.shutdown()
        logging.shutdown()


if __name__ == "__main__":
    main()
