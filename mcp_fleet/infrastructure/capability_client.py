"""Capability channel - MCP operations against one provider process.

CapabilityChannel is the seam between the supervisor and the wire protocol.
McpChannel implements it on top of StdioClient, validating every payload with
the MCP SDK's protocol models so malformed provider output surfaces as a
ProtocolError instead of a KeyError deep inside the fleet.
"""

from abc import ABC, abstractmethod
import base64
import subprocess
from typing import Any, TypeVar

from mcp import types
from pydantic import BaseModel, ValidationError

from .. import __version__
from ..domain.exceptions import ClientError, ProtocolError, TransportError
from ..domain.model import (
    Prompt,
    PromptArgument,
    ProviderCapabilities,
    ProviderConfig,
    Resource,
    ResourceContent,
    Tool,
    ToolCallResult,
)
from ..logging_config import get_logger
from .stdio_client import StdioClient

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_TOOL_TIMEOUT = 30.0
DEFAULT_PING_TIMEOUT = 5.0

# Upper bound on cursor pages per list call
MAX_LIST_PAGES = 100

CLIENT_NAME = "mcp-fleet"

_Model = TypeVar("_Model", bound=BaseModel)


class CapabilityChannel(ABC):
    """Structured message channel to one capability provider.

    Every method may fail; implementations raise TransportError for channel
    problems and ProtocolError for remote errors.
    """

    @abstractmethod
    def connect(self) -> ProviderCapabilities:
        """Perform the handshake and return the advertised capabilities."""

    @abstractmethod
    def close(self) -> None:
        """Close the channel."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the channel can still carry requests."""

    @abstractmethod
    def list_tools(self) -> list[Tool]:
        pass

    @abstractmethod
    def list_resources(self) -> list[Resource]:
        pass

    @abstractmethod
    def list_prompts(self) -> list[Prompt]:
        pass

    @abstractmethod
    def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        pass

    @abstractmethod
    def read_resource(self, uri: str) -> ResourceContent:
        pass

    @abstractmethod
    def ping(self) -> None:
        """Lightweight liveness probe."""


class McpChannel(CapabilityChannel):
    """MCP over a StdioClient."""

    def __init__(
        self,
        client: StdioClient,
        provider_id: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
        ping_timeout: float = DEFAULT_PING_TIMEOUT,
    ):
        self._client = client
        self._provider_id = provider_id
        self._request_timeout = request_timeout
        self._tool_timeout = tool_timeout
        self._ping_timeout = ping_timeout
        self.server_info: dict[str, Any] = {}

    # --- Handshake ---

    def connect(self) -> ProviderCapabilities:
        result = self._request(
            "initialize",
            {
                "protocolVersion": types.LATEST_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": CLIENT_NAME, "version": __version__},
            },
        )
        init = self._validate(types.InitializeResult, result, "initialize")
        self.server_info = init.serverInfo.model_dump(mode="json")

        try:
            self._client.notify("notifications/initialized")
        except ClientError as e:
            raise TransportError(f"initialized_notification_failed: {e}", provider_id=self._provider_id) from e

        caps = init.capabilities
        logger.debug(
            "provider_handshake_complete",
            provider_id=self._provider_id,
            protocol_version=init.protocolVersion,
            server=self.server_info.get("name"),
        )
        return ProviderCapabilities(
            tools=caps.tools is not None,
            resources=caps.resources is not None,
            prompts=caps.prompts is not None,
            sampling=getattr(caps, "sampling", None) is not None,
            logging=caps.logging is not None,
        )

    def close(self) -> None:
        try:
            self._client.close()
        except (ClientError, OSError, subprocess.SubprocessError) as e:
            raise TransportError(f"close_failed: {e}", provider_id=self._provider_id) from e

    def is_alive(self) -> bool:
        return self._client.is_alive()

    # --- Listing ---

    def list_tools(self) -> list[Tool]:
        return [
            Tool(
                name=t.name,
                description=t.description or "",
                input_schema=dict(t.inputSchema or {}),
                provider_id=self._provider_id,
            )
            for t in self._list_pages("tools/list", types.ListToolsResult, "tools")
        ]

    def list_resources(self) -> list[Resource]:
        return [
            Resource(
                uri=str(r.uri),
                name=r.name,
                description=r.description,
                mime_type=r.mimeType,
                provider_id=self._provider_id,
            )
            for r in self._list_pages("resources/list", types.ListResourcesResult, "resources")
        ]

    def list_prompts(self) -> list[Prompt]:
        return [
            Prompt(
                name=p.name,
                description=p.description,
                arguments=tuple(
                    PromptArgument(name=a.name, description=a.description, required=bool(a.required))
                    for a in (p.arguments or [])
                ),
                provider_id=self._provider_id,
            )
            for p in self._list_pages("prompts/list", types.ListPromptsResult, "prompts")
        ]

    # --- Invocation ---

    def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        result = self._request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            timeout=self._tool_timeout,
        )
        parsed = self._validate(types.CallToolResult, result, "tools/call")
        content = [c.model_dump(mode="json", exclude_none=True) for c in parsed.content]
        texts = [c.text for c in parsed.content if isinstance(c, types.TextContent)]

        error = None
        if parsed.isError:
            error = texts[0] if texts else "tool_reported_error"

        return ToolCallResult(
            success=not parsed.isError,
            content=content,
            error=error,
            is_text=bool(texts),
        )

    def read_resource(self, uri: str) -> ResourceContent:
        result = self._request("resources/read", {"uri": uri})
        parsed = self._validate(types.ReadResourceResult, result, "resources/read")
        if not parsed.contents:
            raise ProtocolError(self._provider_id, f"empty_resource: {uri}")

        first = parsed.contents[0]
        text = first.text if isinstance(first, types.TextResourceContents) else None
        blob = None
        if isinstance(first, types.BlobResourceContents):
            try:
                blob = base64.b64decode(first.blob)
            except ValueError as e:
                raise ProtocolError(self._provider_id, f"invalid_blob: {e}") from e

        return ResourceContent(uri=uri, mime_type=first.mimeType, text=text, blob=blob)

    def ping(self) -> None:
        self._request("ping", {}, timeout=self._ping_timeout)

    # --- Internals ---

    def _request(self, method: str, params: dict[str, Any], timeout: float | None = None) -> dict[str, Any]:
        try:
            response = self._client.call(method, params, timeout=timeout or self._request_timeout)
        except TimeoutError as e:
            raise TransportError(str(e), provider_id=self._provider_id, details={"method": method}) from e
        except ClientError as e:
            raise TransportError(f"{method}_failed: {e}", provider_id=self._provider_id) from e

        if "error" in response:
            error = response["error"] or {}
            message = error.get("message", "unknown")
            if message in ("reader_died", "client_closed"):
                raise TransportError(f"{method}_failed: {message}", provider_id=self._provider_id)
            raise ProtocolError(
                self._provider_id,
                f"{method}_failed: {message}",
                code=error.get("code"),
                details={"method": method},
            )

        return response.get("result") or {}

    def _validate(self, model: type[_Model], data: dict[str, Any], method: str) -> _Model:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(
                self._provider_id,
                f"{method}_invalid_payload: {e.error_count()} validation errors",
                details={"method": method},
            ) from e

    def _list_pages(self, method: str, model: type[BaseModel], attr: str) -> list[Any]:
        items: list[Any] = []
        cursor = None
        for _ in range(MAX_LIST_PAGES):
            params = {"cursor": cursor} if cursor else {}
            page = self._validate(model, self._request(method, params), method)
            items.extend(getattr(page, attr))
            cursor = page.nextCursor
            if not cursor:
                break
        else:
            logger.warning("list_pagination_truncated", provider_id=self._provider_id, method=method)
        return items


def open_stdio_channel(config: ProviderConfig, process: subprocess.Popen) -> McpChannel:
    """Default channel factory: MCP over the process's stdio pipes."""
    client = StdioClient(process, provider_id=config.provider_id)
    return McpChannel(client, config.provider_id)
