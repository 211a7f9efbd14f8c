"""MCP Fleet - supervision and context search for MCP capability providers."""

__version__ = "0.1.0"

from .domain.exceptions import (  # noqa: E402
    ConfigurationError,
    FleetError,
    NotConnectedError,
    ProtocolError,
    ProviderAlreadyExistsError,
    ProviderNotFoundError,
    TransportError,
)
from .domain.model import ProviderConfig, ProviderState, ProviderStatus  # noqa: E402
from .hub import CapabilityHub  # noqa: E402

__all__ = [
    "__version__",
    "CapabilityHub",
    "ConfigurationError",
    "FleetError",
    "NotConnectedError",
    "ProtocolError",
    "ProviderAlreadyExistsError",
    "ProviderConfig",
    "ProviderNotFoundError",
    "ProviderState",
    "ProviderStatus",
    "TransportError",
]
