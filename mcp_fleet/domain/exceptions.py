"""Domain exceptions.

Every error raised by the fleet derives from FleetError so callers can catch
the whole family at once while still dispatching on the concrete type.
"""

from typing import Any


class FleetError(Exception):
    """Base class for all fleet errors."""

    def __init__(
        self,
        message: str,
        provider_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for tool error payloads and structured logs."""
        return {
            "error": self.message,
            "type": type(self).__name__,
            "provider_id": self.provider_id,
            "details": dict(self.details),
        }


class ConfigurationError(FleetError):
    """Invalid or conflicting provider configuration."""


class ProviderAlreadyExistsError(ConfigurationError):
    """A provider with the same id is already registered."""

    def __init__(self, provider_id: str):
        super().__init__(f"provider_already_exists: {provider_id}", provider_id=provider_id)


class ProviderNotFoundError(FleetError):
    """No provider with the given id is registered."""

    def __init__(self, provider_id: str):
        super().__init__(f"provider_not_found: {provider_id}", provider_id=provider_id)


class NotConnectedError(FleetError):
    """Operation requires an active channel to the provider."""

    def __init__(self, provider_id: str):
        super().__init__(f"provider_not_connected: {provider_id}", provider_id=provider_id)


class TransportError(FleetError):
    """Spawning the process or opening/using/closing the channel failed."""


class ProtocolError(FleetError):
    """The provider answered with an error or an unparseable payload."""

    def __init__(
        self,
        provider_id: str | None,
        message: str,
        code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = dict(details or {})
        if code is not None:
            merged["code"] = code
        super().__init__(message, provider_id=provider_id, details=merged)
        self.code = code


class ClientError(Exception):
    """Low-level stdio client failure (closed client, broken pipe)."""
