"""Provider configuration - immutable launch description of one provider."""

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from types import MappingProxyType
from typing import Any

from ..exceptions import ConfigurationError
from ..value_objects import TransportKind

DEFAULT_MAX_RESTARTS = 3
DEFAULT_HEALTH_CHECK_INTERVAL_S = 30.0


def _expand_env(value: str) -> str:
    """Expand ${VAR} patterns in string."""
    if not value:
        return value
    if value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], "")
    return value


def _coerce(spec: dict[str, Any], key: str, kind: type, default: Any, provider_id: str) -> Any:
    value = spec.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid_{key}: {value!r}", provider_id=provider_id) from e


@dataclass(frozen=True)
class ProviderConfig:
    """Launch configuration for a capability provider.

    Immutable: changing a provider means removing it and adding it again.
    """

    provider_id: str
    command: str
    name: str = ""
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict, compare=False)
    cwd: str | None = None
    transport: TransportKind = TransportKind.STDIO
    enabled: bool = True
    auto_start: bool = False
    restart_on_failure: bool = True
    max_restarts: int = DEFAULT_MAX_RESTARTS
    health_check_interval_s: float = DEFAULT_HEALTH_CHECK_INTERVAL_S

    def __post_init__(self):
        if not self.provider_id or not str(self.provider_id).strip():
            raise ConfigurationError("missing_field: provider_id")
        if not self.command or not str(self.command).strip():
            raise ConfigurationError("missing_field: command", provider_id=self.provider_id)
        if self.max_restarts < 0:
            raise ConfigurationError(
                f"max_restarts must be >= 0, got {self.max_restarts}",
                provider_id=self.provider_id,
            )
        if self.health_check_interval_s < 0:
            raise ConfigurationError(
                f"health_check_interval_s must be >= 0, got {self.health_check_interval_s}",
                provider_id=self.provider_id,
            )

        # Normalize loosely typed inputs (lists from YAML, transport strings)
        object.__setattr__(self, "env", MappingProxyType({str(k): str(v) for k, v in self.env.items()}))
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        if not isinstance(self.transport, TransportKind):
            try:
                object.__setattr__(self, "transport", TransportKind(str(self.transport)))
            except ValueError as e:
                raise ConfigurationError(
                    f"unsupported_transport: {self.transport}",
                    provider_id=self.provider_id,
                ) from e
        if not self.name:
            object.__setattr__(self, "name", self.provider_id)

    @classmethod
    def from_dict(cls, provider_id: str, spec: dict[str, Any]) -> "ProviderConfig":
        """Build a config from a YAML/JSON mapping.

        Accepts either a list command (``["npx", "server"]``) or a string command
        plus ``args``. Env values of the form ``${VAR}`` are expanded.
        """
        if not isinstance(spec, dict):
            raise ConfigurationError(f"invalid_provider_spec: expected mapping, got {type(spec).__name__}", provider_id)

        command = spec.get("command")
        args = list(spec.get("args") or [])
        if isinstance(command, (list, tuple)):
            if not command:
                raise ConfigurationError("missing_field: command", provider_id=provider_id)
            command, args = str(command[0]), [str(c) for c in command[1:]] + args

        env = {str(k): _expand_env(str(v)) for k, v in (spec.get("env") or {}).items()}

        return cls(
            provider_id=provider_id,
            command=command or "",
            name=spec.get("name", "") or "",
            args=tuple(args),
            env=env,
            cwd=spec.get("cwd"),
            transport=spec.get("transport", TransportKind.STDIO),
            enabled=bool(spec.get("enabled", True)),
            auto_start=bool(spec.get("auto_start", False)),
            restart_on_failure=bool(spec.get("restart_on_failure", True)),
            max_restarts=_coerce(spec, "max_restarts", int, DEFAULT_MAX_RESTARTS, provider_id),
            health_check_interval_s=_coerce(
                spec, "health_check_interval_s", float, DEFAULT_HEALTH_CHECK_INTERVAL_S, provider_id
            ),
        )

    @property
    def argv(self) -> list[str]:
        """Full command line for process spawning."""
        return [self.command, *self.args]

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "cwd": self.cwd,
            "transport": self.transport.value,
            "enabled": self.enabled,
            "auto_start": self.auto_start,
            "restart_on_failure": self.restart_on_failure,
            "max_restarts": self.max_restarts,
            "health_check_interval_s": self.health_check_interval_s,
        }
