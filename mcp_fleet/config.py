"""YAML configuration loading.

Example::

    fleet:
      restart_delay_s: 5
    providers:
      filesystem:
        command: npx
        args: ["-y", "@modelcontextprotocol/server-filesystem", "."]
        auto_start: true
      git:
        command: ["uvx", "mcp-server-git"]
        env:
          GIT_TOKEN: ${GIT_TOKEN}
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .application.supervisor import RESTART_DELAY_SECONDS
from .domain.exceptions import ConfigurationError
from .domain.model import ProviderConfig
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "fleet.yaml"


@dataclass(frozen=True)
class FleetSettings:
    """Fleet-wide settings from the optional ``fleet:`` section."""

    restart_delay_s: float = RESTART_DELAY_SECONDS

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FleetSettings":
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("invalid_section: fleet must be a mapping")
        try:
            delay = float(data.get("restart_delay_s", RESTART_DELAY_SECONDS))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"invalid_restart_delay: {data.get('restart_delay_s')}") from e
        if delay < 0:
            raise ConfigurationError(f"restart_delay_s must be >= 0, got {delay}")
        return cls(restart_delay_s=delay)


def load_config_from_file(config_path: str | Path) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If the file is not valid YAML or has no 'providers' section
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid_yaml: {config_path}: {e}") from e

    if not isinstance(config, dict) or "providers" not in config:
        raise ConfigurationError(f"Invalid configuration: missing 'providers' section in {config_path}")

    return config


def load_provider_configs(config: dict[str, Any]) -> list[ProviderConfig]:
    """
    Build provider configs from the 'providers' mapping.

    Raises:
        ConfigurationError: If any provider entry is invalid
    """
    providers = config.get("providers") or {}
    if not isinstance(providers, dict):
        raise ConfigurationError("invalid_section: providers must be a mapping keyed by provider id")

    configs = [ProviderConfig.from_dict(str(provider_id), spec) for provider_id, spec in providers.items()]
    logger.debug("provider_configs_loaded", count=len(configs), providers=[c.provider_id for c in configs])
    return configs


def load_fleet_settings(config: dict[str, Any]) -> FleetSettings:
    return FleetSettings.from_dict(config.get("fleet"))
