"""Application layer: supervisors, fleet manager, health monitor and context aggregator."""

from .context_aggregator import ContextAggregator, extract_keywords
from .fleet_manager import FleetManager
from .health_monitor import HealthMonitor
from .supervisor import ProviderSupervisor, RESTART_DELAY_SECONDS

__all__ = [
    "ContextAggregator",
    "FleetManager",
    "HealthMonitor",
    "ProviderSupervisor",
    "RESTART_DELAY_SECONDS",
    "extract_keywords",
]
