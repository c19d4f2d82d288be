"""Roster configuration for devplane.

Example:
    >>> from devplane.config import load_roster
    >>> roster = load_roster(Path("config/services.json"))
    >>> [service.id for service in roster.launch_order()]
"""

from ._loader import load_roster, parse_roster, read_roster_file
from ._models import (
    DEFAULT_HEALTH_INTERVAL,
    DEFAULT_HEALTH_RETRIES,
    MONITORING_SERVICE_ID,
    CleanupConfig,
    LaunchCommand,
    LaunchVariant,
    MonitoringIntegration,
    PerformanceHints,
    Prerequisite,
    RosterConfig,
    ServiceDefinition,
)

__all__ = [
    "DEFAULT_HEALTH_INTERVAL",
    "DEFAULT_HEALTH_RETRIES",
    "MONITORING_SERVICE_ID",
    "CleanupConfig",
    "LaunchCommand",
    "LaunchVariant",
    "MonitoringIntegration",
    "PerformanceHints",
    "Prerequisite",
    "RosterConfig",
    "ServiceDefinition",
    "load_roster",
    "parse_roster",
    "read_roster_file",
]
