"""Monitoring backbone for devplane.

The monitoring service runs as its own process (`devplane monitor`). It
consists of:

- LogCollector: probes service ports, gathers OS and process metrics and
  buffers log events, persisting them through MonitoringStorage
- AlertEngine: threshold alerts with per-category de-duplication windows
- MonitoringServer: REST endpoints and WebSocket push to dashboard clients
"""

from ._alerts import (
    CPU_THRESHOLD,
    DEDUP_WINDOWS,
    MAX_ALERTS,
    MEMORY_THRESHOLD,
    SYSTEM_SERVICE,
    AlertEngine,
)
from ._api import create_monitoring_router
from ._broadcast import ConnectionManager, encode_message
from ._buffer import DEFAULT_BUFFER_CAPACITY, LogBuffer
from ._collector import LogCollector, PidResolver, PortProbe, probe_port
from ._models import (
    Alert,
    AlertCategory,
    AlertCreate,
    AlertLevel,
    CollectorStatus,
    Envelope,
    HealthResponse,
    LogEntry,
    LogLevel,
    MemoryMetrics,
    MetricsSnapshot,
    MonitoredService,
    ProcessMetrics,
    ServiceMetrics,
    ServiceStatus,
    SystemMetrics,
)
from ._schedule import run_every
from ._server import MonitoringServer
from ._storage import MonitoringStorage

__all__ = [
    "CPU_THRESHOLD",
    "DEDUP_WINDOWS",
    "DEFAULT_BUFFER_CAPACITY",
    "MAX_ALERTS",
    "MEMORY_THRESHOLD",
    "SYSTEM_SERVICE",
    "Alert",
    "AlertCategory",
    "AlertCreate",
    "AlertEngine",
    "AlertLevel",
    "CollectorStatus",
    "ConnectionManager",
    "Envelope",
    "HealthResponse",
    "LogBuffer",
    "LogCollector",
    "LogEntry",
    "LogLevel",
    "MemoryMetrics",
    "MetricsSnapshot",
    "MonitoredService",
    "MonitoringServer",
    "MonitoringStorage",
    "PidResolver",
    "PortProbe",
    "ProcessMetrics",
    "ServiceMetrics",
    "ServiceStatus",
    "SystemMetrics",
    "create_monitoring_router",
    "encode_message",
    "probe_port",
    "run_every",
]
