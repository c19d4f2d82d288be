"""Data models for the monitoring system.

Everything here is serialized to dashboard clients, so the models use
camelCase aliases on the wire and snake_case in Python.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class _WireModel(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )


class LogLevel(StrEnum):
    """Severity of a collected log event."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ServiceStatus(StrEnum):
    """Reachability of a monitored service port."""

    UNKNOWN = "unknown"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class AlertLevel(StrEnum):
    """Severity of an alert."""

    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertCategory(StrEnum):
    """What an alert is about. Part of the de-duplication key."""

    DOWN = "down"
    CPU = "cpu"
    MEMORY = "memory"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class MonitoredService:
    """A service tracked by the log collector.

    Attributes:
        id: Roster id of the service.
        name: Display name.
        port: Port probed for reachability.
        log_dir: Directory for per-service log files, if any.
    """

    id: str
    name: str
    port: int
    log_dir: Path | None = None


class LogEntry(_WireModel):
    """One collected log event."""

    timestamp: datetime
    service: str
    level: LogLevel
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class Alert(_WireModel):
    """A threshold or manually raised alert."""

    id: int
    service: str
    level: AlertLevel
    category: AlertCategory
    message: str
    timestamp: datetime
    acknowledged: bool = False


class ProcessMetrics(_WireModel):
    """Resource usage of the process owning a service port.

    Attributes:
        cpu: CPU usage in percent since the previous sample.
        memory: Resident set size in bytes.
        ppid: Parent process id.
        ctime: Process creation time as a UNIX timestamp.
        elapsed: Seconds since the process was created.
    """

    cpu: float
    memory: int
    ppid: int | None = None
    ctime: float
    elapsed: float


class ServiceMetrics(_WireModel):
    """Point-in-time state of one monitored service."""

    name: str
    status: ServiceStatus
    port: int
    pid: int | None = None
    process_metrics: ProcessMetrics | None = None


class MemoryMetrics(_WireModel):
    """System memory figures in bytes."""

    total: int
    free: int
    used: int
    percentage: float


class SystemMetrics(_WireModel):
    """OS-level figures.

    Attributes:
        cpu: 1, 5 and 15 minute load averages.
        memory: Memory figures.
        uptime: Seconds since boot.
    """

    cpu: list[float]
    memory: MemoryMetrics
    uptime: float


class MetricsSnapshot(_WireModel):
    """One collection tick: system figures plus every service."""

    timestamp: datetime
    system: SystemMetrics
    services: dict[str, ServiceMetrics]


class CollectorStatus(_WireModel):
    """Current collector state for dashboard clients."""

    services: dict[str, ServiceMetrics]
    log_buffer_size: int
    recent_logs: list[LogEntry]


class AlertCreate(_WireModel):
    """Request body for manually raising an alert."""

    service: str
    level: AlertLevel
    message: str


class Envelope(_WireModel, Generic[T]):
    """Response envelope of every REST endpoint."""

    success: bool = True
    data: T


class HealthResponse(_WireModel):
    """Liveness of the monitoring server itself."""

    status: str
    timestamp: datetime
    uptime: float
    memory: dict[str, int]
