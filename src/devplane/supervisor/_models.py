"""Data models for the supervisor system.

This module defines the core data types for service management:
- ServiceState: Lifecycle states for managed services
- ServiceEventType: Types of lifecycle events
- ServiceEvent: Immutable event records
- ServiceRuntimeState: Mutable runtime state of a spawned service
- ExitRecord: How a supervised process terminated
- LaunchReport, HealthSummary, ShutdownReport: Results of run phases
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import anyio

if TYPE_CHECKING:
    from devplane.exceptions import ServiceError, ShutdownTimeoutError


class ServiceState(StrEnum):
    """Service lifecycle states.

    Transitions:
    - UNSTARTED -> STARTING: process spawned
    - STARTING -> HEALTHY | FAILED: health-check outcome
    - any -> STOPPED: process exit

    Only HEALTHY unlocks dependents (early-start services excepted).
    """

    UNSTARTED = "unstarted"
    STARTING = "starting"
    HEALTHY = "healthy"
    FAILED = "failed"
    STOPPED = "stopped"


class ServiceEventType(StrEnum):
    """Types of service lifecycle events.

    - STARTED: Service process has been spawned
    - HEALTHY: Service answered its health check
    - FAILED: Service could not be started or never became healthy
    - SKIPPED: Service was never eligible to start
    - STOPPED: Service process has exited normally
    - CRASHED: Service process exited with non-zero code
    - TERMINATING: Graceful termination was requested
    - KILLED: Service outlived its grace period and was force-killed
    """

    STARTED = "started"
    HEALTHY = "healthy"
    FAILED = "failed"
    SKIPPED = "skipped"
    STOPPED = "stopped"
    CRASHED = "crashed"
    TERMINATING = "terminating"
    KILLED = "killed"


@dataclass(frozen=True, slots=True)
class ServiceEvent:
    """Immutable service lifecycle event.

    Attributes:
        service_name: Display name of the service that generated the event.
        event_type: Type of lifecycle event.
        timestamp: ISO 8601 formatted timestamp.
        pid: Process ID if applicable.
        exit_code: Exit code if process terminated.
        message: Optional human-readable message.
    """

    service_name: str
    event_type: ServiceEventType
    timestamp: str
    pid: int | None = None
    exit_code: int | None = None
    message: str | None = None


class ProcessHandle(Protocol):
    """The subset of a process object the supervisor relies on."""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ExitRecord:
    """How a supervised process terminated.

    Attributes:
        exit_code: Process return code. Negative values are signal numbers.
        signal: Name of the terminating signal, if any.
        timestamp: ISO 8601 timestamp of the exit.
    """

    exit_code: int | None
    signal: str | None
    timestamp: str


@dataclass(slots=True)
class ServiceRuntimeState:
    """Mutable runtime state of a spawned service.

    Created when a service is spawned and removed from the active-process
    registry when its process exits.

    Attributes:
        service_id: Roster id of the service.
        process: Handle of the owning OS process.
        status: Current lifecycle state.
        started_at: ISO 8601 timestamp of the spawn.
        pid: Process ID of the service.
        exited: Set once the process exit has been observed.
    """

    service_id: str
    process: ProcessHandle
    status: ServiceState = ServiceState.STARTING
    started_at: str | None = None
    pid: int | None = None
    exited: anyio.Event = field(default_factory=anyio.Event)


@dataclass(slots=True)
class LaunchReport:
    """Outcome of one scheduler run.

    Attributes:
        ready: Ids that reached HEALTHY, in completion order.
        failed: Ids that failed, mapped to their error.
        skipped: Ids that never became eligible.
        startup_times: Seconds from scheduler start to HEALTHY per id.
    """

    ready: list[str] = field(default_factory=list)
    failed: dict[str, ServiceError] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    startup_times: dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class HealthSummary:
    """Pass/fail summary of the final health-check pass.

    Attributes:
        passed: Ids that answered their health check.
        failed: Ids that did not answer.
    """

    passed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Return the number of services that were probed."""
        return len(self.passed) + len(self.failed)


@dataclass(slots=True)
class ShutdownReport:
    """Outcome of a shutdown.

    Attributes:
        graceful: Ids that exited within the grace period.
        forced: Grace-period overruns, keyed by id.
    """

    graceful: list[str] = field(default_factory=list)
    forced: dict[str, ShutdownTimeoutError] = field(default_factory=dict)
