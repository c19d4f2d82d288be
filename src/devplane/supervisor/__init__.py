"""Supervisor package for launching and stopping the service roster.

Key Components:
    - DependencyGraph: Cycle-checked service dependency graph
    - ProcessSupervisor: Spawns service processes and observes their exit
    - HealthProber: Polls health endpoints with bounded retries
    - LaunchScheduler: Concurrent, dependency-ordered startup
    - ShutdownCoordinator: Graceful termination with force-kill escalation
    - OutputSink: Protocol for output consumption
    - ConsoleOutputSink: Console output implementation

The run orchestration lives in ``devplane.supervisor._runner`` and is
imported by the CLI on demand.

Example:
    >>> async with anyio.create_task_group() as tg:
    ...     supervisor = ProcessSupervisor(context, tg)
    ...     scheduler = LaunchScheduler(context, supervisor, HealthProber(context))
    ...     report = await scheduler.run()
"""

from ._graph import DependencyGraph, validate_roster
from ._health import DEFAULT_PROBE_TIMEOUT, FINAL_CHECK_RETRIES, HealthProber
from ._models import (
    ExitRecord,
    HealthSummary,
    LaunchReport,
    ProcessHandle,
    ServiceEvent,
    ServiceEventType,
    ServiceRuntimeState,
    ServiceState,
    ShutdownReport,
)
from ._output import ConsoleOutputSink, RecordingOutputSink, emit_event
from ._process import (
    DEFAULT_SUPPRESSED_OUTPUT,
    ProcessSupervisor,
    SupervisedProcess,
    build_environment,
    describe_exit,
)
from ._protocol import OutputSink
from ._scheduler import (
    DEFAULT_POLL_INTERVAL,
    LaunchScheduler,
    ReadinessProbe,
    ServiceStarter,
)
from ._shutdown import DEFAULT_GRACE_PERIOD, ShutdownCoordinator

__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_PROBE_TIMEOUT",
    "DEFAULT_SUPPRESSED_OUTPUT",
    "FINAL_CHECK_RETRIES",
    "ConsoleOutputSink",
    "DependencyGraph",
    "ExitRecord",
    "HealthProber",
    "HealthSummary",
    "LaunchReport",
    "LaunchScheduler",
    "OutputSink",
    "ProcessHandle",
    "ProcessSupervisor",
    "ReadinessProbe",
    "RecordingOutputSink",
    "ServiceEvent",
    "ServiceEventType",
    "ServiceRuntimeState",
    "ServiceStarter",
    "ServiceState",
    "ShutdownCoordinator",
    "ShutdownReport",
    "SupervisedProcess",
    "build_environment",
    "describe_exit",
    "emit_event",
    "validate_roster",
]
