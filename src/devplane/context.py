"""Top-level run context.

The ControlContext owns every piece of mutable state shared by the
supervisor components for one run: the active-process registry, the
lifecycle status of each service, exit records and startup metrics.
It is constructed once and injected into each component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from devplane.config import LaunchVariant
from devplane.supervisor._models import ServiceState

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from devplane.config import RosterConfig, ServiceDefinition
    from devplane.supervisor._models import ExitRecord, ServiceRuntimeState
    from devplane.supervisor._protocol import OutputSink


@dataclass(slots=True)
class ControlContext:
    """Mutable state of one control-plane run.

    All fields are only touched from event-loop tasks. After any await,
    callers must re-read the registry since other tasks may have run.

    Attributes:
        roster: The validated roster.
        logger: Structured logger for the run.
        output_sink: Sink for service output and lifecycle events.
        variant: Launch variant (normal or mock).
        processes: Active-process registry keyed by service id. An entry
            exists exactly while the process is supervised.
        statuses: Last known lifecycle state per service id.
        exits: Exit records of processes that terminated during the run.
        metrics: Named per-service metrics such as startup time.
    """

    roster: RosterConfig
    logger: FilteringBoundLogger
    output_sink: OutputSink
    variant: LaunchVariant = LaunchVariant.NORMAL
    processes: dict[str, ServiceRuntimeState] = field(default_factory=dict)
    statuses: dict[str, ServiceState] = field(default_factory=dict)
    exits: dict[str, ExitRecord] = field(default_factory=dict)
    metrics: dict[str, dict[str, float]] = field(default_factory=dict)

    def definition(self, service_id: str) -> ServiceDefinition:
        """Return the roster definition of a service.

        Raises:
            ServiceNotFoundError: If the id is not part of the roster.
        """
        from devplane.exceptions import ServiceNotFoundError  # noqa: PLC0415

        definition = self.roster.services.get(service_id)
        if definition is None:
            msg = f"Service '{service_id}' not found"
            raise ServiceNotFoundError(msg, service_id=service_id)
        return definition

    def status(self, service_id: str) -> ServiceState:
        """Return the lifecycle state of a service."""
        return self.statuses.get(service_id, ServiceState.UNSTARTED)

    def set_status(self, service_id: str, state: ServiceState) -> None:
        """Record a lifecycle transition.

        STOPPED is terminal for a run, later health outcomes are ignored.
        """
        if self.statuses.get(service_id) is ServiceState.STOPPED:
            return
        self.statuses[service_id] = state
        runtime = self.processes.get(service_id)
        if runtime is not None:
            runtime.status = state

    def is_supervised(self, service_id: str) -> bool:
        """Return whether a process for the service is currently running."""
        return service_id in self.processes

    def has_exited(self, service_id: str) -> bool:
        """Return whether the service process exited during this run."""
        return service_id in self.exits and service_id not in self.processes

    def record_metric(self, service_id: str, name: str, value: float) -> None:
        """Record a named metric for a service."""
        self.metrics.setdefault(service_id, {})[name] = value
