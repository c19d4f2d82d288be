"""Dependency-ordered concurrent launch scheduler.

The scheduler starts every eligible service, then waits for the first
in-flight start+health operation to settle before looking for newly
eligible services. Operations report their outcome through a memory
object stream, so the scheduler loop is the only writer of the ready set
and of service statuses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeAlias, final

import anyio

from devplane.exceptions import CriticalServiceError, ServiceError

from ._models import LaunchReport, ServiceEventType, ServiceState
from ._output import emit_event

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from anyio.streams.memory import MemoryObjectSendStream

    from devplane.config import LaunchVariant, ServiceDefinition
    from devplane.context import ControlContext

    from ._models import ServiceRuntimeState

DEFAULT_POLL_INTERVAL = 0.2


class ServiceStarter(Protocol):
    """Spawns a service process without waiting for readiness."""

    async def start(
        self,
        service_id: str,
        definition: ServiceDefinition,
        variant: LaunchVariant | None = None,
    ) -> ServiceRuntimeState: ...


class ReadinessProbe(Protocol):
    """Waits until a spawned service reports healthy."""

    async def wait_for_health_check(
        self,
        service_id: str,
        definition: ServiceDefinition,
        max_retries: int | None = None,
    ) -> None: ...


_Outcome: TypeAlias = tuple[str, ServiceError | None]


@final
class LaunchScheduler:
    """Drives concurrent, dependency-ordered startup of a roster.

    A service is eligible once all of its dependencies are ready, or, for
    early-start services, once at least one dependency has a spawned
    process. Services without dependencies are always eligible.
    """

    __slots__ = (
        "_context",
        "_poll_interval",
        "_prober",
        "_sequential",
        "_starter",
    )

    def __init__(
        self,
        context: ControlContext,
        starter: ServiceStarter,
        prober: ReadinessProbe,
        *,
        sequential: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the scheduler.

        Args:
            context: Run context.
            starter: Spawns service processes.
            prober: Confirms readiness of spawned services.
            sequential: Allow at most one operation in flight.
            poll_interval: Seconds to wait for a completion before
                re-checking eligibility.
        """
        self._context = context
        self._starter = starter
        self._prober = prober
        self._sequential = sequential
        self._poll_interval = poll_interval

    def is_eligible(self, definition: ServiceDefinition, ready: set[str]) -> bool:
        """Return whether a service may be started now.

        Args:
            definition: The candidate service.
            ready: Ids confirmed healthy so far.
        """
        dependencies = definition.dependencies
        if all(dependency in ready for dependency in dependencies):
            return True
        if definition.performance.early_start:
            return any(self._context.is_supervised(d) for d in dependencies)
        return False

    async def _launch(
        self,
        definition: ServiceDefinition,
        outcomes: MemoryObjectSendStream[_Outcome],
    ) -> None:
        error: ServiceError | None = None
        try:
            _ = await self._starter.start(definition.id, definition)
            await self._prober.wait_for_health_check(definition.id, definition)
        except ServiceError as e:
            error = e
        await outcomes.send((definition.id, error))

    async def _settle(
        self,
        service_id: str,
        error: ServiceError | None,
        report: LaunchReport,
        ready: set[str],
        elapsed: float,
    ) -> None:
        definition = self._context.definition(service_id)

        if error is None:
            ready.add(service_id)
            self._context.set_status(service_id, ServiceState.HEALTHY)
            self._context.record_metric(service_id, "startup_time", elapsed)
            report.ready.append(service_id)
            report.startup_times[service_id] = elapsed
            self._context.logger.info(
                "service_ready", service=service_id, startup_time=round(elapsed, 3)
            )
            await emit_event(
                self._context,
                definition.name,
                ServiceEventType.HEALTHY,
                message=f"Ready after {elapsed:.1f}s",
            )
            return

        self._context.set_status(service_id, ServiceState.FAILED)
        report.failed[service_id] = error
        await emit_event(
            self._context,
            definition.name,
            ServiceEventType.FAILED,
            message=str(error),
        )

        for dependent in self._context.roster.services.values():
            if (
                service_id in dependent.dependencies
                and dependent.performance.early_start
                and self._context.status(dependent.id) is not ServiceState.UNSTARTED
            ):
                self._context.logger.warning(
                    "early_start_dependency_failed",
                    service=dependent.id,
                    dependency=service_id,
                )

        if definition.critical:
            self._context.logger.error(
                "critical_service_failed", service=service_id, error=str(error)
            )
            msg = f"Critical service '{definition.name}' failed: {error}"
            raise CriticalServiceError(msg, service_id=service_id, cause=error)

        self._context.logger.warning(
            "service_failed", service=service_id, error=str(error)
        )

    async def run(
        self,
        services: Sequence[ServiceDefinition] | None = None,
        *,
        initially_ready: Iterable[str] = (),
    ) -> LaunchReport:
        """Start services in dependency order and wait until none is in flight.

        Args:
            services: Services to launch, in start-attempt order. Defaults
                to the roster launch order.
            initially_ready: Ids already healthy before the run, such as
                a monitoring service started ahead of the batch.

        Returns:
            The launch report. Services that never became eligible are
            listed as skipped.

        Raises:
            CriticalServiceError: If a critical service failed. In-flight
                operations are cancelled and no new service is started.
        """
        candidates = list(
            self._context.roster.launch_order() if services is None else services
        )
        ready: set[str] = set(initially_ready)
        started: set[str] = set()
        in_flight: set[str] = set()
        report = LaunchReport()
        critical: CriticalServiceError | None = None
        started_at = anyio.current_time()

        send, receive = anyio.create_memory_object_stream[_Outcome](
            max_buffer_size=max(len(candidates), 1)
        )
        async with send, receive, anyio.create_task_group() as tg:
            while True:
                for definition in candidates:
                    if self._sequential and in_flight:
                        break
                    if definition.id in started:
                        continue
                    if not self.is_eligible(definition, ready):
                        continue
                    started.add(definition.id)
                    in_flight.add(definition.id)
                    self._context.logger.info(
                        "service_launching", service=definition.id
                    )
                    tg.start_soon(self._launch, definition, send)

                if not in_flight:
                    break

                outcome: _Outcome | None = None
                with anyio.move_on_after(self._poll_interval):
                    outcome = await receive.receive()
                if outcome is None:
                    # Early-start eligibility may change without a completion
                    continue

                service_id, error = outcome
                in_flight.discard(service_id)
                try:
                    await self._settle(
                        service_id,
                        error,
                        report,
                        ready,
                        anyio.current_time() - started_at,
                    )
                except CriticalServiceError as e:
                    critical = e
                    tg.cancel_scope.cancel()
                    break

        if critical is not None:
            raise critical

        for definition in candidates:
            if definition.id in started:
                continue
            report.skipped.append(definition.id)
            waiting = [d for d in definition.dependencies if d not in ready]
            self._context.logger.warning(
                "service_skipped", service=definition.id, waiting_on=waiting
            )
            await emit_event(
                self._context,
                definition.name,
                ServiceEventType.SKIPPED,
                message=f"Dependencies not ready: {', '.join(waiting)}",
            )
        return report
