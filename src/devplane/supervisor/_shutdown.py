"""Graceful shutdown with force-kill escalation."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio

from devplane.exceptions import ShutdownTimeoutError

from ._models import ServiceEventType, ShutdownReport
from ._output import emit_event

if TYPE_CHECKING:
    from devplane.context import ControlContext

    from ._models import ServiceRuntimeState

DEFAULT_GRACE_PERIOD = 5.0


@final
class ShutdownCoordinator:
    """Terminates every supervised process, escalating to a force-kill.

    Each process gets SIGTERM and a fixed grace period. A process still
    running when the grace period expires is killed exactly once. The
    first call to shutdown() does the work; later calls return the same
    report without signalling anything.
    """

    __slots__ = ("_context", "_done", "_grace_period", "_report")

    def __init__(
        self,
        context: ControlContext,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        self._context = context
        self._grace_period = grace_period
        self._report: ShutdownReport | None = None
        self._done = anyio.Event()

    @property
    def in_progress(self) -> bool:
        """Return whether shutdown has begun."""
        return self._report is not None

    async def wait(self) -> None:
        """Wait until a shutdown has finished."""
        await self._done.wait()

    async def shutdown(self, reason: str = "shutdown") -> ShutdownReport:
        """Stop every supervised process.

        Args:
            reason: Why the shutdown was triggered, for logging.

        Returns:
            Which services exited gracefully and which were force-killed.
        """
        if self._report is not None:
            self._context.logger.debug("shutdown_already_in_progress", reason=reason)
            return self._report

        report = self._report = ShutdownReport()
        targets = list(self._context.processes.values())
        self._context.logger.info(
            "shutdown_started", reason=reason, services=[t.service_id for t in targets]
        )

        # Runs to completion even when the caller is cancelled
        with anyio.CancelScope(shield=True):
            async with anyio.create_task_group() as tg:
                for runtime in targets:
                    tg.start_soon(self._stop, runtime, report)

        self._context.logger.info(
            "shutdown_completed",
            graceful=len(report.graceful),
            forced=len(report.forced),
        )
        self._done.set()
        return report

    async def _stop(self, runtime: ServiceRuntimeState, report: ShutdownReport) -> None:
        service_id = runtime.service_id
        definition = self._context.roster.services.get(service_id)
        name = definition.name if definition is not None else service_id

        if not runtime.exited.is_set():
            await emit_event(
                self._context, name, ServiceEventType.TERMINATING, pid=runtime.pid
            )
            runtime.process.terminate()

        with anyio.move_on_after(self._grace_period):
            await runtime.exited.wait()

        if runtime.exited.is_set():
            report.graceful.append(service_id)
            return

        runtime.process.kill()
        msg = (
            f"Service '{name}' did not exit within {self._grace_period:g}s "
            "and was killed"
        )
        report.forced[service_id] = ShutdownTimeoutError(
            msg, service_id=service_id, grace_period=self._grace_period
        )
        self._context.logger.warning(
            "service_killed", service=service_id, pid=runtime.pid
        )
        await emit_event(self._context, name, ServiceEventType.KILLED, pid=runtime.pid)

        with anyio.move_on_after(self._grace_period):
            await runtime.exited.wait()
