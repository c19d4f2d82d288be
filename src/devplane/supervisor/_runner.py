"""Async runner for the `up` command.

This module coordinates one full run: prerequisite checks, stale process
cleanup, the monitoring service, the dependency-ordered launch, a final
health check and, once a termination signal arrives or a critical
service fails, the shutdown of every supervised process.
"""

from __future__ import annotations

import signal
import subprocess
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

import anyio
from rich.table import Table

from devplane.config import MONITORING_SERVICE_ID, LaunchVariant
from devplane.context import ControlContext
from devplane.exceptions import (
    ConfigError,
    CriticalServiceError,
    HealthCheckError,
    PrerequisiteError,
    ServiceError,
    SpawnError,
)
from devplane.utils import find_listening_pids, find_pids_by_name, kill_pids

from ._graph import validate_roster
from ._health import HealthProber
from ._models import HealthSummary, LaunchReport, ServiceState
from ._output import ConsoleOutputSink
from ._process import ProcessSupervisor
from ._scheduler import LaunchScheduler
from ._shutdown import ShutdownCoordinator

if TYPE_CHECKING:
    from rich.console import Console
    from structlog.typing import FilteringBoundLogger

    from devplane.config import RosterConfig

    from ._protocol import OutputSink

FAST_CLEANUP_SETTLE = 0.5
CLEANUP_SETTLE = 2.0
# Windows has no signal receiver; Ctrl+C cancels the run instead
WATCH_SIGNALS = sys.platform != "win32"


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Options of one `up` run.

    Attributes:
        variant: Launch variant of every service.
        fast_cleanup: Only clean up processes holding roster ports.
        skip_prerequisites: Skip host tool checks.
        monitoring: Launch the monitoring service when the roster enables it.
        sequential: Start services one at a time.
    """

    variant: LaunchVariant = LaunchVariant.NORMAL
    fast_cleanup: bool = False
    skip_prerequisites: bool = False
    monitoring: bool = True
    sequential: bool = False


def remediation_hint(error: BaseException) -> str:
    """Return a human-readable hint for an expected failure class."""
    if isinstance(error, CriticalServiceError) and error.cause is not None:
        return remediation_hint(error.cause)
    match error:
        case PrerequisiteError():
            return f"Install {error.name} and make sure it is on your PATH."
        case ConfigError():
            return "Fix the roster file and run `devplane validate` to check it."
        case SpawnError():
            return "Check the service command and that its working directory exists."
        case HealthCheckError():
            return (
                f"Make sure the service listens on its port and answers "
                f"GET {error.url} with HTTP 200. Its output above may show why not."
            )
        case _:
            return "Re-run with DEVPLANE_DEBUG=1 for more detail."


async def check_prerequisites(
    roster: RosterConfig,
    *,
    console: Console,
    logger: FilteringBoundLogger,
) -> None:
    """Run every prerequisite command and report the tool versions.

    Missing service working directories are reported as warnings.

    Raises:
        PrerequisiteError: If a prerequisite command cannot be run.
    """
    console.print("[bold]Checking prerequisites...[/bold]")
    for prerequisite in roster.prerequisites:
        try:
            result = await anyio.run_process(list(prerequisite.command))
        except (OSError, subprocess.CalledProcessError) as e:
            msg = f"{prerequisite.name} is not installed"
            raise PrerequisiteError(msg, name=prerequisite.name) from e
        version = result.stdout.decode(errors="replace").strip()
        logger.debug("prerequisite_found", name=prerequisite.name, version=version)
        console.print(f"  [green]OK[/green] {prerequisite.name}: {version}")

    for definition in roster.services.values():
        path = roster.resolve_path(definition)
        if not path.is_dir():
            logger.warning(
                "service_path_missing", service=definition.id, path=str(path)
            )
            console.print(
                f"  [yellow]![/yellow] {definition.name}: path not found {path}"
            )


async def cleanup_stale_processes(
    roster: RosterConfig,
    *,
    fast: bool,
    logger: FilteringBoundLogger,
    settle: bool = True,
) -> list[int]:
    """Kill processes left over from a previous run.

    Processes listening on a roster port are always killed. A normal
    cleanup also kills processes matching the configured names. A short
    settle delay then lets the OS release the ports.

    Args:
        roster: The roster whose ports are cleaned up.
        fast: Only clean up by port, with a shorter settle delay.
        logger: Logger for the run.
        settle: Whether to wait for ports to be released.

    Returns:
        PIDs that were killed.
    """
    ports = [definition.port for definition in roster.services.values()]
    pids = set(find_listening_pids(ports).values())
    if not fast:
        pids.update(find_pids_by_name(roster.cleanup.process_names))

    killed = kill_pids(sorted(pids))
    if killed:
        logger.info("stale_processes_killed", pids=killed)

    if settle:
        await anyio.sleep(FAST_CLEANUP_SETTLE if fast else CLEANUP_SETTLE)
    return killed


async def start_monitoring(
    context: ControlContext,
    supervisor: ProcessSupervisor,
    prober: HealthProber,
    *,
    console: Console,
) -> set[str]:
    """Start the monitoring service ahead of the main batch.

    A monitoring failure is reported and never fatal.

    Returns:
        The ids ready after this step, empty when monitoring did not start.
    """
    definition = context.roster.monitoring_service
    if definition is None:
        return set()

    console.print("[bold]Starting monitoring server...[/bold]")
    try:
        _ = await supervisor.start(MONITORING_SERVICE_ID, definition)
        await prober.wait_for_health_check(MONITORING_SERVICE_ID, definition)
    except ServiceError as e:
        context.set_status(MONITORING_SERVICE_ID, ServiceState.FAILED)
        context.logger.warning("monitoring_start_failed", error=str(e))
        console.print(f"  [yellow]![/yellow] Monitoring server failed to start: {e}")
        return set()

    context.set_status(MONITORING_SERVICE_ID, ServiceState.HEALTHY)
    console.print(f"  [green]OK[/green] Monitoring dashboard: {definition.base_url}")
    return {MONITORING_SERVICE_ID}


def print_summary(
    context: ControlContext,
    report: LaunchReport,
    health: HealthSummary,
    *,
    console: Console,
    elapsed: float,
) -> None:
    """Print the startup summary with endpoints and failures."""
    console.print()
    console.rule("[bold green]devplane is up[/bold green]")
    console.print(f"Total startup time: {elapsed:.1f}s")
    console.print(f"Running services: {len(context.processes)}")
    console.print(f"Health check: {len(health.passed)}/{health.total} services healthy")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Endpoint")
    table.add_column("Startup", justify="right")
    for service_id, definition in context.roster.services.items():
        state = context.status(service_id)
        style = "green" if state is ServiceState.HEALTHY else "red"
        if service_id in report.skipped or state is ServiceState.UNSTARTED:
            style = "dim"
        startup = report.startup_times.get(service_id)
        table.add_row(
            definition.name,
            f"[{style}]{state.value}[/{style}]",
            definition.base_url,
            f"{startup:.1f}s" if startup is not None else "-",
        )
    console.print(table)

    for service_id, error in report.failed.items():
        name = context.definition(service_id).name
        console.print(f"[red]{name} failed:[/red] {error}")
        console.print(f"  [dim]{remediation_hint(error)}[/dim]")
    if report.skipped:
        skipped = ", ".join(report.skipped)
        console.print(f"[yellow]Skipped (dependencies not ready):[/yellow] {skipped}")

    dashboard = context.roster.monitoring.dashboard_url
    if context.roster.monitoring.enabled and dashboard:
        console.print(f"Monitoring dashboard: {dashboard}")
    console.print("[dim]Press Ctrl+C to stop all services.[/dim]")


@dataclass(slots=True)
class _SignalState:
    received: int | None = None


async def _watch_signals(scope: anyio.CancelScope, state: _SignalState) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            if state.received is None:
                state.received = signum
                scope.cancel()


async def run_stack(
    roster: RosterConfig,
    options: RunOptions,
    *,
    logger: FilteringBoundLogger,
    console: Console,
    output_sink: OutputSink | None = None,
) -> bool:
    """Launch the roster and supervise it until a signal or failure.

    Args:
        roster: The validated roster.
        options: Run options.
        logger: Logger for the run.
        console: Console for human-readable output.
        output_sink: Sink for service output. Defaults to the console.

    Returns:
        True when the run ended with a signal-triggered shutdown, False
        when a critical service failed.

    Raises:
        ConfigError: If the roster is invalid or a prerequisite is missing.
    """
    _ = validate_roster(roster)
    context = ControlContext(
        roster=roster,
        logger=logger,
        output_sink=output_sink or ConsoleOutputSink(console),
        variant=options.variant,
    )

    if not options.skip_prerequisites:
        await check_prerequisites(roster, console=console, logger=logger)

    console.print("[bold]Cleaning up stale processes...[/bold]")
    _ = await cleanup_stale_processes(roster, fast=options.fast_cleanup, logger=logger)

    prober = HealthProber(context)
    coordinator = ShutdownCoordinator(context)
    signals = _SignalState()
    failed = False
    started_at = anyio.current_time()

    try:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            try:
                with anyio.CancelScope() as run_scope:
                    if WATCH_SIGNALS:
                        tg.start_soon(_watch_signals, run_scope, signals)

                    initially_ready: set[str] = set()
                    if options.monitoring and roster.monitoring.enabled:
                        initially_ready = await start_monitoring(
                            context, supervisor, prober, console=console
                        )

                    console.print("[bold]Starting services...[/bold]")
                    scheduler = LaunchScheduler(
                        context, supervisor, prober, sequential=options.sequential
                    )
                    try:
                        report = await scheduler.run(initially_ready=initially_ready)
                    except CriticalServiceError as e:
                        failed = True
                        console.print(f"[bold red]Startup failed:[/bold red] {e}")
                        console.print(f"  [dim]{remediation_hint(e)}[/dim]")
                    else:
                        console.print("[bold]Running final health check...[/bold]")
                        health = await prober.final_health_check()
                        print_summary(
                            context,
                            report,
                            health,
                            console=console,
                            elapsed=anyio.current_time() - started_at,
                        )
                        logger.info("run_ready", services=report.ready)
                        await anyio.sleep_forever()
            finally:
                if signals.received is not None:
                    name = signal.Signals(signals.received).name
                    console.print(f"\n[yellow]{name} received, stopping...[/yellow]")
                    logger.info("signal_received", signal=name)

                reason = "signal" if signals.received is not None else "failure"
                shutdown = await coordinator.shutdown(reason)
                for error in shutdown.forced.values():
                    console.print(f"[yellow]![/yellow] {error}")
                console.print("[bold]All services stopped.[/bold]")
                tg.cancel_scope.cancel()
    finally:
        await prober.aclose()

    return not failed
