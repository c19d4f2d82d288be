# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""devplane monitor command: run the monitoring server."""

from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from devplane.cli._shared import LogLevelName, exit_with_error, resolve_roster_path
from devplane.config import load_roster
from devplane.exceptions import ConfigError
from devplane.monitoring import (
    AlertEngine,
    LogCollector,
    MonitoringServer,
    MonitoringStorage,
)
from devplane.utils import create_run_logger

app = App(
    name="monitor",
    help="Run the monitoring server for the roster services.",
    help_on_error=True,
)


@app.default
def monitor(
    *,
    roster: Annotated[
        Path | None,
        Parameter(help="Roster file (defaults to config/services.json)."),
    ] = None,
    host: Annotated[
        str,
        Parameter(help="Bind socket to this host."),
    ] = "127.0.0.1",
    port: Annotated[
        int | None,
        Parameter(help="Bind socket to this port (defaults to the roster's)."),
    ] = None,
    log_level: Annotated[
        LogLevelName | None,
        Parameter(help="Log level of the run log."),
    ] = None,
) -> None:
    """Sample the roster services and serve the dashboard API."""
    try:
        config = load_roster(resolve_roster_path(roster))
    except ConfigError as e:
        exit_with_error(str(e))

    logger = create_run_logger(level=log_level, command="monitor")
    storage = MonitoringStorage(config.root / config.monitoring.data_dir)
    collector = LogCollector.from_roster(config, storage, logger=logger)
    server = MonitoringServer(collector, AlertEngine(), logger=logger)

    bind_port = port or config.monitoring.port
    Console().print(
        f"Monitoring [bold]{len(collector.services)}[/bold] services"
        f" on http://{host}:{bind_port}"
    )
    anyio.run(server.serve, host, bind_port)
