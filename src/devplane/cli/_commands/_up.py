# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""devplane up command: launch and supervise the roster."""

from functools import partial
from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from devplane.cli._shared import (
    ExitCode,
    LogLevelName,
    exit_with_error,
    resolve_roster_path,
)
from devplane.config import LaunchVariant, load_roster
from devplane.exceptions import ConfigError
from devplane.utils import create_run_logger

app = App(
    name="up",
    help="Start every roster service in dependency order and supervise them.",
    help_on_error=True,
)


@app.default
def up(  # noqa: PLR0913
    *,
    roster: Annotated[
        Path | None,
        Parameter(help="Roster file (defaults to config/services.json)."),
    ] = None,
    mock: Annotated[
        bool,
        Parameter(help="Launch services with their mock command."),
    ] = False,
    fast: Annotated[
        bool,
        Parameter(help="Only clean up processes holding roster ports."),
    ] = False,
    skip_prereq: Annotated[
        bool,
        Parameter(name="--skip-prereq", help="Skip host tool checks."),
    ] = False,
    monitoring: Annotated[
        bool,
        Parameter(help="Launch the monitoring service when the roster enables it."),
    ] = True,
    sequential: Annotated[
        bool,
        Parameter(help="Start services one at a time."),
    ] = False,
    log_level: Annotated[
        LogLevelName | None,
        Parameter(help="Log level of the run log."),
    ] = None,
) -> None:
    """Start the stack and block until interrupted.

    Exits 0 after a signal-triggered shutdown and 1 when the roster is
    invalid, a prerequisite is missing or a critical service fails.
    """
    from devplane.supervisor._runner import RunOptions, remediation_hint, run_stack

    console = Console()
    logger = create_run_logger(level=log_level, command="up")
    options = RunOptions(
        variant=LaunchVariant.MOCK if mock else LaunchVariant.NORMAL,
        fast_cleanup=fast,
        skip_prerequisites=skip_prereq,
        monitoring=monitoring,
        sequential=sequential,
    )

    try:
        config = load_roster(resolve_roster_path(roster))
        succeeded = anyio.run(
            partial(run_stack, config, options, logger=logger, console=console)
        )
    except ConfigError as e:
        logger.error("run_aborted", error=str(e))
        exit_with_error(str(e), hint=remediation_hint(e))

    raise SystemExit(ExitCode.SUCCESS if succeeded else ExitCode.FAILURE)
