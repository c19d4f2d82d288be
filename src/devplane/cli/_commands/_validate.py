# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""devplane validate command: check a roster without launching."""

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console
from rich.table import Table

from devplane.cli._shared import exit_with_error, resolve_roster_path
from devplane.config import load_roster
from devplane.exceptions import ConfigError
from devplane.supervisor import validate_roster

app = App(
    name="validate",
    help="Validate a roster file and print the launch order.",
    help_on_error=True,
)


@app.default
def validate(
    *,
    roster: Annotated[
        Path | None,
        Parameter(help="Roster file (defaults to config/services.json)."),
    ] = None,
) -> None:
    """Load the roster, check its dependency graph and show the services."""
    path = resolve_roster_path(roster)
    try:
        config = load_roster(path)
        _ = validate_roster(config)
    except ConfigError as e:
        exit_with_error(
            str(e), hint="Every dependency must name a declared service, no cycles."
        )

    table = Table(title=f"Launch order ({path})")
    table.add_column("Layer", justify="right")
    table.add_column("Service")
    table.add_column("Port", justify="right")
    table.add_column("Depends on")
    table.add_column("Critical")
    for definition in config.launch_order():
        table.add_row(
            str(definition.layer),
            definition.id,
            str(definition.port),
            ", ".join(definition.dependencies) or "-",
            "yes" if definition.critical else "no",
        )
    Console().print(table)
