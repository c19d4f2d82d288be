"""The command-line interface for devplane."""

from cyclopts import App
from rich.console import Console

from ._commands import register_commands

HELP = "Start, supervise and monitor a local service stack."

app = App(name="devplane", help=HELP, help_on_error=True)
register_commands(app)


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Create a fresh CLI application, mainly for tests."""
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    new_app = App(
        name="devplane",
        help=HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )
    register_commands(new_app)
    return new_app


def main() -> None:
    """Default entrypoint for the `devplane` CLI."""
    app()


if __name__ == "__main__":
    main()
