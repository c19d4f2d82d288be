"""Shared utilities for devplane CLI commands."""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Never

from devplane.utils import get_default_roster_file

if TYPE_CHECKING:
    from rich.console import Console

LogLevelName = Literal["debug", "info", "warning", "error"]


class ExitCode(IntEnum):
    """Exit codes of devplane commands."""

    SUCCESS = 0
    FAILURE = 1


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr.

    Returns:
        Console instance writing to stderr.
    """
    from rich.console import Console

    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.FAILURE,
    *,
    hint: str | None = None,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Args:
        message: The error message to display.
        code: The exit code to use (defaults to FAILURE).
        hint: Optional remediation hint printed below the message.
        console: Optional Rich console for output. If not provided,
            a new stderr console will be created.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(f"[red]Error:[/red] {message}")
    if hint is not None:
        console.print(f"  [dim]{hint}[/dim]")
    raise SystemExit(code)


def resolve_roster_path(roster: Path | None) -> Path:
    """Return the roster path given on the command line, or the default."""
    return roster if roster is not None else get_default_roster_file()
