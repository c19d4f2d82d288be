"""devplane CLI commands."""
# pyright: reportUnusedCallResult=false

from __future__ import annotations

from typing import TYPE_CHECKING

from ._monitor import app as monitor_app
from ._up import app as up_app
from ._validate import app as validate_app

if TYPE_CHECKING:
    from cyclopts import App

__all__ = ["monitor_app", "register_commands", "up_app", "validate_app"]


def register_commands(app: App) -> None:
    """Register every subcommand on the given application."""
    app.command(up_app)
    app.command(monitor_app)
    app.command(validate_app)
