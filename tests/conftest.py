"""Shared test fixtures for devplane tests."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio
import pytest
import structlog
from rich.console import Console
from structlog.testing import CapturingLogger
from structlog.typing import FilteringBoundLogger

from devplane.config import RosterConfig, parse_roster
from devplane.context import ControlContext
from devplane.supervisor import RecordingOutputSink


@dataclass
class LogCapture:
    """A logger whose events are kept in memory."""

    raw: CapturingLogger
    logger: FilteringBoundLogger

    def events(self) -> list[str]:
        return [str(call.kwargs["event"]) for call in self.raw.calls]

    def find(self, event: str) -> list[dict[str, Any]]:
        return [
            dict(call.kwargs)
            for call in self.raw.calls
            if call.kwargs["event"] == event
        ]


@dataclass
class FakeProcess:
    """Process handle that records signals instead of sending them.

    The owning runtime's ``exited`` event is set on terminate when the
    process is cooperative, and always on kill.
    """

    pid: int = 4242
    cooperative: bool = True
    exited: anyio.Event | None = None
    returncode: int | None = None
    terminate_calls: int = 0
    kill_calls: int = 0
    signals: list[str] = field(default_factory=list)

    def terminate(self) -> None:
        self.terminate_calls += 1
        self.signals.append("SIGTERM")
        if self.cooperative:
            self._exit(-15)

    def kill(self) -> None:
        self.kill_calls += 1
        self.signals.append("SIGKILL")
        self._exit(-9)

    def _exit(self, code: int) -> None:
        self.returncode = code
        if self.exited is not None:
            self.exited.set()


def service_entry(**overrides: Any) -> dict[str, Any]:  # noqa: ANN401
    """Return raw roster data for one service with sensible defaults."""
    entry: dict[str, Any] = {
        "name": overrides.pop("name", "Service"),
        "port": 8000,
        "command": ["true"],
    }
    entry.update(overrides)
    return entry


def make_roster(
    services: dict[str, dict[str, Any]], root: Path | None = None, **extra: Any
) -> RosterConfig:
    """Build a roster from raw service entries."""
    data: dict[str, Any] = {"services": services, **extra}
    return parse_roster(data, root=root)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def log_capture() -> LogCapture:
    raw = CapturingLogger()
    logger = structlog.wrap_logger(
        raw,
        processors=[],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
    )
    return LogCapture(raw=raw, logger=logger)


@pytest.fixture
def sink() -> RecordingOutputSink:
    return RecordingOutputSink()


ContextFactory = Callable[[RosterConfig], ControlContext]


@pytest.fixture
def make_context(log_capture: LogCapture, sink: RecordingOutputSink) -> ContextFactory:
    """Return a factory building a ControlContext for a roster."""

    def _make(roster: RosterConfig) -> ControlContext:
        return ControlContext(
            roster=roster, logger=log_capture.logger, output_sink=sink
        )

    return _make


@pytest.fixture
def console() -> Console:
    return Console(
        width=100,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )
