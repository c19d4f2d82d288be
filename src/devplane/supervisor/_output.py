"""Output sink implementations for the supervisor system."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, final

from rich.console import Console
from rich.style import Style
from rich.text import Text

from devplane.utils import get_timestamp

from ._models import ServiceEvent, ServiceEventType

if TYPE_CHECKING:
    from devplane.context import ControlContext


@final
class ConsoleOutputSink:
    """Output sink that writes to the console with service prefixes.

    Formats service output as `[name] line` with color coding:
    - stdout: Default styling
    - stderr: Dim red styling
    - Events: Styling based on event type
    """

    __slots__ = ("_console", "_event_styles", "_stderr_style", "_stdout_style")

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the output sink.

        Args:
            console: Rich Console instance for output. If None, creates a new one.
        """
        self._console = console or Console()
        self._stdout_style = Style()
        self._stderr_style = Style(color="red", dim=True)
        self._event_styles: dict[ServiceEventType, Style] = {
            ServiceEventType.STARTED: Style(color="cyan", bold=True),
            ServiceEventType.HEALTHY: Style(color="green", bold=True),
            ServiceEventType.FAILED: Style(color="red", bold=True),
            ServiceEventType.SKIPPED: Style(color="magenta", dim=True),
            ServiceEventType.STOPPED: Style(color="yellow"),
            ServiceEventType.CRASHED: Style(color="red", bold=True),
            ServiceEventType.TERMINATING: Style(color="yellow", dim=True),
            ServiceEventType.KILLED: Style(color="red"),
        }

    async def write_line(
        self,
        service_name: str,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        """Write a line of service output with prefix."""
        style = self._stderr_style if stream == "stderr" else self._stdout_style

        text = Text()
        _ = text.append(f"[{service_name}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(line, style=style)

        self._console.print(text)

    async def write_event(self, event: ServiceEvent) -> None:
        """Write a service lifecycle event with special formatting."""
        style = self._event_styles.get(event.event_type, Style())

        text = Text()
        _ = text.append(f"[{event.service_name}]", style=Style(color="blue", bold=True))
        _ = text.append(" ")
        _ = text.append(event.event_type.value.upper(), style=style)

        if event.pid is not None:
            _ = text.append(f" (pid={event.pid})", style=Style(dim=True))

        if event.exit_code is not None:
            _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))

        if event.message:
            _ = text.append(f" - {event.message}", style=style)

        self._console.print(text)


@final
class RecordingOutputSink:
    """Output sink that keeps everything in memory.

    Used when output should be inspected rather than displayed.
    """

    __slots__ = ("events", "lines")

    def __init__(self) -> None:
        self.lines: list[tuple[str, str, str]] = []
        self.events: list[ServiceEvent] = []

    async def write_line(
        self,
        service_name: str,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        self.lines.append((service_name, stream, line))

    async def write_event(self, event: ServiceEvent) -> None:
        self.events.append(event)

    def event_types(self, service_name: str) -> list[ServiceEventType]:
        """Return the event types recorded for one service, in order."""
        return [
            event.event_type
            for event in self.events
            if event.service_name == service_name
        ]


async def emit_event(
    context: ControlContext,
    service_name: str,
    event_type: ServiceEventType,
    *,
    pid: int | None = None,
    exit_code: int | None = None,
    message: str | None = None,
) -> None:
    """Build a lifecycle event and hand it to the context's output sink.

    Sink failures are logged and never propagate into the supervisor.
    """
    event = ServiceEvent(
        service_name=service_name,
        event_type=event_type,
        timestamp=get_timestamp(),
        pid=pid,
        exit_code=exit_code,
        message=message,
    )
    try:
        await context.output_sink.write_event(event)
    except Exception as e:  # noqa: BLE001
        context.logger.warning(
            "output_sink_failed", service=service_name, error=str(e)
        )
