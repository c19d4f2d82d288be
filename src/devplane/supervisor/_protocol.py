"""Protocol definitions for the supervisor system.

OutputSink decouples the supervisor core from how service output and
lifecycle events are displayed or stored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._models import ServiceEvent


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for consuming service output lines and lifecycle events.

    The protocol is async to support non-blocking I/O operations like
    writing to files or updating UIs.
    """

    async def write_line(
        self,
        service_name: str,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        """Write a line of service output.

        Args:
            service_name: Display name of the service that produced the output.
            stream: Which output stream the line came from.
            line: The output line (without trailing newline).
        """
        ...

    async def write_event(self, event: ServiceEvent) -> None:
        """Write a service lifecycle event.

        Args:
            event: The lifecycle event to record.
        """
        ...
