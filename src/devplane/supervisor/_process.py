"""Process supervisor for spawning and tracking service processes.

This module provides the ProcessSupervisor class that spawns service
commands, streams their output to an OutputSink and observes their exit.
The active-process registry in the ControlContext is the single source
of truth for whether a service process is currently supervised.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys
from typing import TYPE_CHECKING, Literal, final

import anyio
import anyio.abc
from anyio.streams.text import TextReceiveStream

from devplane.config import LaunchVariant
from devplane.exceptions import SpawnError
from devplane.utils import get_timestamp

from ._models import ExitRecord, ServiceEventType, ServiceRuntimeState, ServiceState
from ._output import emit_event

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from devplane.config import ServiceDefinition
    from devplane.context import ControlContext

DEFAULT_SUPPRESSED_OUTPUT: tuple[str, ...] = ("ExperimentalWarning",)

# Seconds to keep reading output after the process exited
_DRAIN_SECONDS = 0.5


def describe_exit(exit_code: int | None) -> str | None:
    """Return the signal name encoded in a negative exit code, if any."""
    if exit_code is None or exit_code >= 0:
        return None
    try:
        return signal.Signals(-exit_code).name
    except ValueError:
        return None


@final
class SupervisedProcess:
    """Handle of a spawned service process.

    On POSIX each service runs in its own session, so terminate() and
    kill() reach the whole process group, including any children the
    service command spawned.
    """

    __slots__ = ("_process",)

    def __init__(self, process: anyio.abc.Process) -> None:
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def stdout(self) -> anyio.abc.ByteReceiveStream | None:
        return self._process.stdout

    @property
    def stderr(self) -> anyio.abc.ByteReceiveStream | None:
        return self._process.stderr

    def _signal_group(self, signum: int) -> None:
        if self._process.returncode is not None:
            return
        if sys.platform == "win32":
            if signum == signal.SIGTERM:
                self._process.terminate()
            else:
                self._process.kill()
            return
        try:
            os.killpg(os.getpgid(self._process.pid), signum)
        except ProcessLookupError:
            pass

    def terminate(self) -> None:
        """Send SIGTERM to the process group."""
        self._signal_group(signal.SIGTERM)

    def kill(self) -> None:
        """Send SIGKILL to the process group."""
        self._signal_group(getattr(signal, "SIGKILL", signal.SIGTERM))

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self._process.wait()


def build_environment(
    definition: ServiceDefinition,
    variant: LaunchVariant,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the environment of a service process.

    Inherits the ambient environment, adds the definition's extra
    variables and injects the port, the environment mode and, in mock
    mode, the mock flag.

    Args:
        definition: The service being launched.
        variant: Launch variant.
        base: Environment to inherit. Defaults to os.environ.

    Returns:
        The complete environment mapping.
    """
    env = {**(os.environ if base is None else base), **definition.env}
    env["PORT"] = str(definition.port)
    env["NODE_ENV"] = "development"
    if variant is LaunchVariant.MOCK:
        env["MOCK_MODE"] = "true"
    return env


@final
class ProcessSupervisor:
    """Spawns service processes and observes their lifetime.

    Each spawned process gets a watcher task in the supervisor's task
    group. The watcher streams output and, once the process exits,
    removes the service from the active-process registry.
    """

    __slots__ = ("_context", "_suppressed", "_task_group")

    def __init__(
        self,
        context: ControlContext,
        task_group: anyio.abc.TaskGroup,
        *,
        suppressed_output: Iterable[str] = DEFAULT_SUPPRESSED_OUTPUT,
    ) -> None:
        """Initialize the process supervisor.

        Args:
            context: Run context owning the process registry.
            task_group: Task group the watcher tasks run in.
            suppressed_output: Substrings of output lines to drop.
        """
        self._context = context
        self._task_group = task_group
        self._suppressed = tuple(suppressed_output)

    def is_spawned(self, service_id: str) -> bool:
        """Return whether the service process is in the active registry."""
        return self._context.is_supervised(service_id)

    async def start(
        self,
        service_id: str,
        definition: ServiceDefinition,
        variant: LaunchVariant | None = None,
    ) -> ServiceRuntimeState:
        """Spawn the service process without waiting for readiness.

        Args:
            service_id: Roster id of the service.
            definition: The service definition.
            variant: Launch variant. Defaults to the context variant.

        Returns:
            The runtime state registered for the process.

        Raises:
            SpawnError: If the working directory is missing or the
                command could not be executed.
        """
        existing = self._context.processes.get(service_id)
        if existing is not None:
            return existing

        effective_variant = variant or self._context.variant
        command = definition.command.for_variant(effective_variant)
        cwd = self._context.roster.resolve_path(definition)
        if not cwd.is_dir():
            self._context.set_status(service_id, ServiceState.FAILED)
            msg = f"Working directory for '{definition.name}' does not exist: {cwd}"
            raise SpawnError(msg, service_id=service_id)

        try:
            process = await anyio.open_process(
                command,
                cwd=cwd,
                env=build_environment(definition, effective_variant),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=sys.platform != "win32",
            )
        except OSError as e:
            self._context.set_status(service_id, ServiceState.FAILED)
            msg = f"Failed to start '{definition.name}': {e}"
            raise SpawnError(msg, service_id=service_id, cause=e) from e

        handle = SupervisedProcess(process)
        runtime = ServiceRuntimeState(
            service_id=service_id,
            process=handle,
            started_at=get_timestamp(),
            pid=handle.pid,
        )
        self._context.processes[service_id] = runtime
        self._context.set_status(service_id, ServiceState.STARTING)
        self._context.logger.info(
            "service_spawned",
            service=service_id,
            pid=handle.pid,
            command=list(command),
            variant=effective_variant.value,
        )
        await emit_event(
            self._context,
            definition.name,
            ServiceEventType.STARTED,
            pid=handle.pid,
            message=f"Started with command: {' '.join(command)}",
        )

        self._task_group.start_soon(self._watch, runtime, definition, handle)
        return runtime

    async def _write_line(
        self,
        raw_line: str,
        stream_name: Literal["stdout", "stderr"],
        definition: ServiceDefinition,
    ) -> None:
        line = raw_line.rstrip()
        if not line or any(s in line for s in self._suppressed):
            return
        try:
            await self._context.output_sink.write_line(
                definition.name, stream_name, line
            )
        except Exception as e:  # noqa: BLE001
            self._context.logger.warning(
                "output_sink_failed", service=definition.id, error=str(e)
            )

    async def _stream_output(
        self,
        stream: TextReceiveStream,
        stream_name: Literal["stdout", "stderr"],
        definition: ServiceDefinition,
    ) -> None:
        # A chunk may end in the middle of a line
        partial = ""
        try:
            async for chunk in stream:
                *lines, partial = (partial + chunk).split("\n")
                for line in lines:
                    await self._write_line(line, stream_name, definition)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed, which is expected on process exit
            pass
        if partial:
            await self._write_line(partial, stream_name, definition)

    async def _watch(
        self,
        runtime: ServiceRuntimeState,
        definition: ServiceDefinition,
        handle: SupervisedProcess,
    ) -> None:
        async with anyio.create_task_group() as streams:
            if handle.stdout is not None:
                streams.start_soon(
                    self._stream_output,
                    TextReceiveStream(handle.stdout, errors="replace"),
                    "stdout",
                    definition,
                )
            if handle.stderr is not None:
                streams.start_soon(
                    self._stream_output,
                    TextReceiveStream(handle.stderr, errors="replace"),
                    "stderr",
                    definition,
                )

            exit_code = await handle.wait()

            # Children may keep the pipes open after the service exits
            streams.cancel_scope.deadline = anyio.current_time() + _DRAIN_SECONDS

        await self._on_exit(runtime, definition, exit_code)

    async def _on_exit(
        self,
        runtime: ServiceRuntimeState,
        definition: ServiceDefinition,
        exit_code: int,
    ) -> None:
        service_id = runtime.service_id
        if self._context.processes.get(service_id) is runtime:
            del self._context.processes[service_id]

        signal_name = describe_exit(exit_code)
        self._context.exits[service_id] = ExitRecord(
            exit_code=exit_code,
            signal=signal_name,
            timestamp=get_timestamp(),
        )
        self._context.set_status(service_id, ServiceState.STOPPED)
        runtime.status = ServiceState.STOPPED
        runtime.exited.set()

        self._context.logger.info(
            "service_exited",
            service=service_id,
            pid=runtime.pid,
            exit_code=exit_code,
            signal=signal_name,
        )
        event_type = (
            ServiceEventType.STOPPED
            if exit_code == 0 or signal_name is not None
            else ServiceEventType.CRASHED
        )
        message = f"Exited with signal {signal_name}" if signal_name else None
        await emit_event(
            self._context,
            definition.name,
            event_type,
            pid=runtime.pid,
            exit_code=exit_code,
            message=message or f"Exited with code {exit_code}",
        )
