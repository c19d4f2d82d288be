import sys
from pathlib import Path

import anyio
import pytest

from devplane.config import LaunchVariant
from devplane.context import ControlContext
from devplane.exceptions import SpawnError
from devplane.supervisor import (
    ProcessSupervisor,
    RecordingOutputSink,
    ServiceEventType,
    ServiceState,
    build_environment,
    describe_exit,
)
from tests.conftest import ContextFactory, make_roster, service_entry

SCRIPT = """
import os, sys
print("hello from", os.environ["PORT"])
print("(node:1) ExperimentalWarning: noisy")
print("oops", file=sys.stderr)
sys.exit(int(os.environ.get("EXIT_CODE", "0")))
"""


@pytest.fixture
def context(make_context: ContextFactory, tmp_path: Path) -> ControlContext:
    return make_context(
        make_roster(
            {
                "echo": service_entry(
                    name="Echo", port=7100, command=[sys.executable, "-c", SCRIPT]
                ),
                "crash": service_entry(
                    name="Crash",
                    port=7101,
                    command=[sys.executable, "-c", SCRIPT],
                    env={"EXIT_CODE": "3"},
                ),
                "sleeper": service_entry(
                    name="Sleeper",
                    port=7102,
                    command=[sys.executable, "-c", "import time; time.sleep(30)"],
                ),
                "nowhere": service_entry(name="Nowhere", path="missing"),
                "ghost": service_entry(
                    name="Ghost", command=["devplane-no-such-binary"]
                ),
            },
            root=tmp_path,
        )
    )


class TestBuildEnvironment:
    def test_injects_port_mode_and_extra_env(self, context: ControlContext) -> None:
        definition = context.roster.services["crash"]

        env = build_environment(definition, LaunchVariant.NORMAL, base={"HOME": "/h"})

        assert env == {
            "HOME": "/h",
            "EXIT_CODE": "3",
            "PORT": "7101",
            "NODE_ENV": "development",
        }

    def test_mock_variant_sets_mock_flag(self, context: ControlContext) -> None:
        definition = context.roster.services["echo"]

        env = build_environment(definition, LaunchVariant.MOCK, base={})

        assert env["MOCK_MODE"] == "true"


class TestDescribeExit:
    def test_negative_code_names_signal(self) -> None:
        assert describe_exit(-15) == "SIGTERM"

    def test_normal_codes_have_no_signal(self) -> None:
        assert describe_exit(0) is None
        assert describe_exit(2) is None
        assert describe_exit(None) is None


class TestProcessSupervisor:
    @pytest.mark.anyio
    async def test_streams_output_and_observes_exit(
        self, context: ControlContext, sink: RecordingOutputSink
    ) -> None:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            runtime = await supervisor.start("echo", context.roster.services["echo"])
            assert runtime.pid is not None
            with anyio.fail_after(10):
                await runtime.exited.wait()

        assert ("Echo", "stdout", "hello from 7100") in sink.lines
        assert ("Echo", "stderr", "oops") in sink.lines
        assert not any("ExperimentalWarning" in line for _, _, line in sink.lines)
        assert context.exits["echo"].exit_code == 0
        assert not supervisor.is_spawned("echo")
        assert context.status("echo") is ServiceState.STOPPED
        assert sink.event_types("Echo") == [
            ServiceEventType.STARTED,
            ServiceEventType.STOPPED,
        ]

    @pytest.mark.anyio
    async def test_non_zero_exit_is_a_crash(
        self, context: ControlContext, sink: RecordingOutputSink
    ) -> None:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            runtime = await supervisor.start("crash", context.roster.services["crash"])
            with anyio.fail_after(10):
                await runtime.exited.wait()

        assert context.exits["crash"].exit_code == 3
        assert sink.event_types("Crash")[-1] is ServiceEventType.CRASHED

    @pytest.mark.anyio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    async def test_terminate_records_signal(
        self, context: ControlContext, sink: RecordingOutputSink
    ) -> None:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            definition = context.roster.services["sleeper"]
            runtime = await supervisor.start("sleeper", definition)
            assert supervisor.is_spawned("sleeper")

            runtime.process.terminate()
            with anyio.fail_after(10):
                await runtime.exited.wait()

        record = context.exits["sleeper"]
        assert record.signal == "SIGTERM"
        assert sink.events[-1].event_type is ServiceEventType.STOPPED
        assert sink.events[-1].message == "Exited with signal SIGTERM"

    @pytest.mark.anyio
    async def test_second_start_returns_running_process(
        self, context: ControlContext
    ) -> None:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            definition = context.roster.services["sleeper"]
            first = await supervisor.start("sleeper", definition)
            second = await supervisor.start("sleeper", definition)

            assert second is first
            first.process.kill()

    @pytest.mark.anyio
    async def test_missing_working_directory_fails(
        self, context: ControlContext
    ) -> None:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            with pytest.raises(SpawnError, match="does not exist"):
                _ = await supervisor.start(
                    "nowhere", context.roster.services["nowhere"]
                )

        assert context.status("nowhere") is ServiceState.FAILED
        assert context.processes == {}

    @pytest.mark.anyio
    async def test_unknown_executable_fails(self, context: ControlContext) -> None:
        async with anyio.create_task_group() as tg:
            supervisor = ProcessSupervisor(context, tg)
            with pytest.raises(SpawnError) as exc_info:
                _ = await supervisor.start("ghost", context.roster.services["ghost"])

        assert isinstance(exc_info.value.cause, OSError)
        assert context.status("ghost") is ServiceState.FAILED
