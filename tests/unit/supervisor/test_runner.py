import sys
from pathlib import Path

import anyio
import pytest
from rich.console import Console

from devplane.context import ControlContext
from devplane.exceptions import (
    ConfigError,
    CriticalServiceError,
    HealthCheckError,
    PrerequisiteError,
    SpawnError,
)
from devplane.supervisor import HealthSummary, LaunchReport, ServiceState
from devplane.supervisor._runner import (
    RunOptions,
    check_prerequisites,
    cleanup_stale_processes,
    print_summary,
    remediation_hint,
    run_stack,
)
from tests.conftest import ContextFactory, LogCapture, make_roster, service_entry


class TestRemediationHint:
    def test_prerequisite_hint_names_tool(self) -> None:
        error = PrerequisiteError("node is not installed", name="node")

        assert "Install node" in remediation_hint(error)

    def test_config_hint_points_to_validate(self) -> None:
        assert "devplane validate" in remediation_hint(ConfigError("bad"))

    def test_critical_error_uses_cause(self) -> None:
        cause = HealthCheckError(
            "never healthy",
            service_id="api",
            url="http://localhost:1/health",
            attempts=3,
        )
        error = CriticalServiceError("api failed", service_id="api", cause=cause)

        assert "http://localhost:1/health" in remediation_hint(error)

    def test_spawn_hint(self) -> None:
        assert "working directory" in remediation_hint(
            SpawnError("boom", service_id="api")
        )


class TestCheckPrerequisites:
    @pytest.mark.anyio
    async def test_reports_tool_versions(
        self, console: Console, log_capture: LogCapture, tmp_path: Path
    ) -> None:
        roster = make_roster(
            {"api": service_entry()},
            root=tmp_path,
            prerequisites=[
                {"name": "python", "command": [sys.executable, "--version"]}
            ],
        )

        with console.capture() as capture:
            await check_prerequisites(
                roster, console=console, logger=log_capture.logger
            )

        assert "OK python: Python 3" in capture.get()

    @pytest.mark.anyio
    async def test_missing_tool_raises(
        self, console: Console, log_capture: LogCapture, tmp_path: Path
    ) -> None:
        roster = make_roster(
            {"api": service_entry()},
            root=tmp_path,
            prerequisites=[{"name": "ghost", "command": "devplane-no-such-tool -v"}],
        )

        with pytest.raises(PrerequisiteError) as exc_info:
            await check_prerequisites(
                roster, console=console, logger=log_capture.logger
            )

        assert exc_info.value.name == "ghost"

    @pytest.mark.anyio
    async def test_missing_service_path_is_a_warning(
        self, console: Console, log_capture: LogCapture, tmp_path: Path
    ) -> None:
        roster = make_roster({"api": service_entry(path="nope")}, root=tmp_path)

        await check_prerequisites(roster, console=console, logger=log_capture.logger)

        assert log_capture.find("service_path_missing")[0]["service"] == "api"


class TestCleanupStaleProcesses:
    @pytest.mark.anyio
    async def test_fast_cleanup_only_kills_port_holders(
        self, monkeypatch: pytest.MonkeyPatch, log_capture: LogCapture
    ) -> None:
        roster = make_roster(
            {"api": service_entry(port=7300)}, cleanup={"processNames": ["node"]}
        )
        killed: list[list[int]] = []
        monkeypatch.setattr(
            "devplane.supervisor._runner.find_listening_pids",
            lambda ports: {7300: 111} if 7300 in ports else {},
        )
        monkeypatch.setattr(
            "devplane.supervisor._runner.find_pids_by_name", lambda names: [222]
        )
        monkeypatch.setattr(
            "devplane.supervisor._runner.kill_pids",
            lambda pids: killed.append(list(pids)) or list(pids),
        )

        result = await cleanup_stale_processes(
            roster, fast=True, logger=log_capture.logger, settle=False
        )

        assert result == [111]
        assert killed == [[111]]

    @pytest.mark.anyio
    async def test_normal_cleanup_adds_named_processes(
        self, monkeypatch: pytest.MonkeyPatch, log_capture: LogCapture
    ) -> None:
        roster = make_roster(
            {"api": service_entry(port=7300)}, cleanup={"processNames": ["node"]}
        )
        monkeypatch.setattr(
            "devplane.supervisor._runner.find_listening_pids", lambda ports: {}
        )
        monkeypatch.setattr(
            "devplane.supervisor._runner.find_pids_by_name",
            lambda names: [222] if "node" in names else [],
        )
        monkeypatch.setattr(
            "devplane.supervisor._runner.kill_pids", lambda pids: list(pids)
        )

        result = await cleanup_stale_processes(
            roster, fast=False, logger=log_capture.logger, settle=False
        )

        assert result == [222]
        assert log_capture.find("stale_processes_killed")[0]["pids"] == [222]


class TestPrintSummary:
    def test_lists_services_failures_and_skips(
        self, make_context: ContextFactory, console: Console
    ) -> None:
        context: ControlContext = make_context(
            make_roster(
                {
                    "api": service_entry(name="API", port=7401),
                    "web": service_entry(name="Web", port=7402),
                    "docs": service_entry(name="Docs", port=7403),
                },
                integrations={
                    "monitoring": {
                        "enabled": True,
                        "dashboardUrl": "http://localhost:9999/dashboard",
                    }
                },
            )
        )
        context.set_status("api", ServiceState.HEALTHY)
        context.set_status("web", ServiceState.FAILED)
        report = LaunchReport(
            ready=["api"],
            failed={"web": SpawnError("no such file", service_id="web")},
            skipped=["docs"],
            startup_times={"api": 1.25},
        )

        with console.capture() as capture:
            print_summary(
                context,
                report,
                HealthSummary(passed=["api"]),
                console=console,
                elapsed=2.0,
            )

        output = capture.get()
        assert "Total startup time: 2.0s" in output
        assert "http://localhost:7401" in output
        assert "Web failed: no such file" in output
        assert "Skipped (dependencies not ready): docs" in output
        assert "http://localhost:9999/dashboard" in output


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestRunStack:
    @pytest.mark.anyio
    async def test_critical_failure_returns_false_and_stops_everything(
        self,
        monkeypatch: pytest.MonkeyPatch,
        console: Console,
        log_capture: LogCapture,
        tmp_path: Path,
    ) -> None:
        monkeypatch.setattr("devplane.supervisor._runner.FAST_CLEANUP_SETTLE", 0)
        fast = {"healthInterval": 0.05, "healthRetries": 40}
        roster = make_roster(
            {
                "steady": service_entry(
                    name="Steady",
                    port=47811,
                    command=[sys.executable, "-c", "import time; time.sleep(30)"],
                    performance={"healthInterval": 0.05, "healthRetries": 1},
                ),
                "broken": service_entry(
                    name="Broken",
                    port=47812,
                    command=[sys.executable, "-c", "raise SystemExit(1)"],
                    critical=True,
                    performance=fast,
                ),
            },
            root=tmp_path,
        )
        options = RunOptions(fast_cleanup=True, skip_prerequisites=True)

        with console.capture() as capture:
            succeeded = await run_stack(
                roster, options, logger=log_capture.logger, console=console
            )

        assert succeeded is False
        assert "Startup failed" in capture.get()
        assert "shutdown_completed" in log_capture.events()

    @pytest.mark.anyio
    async def test_run_without_signal_receiver_completes(
        self,
        monkeypatch: pytest.MonkeyPatch,
        console: Console,
        log_capture: LogCapture,
        tmp_path: Path,
    ) -> None:
        def unsupported(*_signals: int) -> None:
            msg = "signal receivers are not supported on this platform"
            raise NotImplementedError(msg)

        monkeypatch.setattr("devplane.supervisor._runner.FAST_CLEANUP_SETTLE", 0)
        monkeypatch.setattr("devplane.supervisor._runner.WATCH_SIGNALS", False)
        monkeypatch.setattr(anyio, "open_signal_receiver", unsupported)
        roster = make_roster(
            {
                "broken": service_entry(
                    name="Broken",
                    port=47813,
                    command=[sys.executable, "-c", "raise SystemExit(1)"],
                    critical=True,
                    performance={"healthInterval": 0.05, "healthRetries": 40},
                ),
            },
            root=tmp_path,
        )
        options = RunOptions(fast_cleanup=True, skip_prerequisites=True)

        with console.capture():
            succeeded = await run_stack(
                roster, options, logger=log_capture.logger, console=console
            )

        assert succeeded is False
        assert "shutdown_completed" in log_capture.events()
