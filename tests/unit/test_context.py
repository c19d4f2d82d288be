import pytest

from devplane.context import ControlContext
from devplane.exceptions import ServiceNotFoundError
from devplane.supervisor import ExitRecord, ServiceRuntimeState, ServiceState
from tests.conftest import ContextFactory, FakeProcess, make_roster, service_entry


@pytest.fixture
def context(make_context: ContextFactory) -> ControlContext:
    return make_context(make_roster({"api": service_entry(name="API")}))


class TestDefinition:
    def test_returns_roster_entry(self, context: ControlContext) -> None:
        assert context.definition("api").name == "API"

    def test_unknown_service_raises(self, context: ControlContext) -> None:
        with pytest.raises(ServiceNotFoundError) as exc_info:
            _ = context.definition("ghost")

        assert exc_info.value.service_id == "ghost"


class TestStatus:
    def test_defaults_to_unstarted(self, context: ControlContext) -> None:
        assert context.status("api") is ServiceState.UNSTARTED

    def test_transition_updates_runtime(self, context: ControlContext) -> None:
        runtime = ServiceRuntimeState(service_id="api", process=FakeProcess())
        context.processes["api"] = runtime

        context.set_status("api", ServiceState.HEALTHY)

        assert context.status("api") is ServiceState.HEALTHY
        assert runtime.status is ServiceState.HEALTHY

    def test_stopped_is_terminal(self, context: ControlContext) -> None:
        context.set_status("api", ServiceState.STOPPED)
        context.set_status("api", ServiceState.HEALTHY)

        assert context.status("api") is ServiceState.STOPPED


class TestRegistry:
    def test_supervised_and_exited(self, context: ControlContext) -> None:
        context.processes["api"] = ServiceRuntimeState(
            service_id="api", process=FakeProcess()
        )
        assert context.is_supervised("api")
        assert not context.has_exited("api")

        del context.processes["api"]
        context.exits["api"] = ExitRecord(
            exit_code=1, signal=None, timestamp="2025-01-01T00:00:00Z"
        )

        assert not context.is_supervised("api")
        assert context.has_exited("api")

    def test_record_metric(self, context: ControlContext) -> None:
        context.record_metric("api", "startup_time", 1.5)
        context.record_metric("api", "health_attempts", 3)

        assert context.metrics == {"api": {"startup_time": 1.5, "health_attempts": 3}}
