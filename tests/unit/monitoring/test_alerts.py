import pytest

from devplane.exceptions import AlertNotFoundError
from devplane.monitoring import (
    SYSTEM_SERVICE,
    AlertCategory,
    AlertEngine,
    AlertLevel,
    MemoryMetrics,
    MetricsSnapshot,
    ProcessMetrics,
    ServiceMetrics,
    ServiceStatus,
    SystemMetrics,
)
from tests.unit.monitoring.conftest import ManualClock


def _snapshot(
    clock: ManualClock,
    *,
    status: ServiceStatus = ServiceStatus.RUNNING,
    cpu: float | None = None,
    memory_percentage: float = 40.0,
) -> MetricsSnapshot:
    process = (
        ProcessMetrics(cpu=cpu, memory=1024, ppid=1, ctime=0.0, elapsed=10.0)
        if cpu is not None
        else None
    )
    return MetricsSnapshot(
        timestamp=clock(),
        system=SystemMetrics(
            cpu=[0.5, 0.4, 0.3],
            memory=MemoryMetrics(
                total=1000,
                free=1000 - int(memory_percentage * 10),
                used=int(memory_percentage * 10),
                percentage=memory_percentage,
            ),
            uptime=1000.0,
        ),
        services={
            "x": ServiceMetrics(
                name="X", status=status, port=8000, pid=None, process_metrics=process
            )
        },
    )


class TestDeduplication:
    def test_stopped_twice_within_four_minutes_gives_one_critical(
        self, clock: ManualClock
    ) -> None:
        engine = AlertEngine(clock=clock)

        first = engine.evaluate(_snapshot(clock, status=ServiceStatus.STOPPED))
        clock.advance(minutes=4)
        second = engine.evaluate(_snapshot(clock, status=ServiceStatus.STOPPED))

        assert len(first) == 1
        assert second == []
        critical = [a for a in engine.alerts if a.service == "x"]
        assert len(critical) == 1
        assert critical[0].level is AlertLevel.CRITICAL
        assert critical[0].category is AlertCategory.DOWN

    def test_down_alert_repeats_after_window(self, clock: ManualClock) -> None:
        engine = AlertEngine(clock=clock)

        _ = engine.evaluate(_snapshot(clock, status=ServiceStatus.ERROR))
        clock.advance(minutes=5, seconds=1)
        raised = engine.evaluate(_snapshot(clock, status=ServiceStatus.ERROR))

        assert len(raised) == 1
        assert len(engine.alerts) == 2

    def test_acknowledged_alert_does_not_suppress(self, clock: ManualClock) -> None:
        engine = AlertEngine(clock=clock)
        (alert,) = engine.evaluate(_snapshot(clock, status=ServiceStatus.STOPPED))

        _ = engine.acknowledge(alert.id)
        clock.advance(minutes=1)
        raised = engine.evaluate(_snapshot(clock, status=ServiceStatus.STOPPED))

        assert len(raised) == 1

    def test_cpu_window_is_ten_minutes(self, clock: ManualClock) -> None:
        engine = AlertEngine(clock=clock)

        first = engine.evaluate(_snapshot(clock, cpu=95.0))
        clock.advance(minutes=9)
        second = engine.evaluate(_snapshot(clock, cpu=97.0))
        clock.advance(minutes=2)
        third = engine.evaluate(_snapshot(clock, cpu=99.0))

        assert [len(first), len(second), len(third)] == [1, 0, 1]
        assert first[0].level is AlertLevel.WARNING
        assert first[0].message == "High CPU usage: 95.00%"

    def test_manual_alerts_are_never_suppressed(self, clock: ManualClock) -> None:
        engine = AlertEngine(clock=clock)

        _ = engine.create_alert("x", AlertLevel.WARNING, "disk almost full")
        _ = engine.create_alert("x", AlertLevel.WARNING, "disk almost full")

        assert len(engine.alerts) == 2


class TestThresholds:
    def test_running_service_below_thresholds_raises_nothing(
        self, clock: ManualClock
    ) -> None:
        engine = AlertEngine(clock=clock)

        assert engine.evaluate(_snapshot(clock, cpu=80.0, memory_percentage=85.0)) == []

    def test_high_system_memory_alerts_system_service(
        self, clock: ManualClock
    ) -> None:
        engine = AlertEngine(clock=clock)

        (alert,) = engine.evaluate(_snapshot(clock, memory_percentage=91.5))

        assert alert.service == SYSTEM_SERVICE
        assert alert.category is AlertCategory.MEMORY
        assert alert.message == "High system memory usage: 91.50%"


class TestAlertList:
    def test_newest_first_and_capped(self, clock: ManualClock) -> None:
        engine = AlertEngine(max_alerts=100, clock=clock)

        for index in range(105):
            _ = engine.create_alert("x", AlertLevel.WARNING, f"alert {index}")

        alerts = engine.alerts
        assert len(alerts) == 100
        assert alerts[0].message == "alert 104"
        assert alerts[-1].message == "alert 5"
        assert engine.recent(3)[0].id == 105

    def test_acknowledge_unknown_id_raises(self, clock: ManualClock) -> None:
        engine = AlertEngine(clock=clock)

        with pytest.raises(AlertNotFoundError) as exc_info:
            _ = engine.acknowledge(42)

        assert exc_info.value.alert_id == 42

    def test_acknowledge_marks_alert(self, clock: ManualClock) -> None:
        engine = AlertEngine(clock=clock)
        alert = engine.create_alert("x", AlertLevel.CRITICAL, "manual")

        acknowledged = engine.acknowledge(alert.id)

        assert acknowledged.acknowledged is True
        assert engine.get(alert.id).acknowledged is True
