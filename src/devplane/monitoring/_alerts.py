"""Threshold-based alerting with de-duplication."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, final

from pendulum import Duration, duration

from devplane.exceptions import AlertNotFoundError
from devplane.utils import utc_now

from ._models import Alert, AlertCategory, AlertLevel, ServiceStatus

if TYPE_CHECKING:
    from devplane.utils import Clock

    from ._models import MetricsSnapshot

MAX_ALERTS = 100
CPU_THRESHOLD = 80.0
MEMORY_THRESHOLD = 85.0
SYSTEM_SERVICE = "system"

DEDUP_WINDOWS: dict[AlertCategory, Duration] = {
    AlertCategory.DOWN: duration(minutes=5),
    AlertCategory.CPU: duration(minutes=10),
    AlertCategory.MEMORY: duration(minutes=10),
}

_DOWN_STATUSES = frozenset({ServiceStatus.STOPPED, ServiceStatus.ERROR})


@final
class AlertEngine:
    """Keeps the alert list, newest first, and raises threshold alerts.

    A threshold alert is suppressed when an unacknowledged alert with the
    same (service, level, category) key was raised within that category's
    window. Manually created alerts are never suppressed. The list keeps
    at most `max_alerts` entries, dropping the oldest.
    """

    __slots__ = ("_alerts", "_clock", "_ids", "_max_alerts")

    def __init__(self, *, max_alerts: int = MAX_ALERTS, clock: Clock = utc_now) -> None:
        self._alerts: list[Alert] = []
        self._max_alerts = max_alerts
        self._clock = clock
        self._ids = itertools.count(1)

    @property
    def alerts(self) -> list[Alert]:
        """Return every alert, newest first."""
        return list(self._alerts)

    def recent(self, count: int) -> list[Alert]:
        return self._alerts[:count]

    def get(self, alert_id: int) -> Alert:
        """Return an alert by id.

        Raises:
            AlertNotFoundError: If no alert has the id.
        """
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        msg = f"Alert {alert_id} not found"
        raise AlertNotFoundError(msg, alert_id=alert_id)

    def acknowledge(self, alert_id: int) -> Alert:
        """Mark an alert as acknowledged.

        Raises:
            AlertNotFoundError: If no alert has the id.
        """
        alert = self.get(alert_id)
        alert.acknowledged = True
        return alert

    def _add(
        self,
        service: str,
        level: AlertLevel,
        category: AlertCategory,
        message: str,
    ) -> Alert:
        alert = Alert(
            id=next(self._ids),
            service=service,
            level=level,
            category=category,
            message=message,
            timestamp=self._clock(),
        )
        self._alerts.insert(0, alert)
        del self._alerts[self._max_alerts :]
        return alert

    def is_duplicate(
        self,
        service: str,
        level: AlertLevel,
        category: AlertCategory,
    ) -> bool:
        """Return whether an alert with this key is still open within its window."""
        window = DEDUP_WINDOWS.get(category)
        if window is None:
            return False
        cutoff = self._clock() - window
        return any(
            alert.service == service
            and alert.level is level
            and alert.category is category
            and not alert.acknowledged
            and alert.timestamp > cutoff
            for alert in self._alerts
        )

    def raise_alert(
        self,
        service: str,
        level: AlertLevel,
        category: AlertCategory,
        message: str,
    ) -> Alert | None:
        """Raise a threshold alert unless it duplicates an open one.

        Returns:
            The new alert, or None when it was suppressed.
        """
        if self.is_duplicate(service, level, category):
            return None
        return self._add(service, level, category, message)

    def create_alert(self, service: str, level: AlertLevel, message: str) -> Alert:
        """Add a manually raised alert."""
        return self._add(service, level, AlertCategory.MANUAL, message)

    def evaluate(self, snapshot: MetricsSnapshot) -> list[Alert]:
        """Apply the threshold policy to a snapshot.

        Returns:
            The alerts raised, in the order they were raised.
        """
        raised: list[Alert | None] = []
        for service_id, metrics in snapshot.services.items():
            if metrics.status in _DOWN_STATUSES:
                raised.append(
                    self.raise_alert(
                        service_id,
                        AlertLevel.CRITICAL,
                        AlertCategory.DOWN,
                        f"Service is down: {metrics.name}",
                    )
                )
            process = metrics.process_metrics
            if process is not None and process.cpu > CPU_THRESHOLD:
                raised.append(
                    self.raise_alert(
                        service_id,
                        AlertLevel.WARNING,
                        AlertCategory.CPU,
                        f"High CPU usage: {process.cpu:.2f}%",
                    )
                )

        memory = snapshot.system.memory.percentage
        if memory > MEMORY_THRESHOLD:
            raised.append(
                self.raise_alert(
                    SYSTEM_SERVICE,
                    AlertLevel.WARNING,
                    AlertCategory.MEMORY,
                    f"High system memory usage: {memory:.2f}%",
                )
            )
        return [alert for alert in raised if alert is not None]
