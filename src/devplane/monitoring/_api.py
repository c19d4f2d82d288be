"""FastAPI endpoints of the monitoring server.

This module provides the REST surface over collector data and alerts,
plus the `/ws` WebSocket that pushes snapshots, logs and alerts to
dashboard clients.
"""

# pyright: reportUnusedFunction=false
# FastAPI route handlers are registered via decorators, not direct calls

from typing import TYPE_CHECKING, Annotated, Any, Never

import anyio.to_thread
import psutil
from fastapi import (
    APIRouter,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)

from devplane.exceptions import AlertNotFoundError, ServiceNotFoundError
from devplane.utils import load_json, utc_now

from ._models import (
    Alert,
    AlertCreate,
    Envelope,
    HealthResponse,
    LogEntry,
    LogLevel,
    MetricsSnapshot,
    ServiceMetrics,
)

if TYPE_CHECKING:
    from ._server import MonitoringServer

HISTORY_HOURS = 24
DEFAULT_LOG_LIMIT = 100


def _raise_not_found(detail: str, cause: Exception) -> Never:
    """Raise HTTP 404 with the given detail.

    Raises:
        HTTPException: Always raises with 404 status.
    """
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    ) from cause


def create_monitoring_router(server: "MonitoringServer") -> APIRouter:  # noqa: C901
    """Create a FastAPI router for the monitoring endpoints.

    Args:
        server: The MonitoringServer whose data is exposed.

    Returns:
        A FastAPI APIRouter with the REST and WebSocket endpoints.
    """
    router = APIRouter()
    collector = server.collector
    alerts = server.alerts

    @router.get("/api/status", response_model=Envelope[MetricsSnapshot])
    async def get_status() -> Envelope[MetricsSnapshot]:
        """Collect and return a point-in-time snapshot."""
        snapshot = await collector.collect_system_metrics()
        return Envelope[MetricsSnapshot](data=snapshot)

    @router.get("/api/services/{service_id}", response_model=Envelope[ServiceMetrics])
    async def get_service(service_id: str) -> Envelope[ServiceMetrics]:
        """Probe one service and return its state."""
        try:
            _ = await collector.check_service_health(service_id)
        except ServiceNotFoundError as e:
            _raise_not_found("Service not found", e)
        return Envelope[ServiceMetrics](data=collector.service_metrics(service_id))

    @router.get("/api/logs", response_model=Envelope[list[LogEntry]])
    async def get_logs(
        service: str | None = None,
        level: LogLevel | None = None,
        limit: Annotated[int, Query(ge=1)] = DEFAULT_LOG_LIMIT,
    ) -> Envelope[list[LogEntry]]:
        """Return buffered log entries, optionally filtered."""
        logs = collector.query_logs(service=service, level=level, limit=limit)
        return Envelope[list[LogEntry]](data=logs)

    @router.get("/api/metrics/history", response_model=Envelope[list[dict[str, Any]]])
    async def get_metrics_history() -> Envelope[list[dict[str, Any]]]:
        """Return persisted snapshots from the last 24 hours, oldest first."""
        since = utc_now().subtract(hours=HISTORY_HOURS)
        history = await anyio.to_thread.run_sync(
            collector.storage.load_metrics_history, since
        )
        return Envelope[list[dict[str, Any]]](data=history)

    @router.get("/api/alerts", response_model=Envelope[list[Alert]])
    async def get_alerts() -> Envelope[list[Alert]]:
        """Return every alert, newest first."""
        return Envelope[list[Alert]](data=alerts.alerts)

    @router.post("/api/alerts", response_model=Envelope[Alert])
    async def create_alert(request: AlertCreate) -> Envelope[Alert]:
        """Raise an alert manually and push it to every client."""
        alert = alerts.create_alert(request.service, request.level, request.message)
        _ = await server.connections.broadcast("alert", alert)
        return Envelope[Alert](data=alert)

    @router.put("/api/alerts/{alert_id}/acknowledge", response_model=Envelope[Alert])
    async def acknowledge_alert(alert_id: int) -> Envelope[Alert]:
        """Acknowledge an alert so it no longer suppresses new ones."""
        try:
            alert = alerts.acknowledge(alert_id)
        except AlertNotFoundError as e:
            _raise_not_found("Alert not found", e)
        return Envelope[Alert](data=alert)

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Report liveness of the monitoring server itself."""
        memory = psutil.Process().memory_info()._asdict()
        return HealthResponse(
            status="healthy",
            timestamp=utc_now(),
            uptime=server.uptime,
            memory={key: int(value) for key, value in memory.items()},
        )

    @router.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Push the initial payload, then answer client messages."""
        await server.connections.connect(websocket)
        try:
            await server.connections.send(
                websocket, "initial", await server.initial_payload()
            )
            while True:
                raw = await websocket.receive_text()
                message = load_json(raw)
                if not isinstance(message, dict):
                    server.logger.warning("websocket_message_invalid", raw=raw[:200])
                    continue
                await server.handle_client_message(websocket, message)
        except WebSocketDisconnect:
            pass
        finally:
            server.connections.disconnect(websocket)

    return router
