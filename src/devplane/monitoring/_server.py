"""Monitoring server: REST, WebSocket push and periodic alerting.

The MonitoringServer owns the LogCollector, the AlertEngine and the set
of connected dashboard clients. Its periodic jobs push a metrics snapshot
every 10 seconds (raising threshold alerts as they go) and the most recent
log entries every 30 seconds.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from functools import partial
from typing import TYPE_CHECKING, Any, final

import anyio
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ._api import create_monitoring_router
from ._broadcast import ConnectionManager
from ._schedule import run_every

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fastapi import WebSocket
    from structlog.typing import FilteringBoundLogger

    from ._alerts import AlertEngine
    from ._collector import LogCollector

METRICS_PUSH_INTERVAL = 10.0
LOGS_PUSH_INTERVAL = 30.0
INITIAL_ALERTS = 10
PUSHED_LOGS = 20
_UNPROCESSABLE = 422


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
    )


@final
class MonitoringServer:
    """Relays collector data and alerts to dashboard clients."""

    __slots__ = (
        "_logs_interval",
        "_metrics_interval",
        "_started_at",
        "alerts",
        "collector",
        "connections",
        "logger",
    )

    def __init__(
        self,
        collector: LogCollector,
        alerts: AlertEngine,
        *,
        logger: FilteringBoundLogger,
        metrics_interval: float = METRICS_PUSH_INTERVAL,
        logs_interval: float = LOGS_PUSH_INTERVAL,
    ) -> None:
        """Initialize the server.

        Args:
            collector: Source of health, metrics and log data.
            alerts: Alert list and threshold policy.
            logger: Structured logger.
            metrics_interval: Seconds between metrics pushes.
            logs_interval: Seconds between log pushes.
        """
        self.collector = collector
        self.alerts = alerts
        self.logger = logger
        self.connections = ConnectionManager(logger)
        self._metrics_interval = metrics_interval
        self._logs_interval = logs_interval
        self._started_at = time.monotonic()

    @property
    def uptime(self) -> float:
        """Seconds since the server was created."""
        return time.monotonic() - self._started_at

    async def initial_payload(self) -> dict[str, Any]:
        """Build the message sent to a client right after it connects."""
        return {
            "metrics": await self.collector.collect_system_metrics(),
            "status": self.collector.status(),
            "alerts": self.alerts.recent(INITIAL_ALERTS),
        }

    async def handle_client_message(
        self, websocket: WebSocket, message: dict[str, object]
    ) -> None:
        """Answer one message received from a dashboard client."""
        match message.get("type"):
            case "ping":
                await self.connections.send(websocket, "pong")
            case "subscribe" | "unsubscribe" as kind:
                # Every client receives every broadcast
                self.logger.debug(
                    "websocket_subscription", kind=kind, data=message.get("data")
                )
            case other:
                self.logger.warning("websocket_message_unknown", type=other)

    async def push_metrics(self) -> None:
        """Broadcast a fresh snapshot and any alerts it raises."""
        snapshot = await self.collector.collect_system_metrics()
        _ = await self.connections.broadcast("metrics", snapshot)
        for alert in self.alerts.evaluate(snapshot):
            self.logger.warning(
                "alert_raised",
                service=alert.service,
                level=alert.level.value,
                category=alert.category.value,
                message=alert.message,
            )
            _ = await self.connections.broadcast("alert", alert)

    async def push_logs(self) -> None:
        """Broadcast the most recent buffered log entries."""
        if not self.connections.active_connections:
            return
        _ = await self.connections.broadcast(
            "logs", self.collector.buffer.recent(PUSHED_LOGS)
        )

    async def run_periodic(self) -> None:
        """Run the collector schedule and the push jobs until cancelled."""
        async with anyio.create_task_group() as tg:
            tg.start_soon(self.collector.run)
            for interval, job, name in (
                (self._metrics_interval, self.push_metrics, "push_metrics"),
                (self._logs_interval, self.push_logs, "push_logs"),
            ):
                runner = partial(run_every, logger=self.logger, name=name)
                tg.start_soon(runner, interval, job)

    def create_app(self, *, background: bool = True) -> FastAPI:
        """Create the FastAPI application.

        Args:
            background: Run the periodic jobs for the lifetime of the app.

        Returns:
            The application with REST and WebSocket routes mounted.
        """

        @asynccontextmanager
        async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
            if not background:
                yield
                return
            async with anyio.create_task_group() as tg:
                tg.start_soon(self.run_periodic)
                self.logger.info("monitoring_started")
                yield
                tg.cancel_scope.cancel()
            self.logger.info("monitoring_stopped")

        app = FastAPI(
            title="devplane monitoring",
            docs_url=None,
            redoc_url=None,
            lifespan=lifespan,
        )

        @app.exception_handler(StarletteHTTPException)
        async def _http_error(  # pyright: ignore[reportUnusedFunction]
            _request: Request, exc: StarletteHTTPException
        ) -> JSONResponse:
            return _error_response(exc.status_code, str(exc.detail))

        @app.exception_handler(RequestValidationError)
        async def _validation_error(  # pyright: ignore[reportUnusedFunction]
            _request: Request, exc: RequestValidationError
        ) -> JSONResponse:
            return _error_response(_UNPROCESSABLE, str(exc.errors()))

        @app.exception_handler(Exception)
        async def _internal_error(  # pyright: ignore[reportUnusedFunction]
            request: Request, exc: Exception
        ) -> JSONResponse:
            self.logger.error(
                "request_failed", path=request.url.path, error=str(exc)
            )
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
            )

        app.include_router(create_monitoring_router(self))
        return app

    async def serve(self, host: str, port: int) -> None:
        """Serve the application with uvicorn until interrupted."""
        config = uvicorn.Config(
            self.create_app(),
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self.logger.info("monitoring_server_listening", host=host, port=port)
        await uvicorn.Server(config).serve()
