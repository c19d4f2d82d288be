"""Service health sampling, OS metrics and log buffering.

The LogCollector probes every monitored service port, resolves the PID
of the listening process, assembles metrics snapshots and owns the log
ring buffer. Its scheduled work (metrics, log flush, retention sweep)
runs from run() inside a task group.
"""

from __future__ import annotations

import os
import time
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from typing import TYPE_CHECKING, Any, final

import anyio
import anyio.to_thread
import psutil

from devplane.config import MONITORING_SERVICE_ID
from devplane.exceptions import ServiceNotFoundError
from devplane.utils import find_listening_pid, utc_now

from ._buffer import DEFAULT_BUFFER_CAPACITY, LogBuffer
from ._models import (
    CollectorStatus,
    LogEntry,
    LogLevel,
    MemoryMetrics,
    MetricsSnapshot,
    MonitoredService,
    ProcessMetrics,
    ServiceMetrics,
    ServiceStatus,
    SystemMetrics,
)
from ._schedule import run_every

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from devplane.config import RosterConfig
    from devplane.utils import Clock

    from ._storage import MonitoringStorage

PortProbe = Callable[[int], Awaitable[bool]]
PidResolver = Callable[[int], int | None]

PORT_PROBE_TIMEOUT = 1.0
METRICS_INTERVAL = 60.0
LOG_FLUSH_INTERVAL = 300.0
CLEANUP_INTERVAL = 86400.0
RECENT_LOGS = 10


async def probe_port(port: int, *, host: str = "localhost") -> bool:
    """Return whether a TCP connection to the port succeeds within 1s."""
    try:
        with anyio.fail_after(PORT_PROBE_TIMEOUT):
            stream = await anyio.connect_tcp(host, port)
    except (OSError, TimeoutError):
        return False
    await stream.aclose()
    return True


def _system_metrics() -> SystemMetrics:
    load = list(os.getloadavg()) if hasattr(os, "getloadavg") else [0.0, 0.0, 0.0]
    memory = psutil.virtual_memory()
    used = memory.total - memory.available
    return SystemMetrics(
        cpu=load,
        memory=MemoryMetrics(
            total=memory.total,
            free=memory.available,
            used=used,
            percentage=round(used / memory.total * 100, 2) if memory.total else 0.0,
        ),
        uptime=time.time() - psutil.boot_time(),
    )


@final
class LogCollector:
    """Samples the monitored services and buffers log events."""

    __slots__ = (
        "_buffer",
        "_clock",
        "_logger",
        "_pid_resolver",
        "_pids",
        "_port_probe",
        "_processes",
        "_services",
        "_statuses",
        "storage",
    )

    def __init__(  # noqa: PLR0913
        self,
        services: Sequence[MonitoredService],
        storage: MonitoringStorage,
        *,
        logger: FilteringBoundLogger,
        buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
        port_probe: PortProbe = probe_port,
        pid_resolver: PidResolver = find_listening_pid,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the collector.

        Args:
            services: Services to track, in display order.
            storage: Persistence for logs, metrics and health reports.
            logger: Structured logger.
            buffer_capacity: Capacity of the log ring buffer.
            port_probe: Returns whether a port accepts connections.
            pid_resolver: Returns the PID listening on a port.
            clock: Source of the current time.
        """
        self._services: dict[str, MonitoredService] = {s.id: s for s in services}
        self.storage = storage
        self._logger = logger
        self._buffer = LogBuffer(buffer_capacity)
        self._port_probe = port_probe
        self._pid_resolver = pid_resolver
        self._clock = clock
        self._statuses: dict[str, ServiceStatus] = dict.fromkeys(
            self._services, ServiceStatus.UNKNOWN
        )
        self._pids: dict[str, int | None] = dict.fromkeys(self._services)
        # Kept across samples so cpu_percent() measures the interval between them
        self._processes: dict[int, psutil.Process] = {}

    @classmethod
    def from_roster(
        cls,
        roster: RosterConfig,
        storage: MonitoringStorage,
        *,
        logger: FilteringBoundLogger,
        **kwargs: Any,  # noqa: ANN401
    ) -> LogCollector:
        """Track every roster service except the monitoring service itself."""
        services = [
            MonitoredService(
                id=definition.id,
                name=definition.name,
                port=definition.port,
                log_dir=roster.resolve_path(definition) / "logs",
            )
            for definition in roster.services.values()
            if definition.id != MONITORING_SERVICE_ID
        ]
        return cls(services, storage, logger=logger, **kwargs)

    @property
    def services(self) -> list[MonitoredService]:
        return list(self._services.values())

    @property
    def buffer(self) -> LogBuffer:
        return self._buffer

    def _service(self, service_id: str) -> MonitoredService:
        service = self._services.get(service_id)
        if service is None:
            msg = f"Service '{service_id}' not found"
            raise ServiceNotFoundError(msg, service_id=service_id)
        return service

    def log_event(
        self,
        service: str,
        level: LogLevel,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> LogEntry:
        """Record a log event in the ring buffer."""
        entry = LogEntry(
            timestamp=self._clock(),
            service=service,
            level=level,
            message=message,
            metadata=metadata or {},
        )
        self._buffer.append(entry)
        self._logger.info(
            "log_event", service=service, level=level.value, message=message
        )
        return entry

    async def check_service_health(self, service_id: str) -> ServiceStatus:
        """Probe a service port and update its status and PID.

        Raises:
            ServiceNotFoundError: If the service is not monitored.
        """
        service = self._service(service_id)
        previous = self._statuses[service_id]
        try:
            reachable = await self._port_probe(service.port)
        except Exception as e:  # noqa: BLE001
            status = ServiceStatus.ERROR
            self._pids[service_id] = None
            _ = self.log_event(
                service_id, LogLevel.ERROR, f"Health check failed: {e}"
            )
        else:
            status = ServiceStatus.RUNNING if reachable else ServiceStatus.STOPPED
            if reachable:
                self._pids[service_id] = await anyio.to_thread.run_sync(
                    self._pid_resolver, service.port
                )
            else:
                self._pids[service_id] = None

        self._statuses[service_id] = status
        if previous is not ServiceStatus.UNKNOWN and previous is not status:
            running = status is ServiceStatus.RUNNING
            level = LogLevel.INFO if running else LogLevel.WARNING
            _ = self.log_event(
                service_id,
                level,
                f"{service.name} is now {status.value}",
                {"previous": previous.value},
            )
        return status

    def _process_metrics(self, service_id: str, pid: int) -> ProcessMetrics | None:
        process = self._processes.get(pid)
        try:
            if process is None:
                process = self._processes[pid] = psutil.Process(pid)
            with process.oneshot():
                create_time = process.create_time()
                return ProcessMetrics(
                    cpu=round(process.cpu_percent(interval=None), 2),
                    memory=process.memory_info().rss,
                    ppid=process.ppid(),
                    ctime=create_time,
                    elapsed=max(time.time() - create_time, 0.0),
                )
        except psutil.Error as e:
            _ = self._processes.pop(pid, None)
            self._logger.warning(
                "process_metrics_failed", service=service_id, pid=pid, error=str(e)
            )
            return None

    def service_metrics(self, service_id: str) -> ServiceMetrics:
        """Return the last known state of a service.

        Raises:
            ServiceNotFoundError: If the service is not monitored.
        """
        service = self._service(service_id)
        pid = self._pids.get(service_id)
        return ServiceMetrics(
            name=service.name,
            status=self._statuses[service_id],
            port=service.port,
            pid=pid,
            process_metrics=self._process_metrics(service_id, pid) if pid else None,
        )

    async def collect_system_metrics(self) -> MetricsSnapshot:
        """Probe every service and assemble one snapshot."""
        async with anyio.create_task_group() as tg:
            for service_id in self._services:
                tg.start_soon(self.check_service_health, service_id)

        system = await anyio.to_thread.run_sync(_system_metrics)
        snapshot = MetricsSnapshot(
            timestamp=self._clock(),
            system=system,
            services={
                service_id: self.service_metrics(service_id)
                for service_id in self._services
            },
        )
        self._prune_processes()
        return snapshot

    def _prune_processes(self) -> None:
        """Forget cached process handles no service resolves to anymore."""
        live = {pid for pid in self._pids.values() if pid is not None}
        for pid in set(self._processes) - live:
            del self._processes[pid]

    @property
    def cached_pids(self) -> frozenset[int]:
        """Return the PIDs with a cached process handle."""
        return frozenset(self._processes)

    def status(self) -> CollectorStatus:
        """Return the collector state for dashboard clients.

        Uses the last known service states without probing.
        """
        return CollectorStatus(
            services={
                service_id: ServiceMetrics(
                    name=service.name,
                    status=self._statuses[service_id],
                    port=service.port,
                    pid=self._pids.get(service_id),
                )
                for service_id, service in self._services.items()
            },
            log_buffer_size=len(self._buffer),
            recent_logs=self._buffer.recent(RECENT_LOGS),
        )

    def query_logs(
        self,
        *,
        service: str | None = None,
        level: LogLevel | None = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        """Return buffered entries matching the filters, newest `limit` kept."""
        return self._buffer.query(service=service, level=level, limit=limit)

    async def save_logs(self) -> int:
        """Flush unflushed log entries to today's combined file.

        Returns:
            The number of entries written.
        """
        entries = self._buffer.drain_pending()
        if not entries:
            return 0
        try:
            path = await anyio.to_thread.run_sync(self.storage.append_logs, entries)
        except OSError as e:
            self._buffer.requeue(entries)
            self._logger.error("log_flush_failed", error=str(e), pending=len(entries))
            return 0
        self._logger.debug("logs_flushed", count=len(entries), path=str(path))
        return len(entries)

    def _health_report(
        self, service_id: str, metrics: ServiceMetrics
    ) -> dict[str, Any]:
        return {
            "service": service_id,
            "timestamp": self._clock().to_iso8601_string(),
            **metrics.model_dump(mode="json"),
        }

    async def save_metrics(self, snapshot: MetricsSnapshot) -> None:
        """Persist a snapshot and refresh every health-report file."""
        try:
            _ = await anyio.to_thread.run_sync(self.storage.save_metrics, snapshot)
            for service_id, metrics in snapshot.services.items():
                _ = await anyio.to_thread.run_sync(
                    self.storage.write_health_report,
                    service_id,
                    self._health_report(service_id, metrics),
                )
        except OSError as e:
            self._logger.error("metrics_save_failed", error=str(e))

    async def cleanup_old_files(self) -> int:
        """Sweep files past the retention window.

        Returns:
            The number of deleted files.
        """
        try:
            removed = await anyio.to_thread.run_sync(self.storage.cleanup)
        except OSError as e:
            self._logger.error("cleanup_failed", error=str(e))
            return 0
        if removed:
            self._logger.info("old_files_removed", count=len(removed))
        return len(removed)

    async def _collect_and_save(self) -> None:
        await self.save_metrics(await self.collect_system_metrics())

    async def run(
        self,
        *,
        metrics_interval: float = METRICS_INTERVAL,
        flush_interval: float = LOG_FLUSH_INTERVAL,
        cleanup_interval: float = CLEANUP_INTERVAL,
    ) -> None:
        """Collect an initial snapshot, then run the scheduled work forever.

        Pending log entries are flushed when the collector is cancelled.
        """
        await anyio.to_thread.run_sync(self.storage.ensure_directories, self._services)
        await self._collect_and_save()
        self._logger.info(
            "collector_started",
            services=list(self._services),
            metrics_interval=metrics_interval,
            flush_interval=flush_interval,
        )
        try:
            async with anyio.create_task_group() as tg:
                for interval, job, name in (
                    (metrics_interval, self._collect_and_save, "metrics"),
                    (flush_interval, self.save_logs, "log_flush"),
                    (cleanup_interval, self.cleanup_old_files, "cleanup"),
                ):
                    runner = partial(run_every, logger=self._logger, name=name)
                    tg.start_soon(runner, interval, job)
        finally:
            with anyio.CancelScope(shield=True):
                _ = await self.save_logs()
