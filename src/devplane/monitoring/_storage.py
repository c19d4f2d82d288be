"""Filesystem persistence for logs, metrics snapshots and health reports.

Layout below the data directory:

    logs/combined-YYYY-MM-DD.jsonl        one JSON log entry per line
    logs/combined-YYYY-MM-DD.jsonl.<ts>.old   rotated once over the size limit
    metrics/metrics-<ts>.json             one snapshot per collection tick
    metrics/latest.json                   copy of the newest snapshot
    health-reports/<service>.json         last known state per service

All methods do blocking I/O; async callers run them in a worker thread.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any, final

import orjson
import pendulum

from devplane.utils import dump_json, parse_timestamp, utc_now, write_json_file

if TYPE_CHECKING:
    from pendulum import DateTime

    from devplane.utils import Clock

    from ._models import LogEntry, MetricsSnapshot

DEFAULT_MAX_LOG_BYTES = 10 * 1024 * 1024
DEFAULT_RETENTION_DAYS = 7
LATEST_METRICS_FILE = "latest.json"


def _file_stamp(moment: DateTime) -> str:
    return moment.to_iso8601_string().replace(":", "-")


@final
class MonitoringStorage:
    """Reads and writes the monitoring data directory."""

    __slots__ = ("_clock", "_max_log_bytes", "_retention_days", "root")

    def __init__(
        self,
        root: Path,
        *,
        max_log_bytes: int = DEFAULT_MAX_LOG_BYTES,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize storage below a data directory.

        Args:
            root: The data directory.
            max_log_bytes: Size above which a daily log file is rotated.
            retention_days: Age after which files are swept.
            clock: Source of the current time.
        """
        self.root = root
        self._max_log_bytes = max_log_bytes
        self._retention_days = retention_days
        self._clock = clock

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def metrics_dir(self) -> Path:
        return self.root / "metrics"

    @property
    def health_reports_dir(self) -> Path:
        return self.root / "health-reports"

    def ensure_directories(self, service_ids: Iterable[str] = ()) -> None:
        """Create the data directories, including per-service log directories."""
        for directory in (self.logs_dir, self.metrics_dir, self.health_reports_dir):
            directory.mkdir(parents=True, exist_ok=True)
        for service_id in service_ids:
            (self.logs_dir / service_id).mkdir(parents=True, exist_ok=True)

    def combined_log_path(self, day: DateTime | None = None) -> Path:
        """Return the combined log file of a day. Defaults to today."""
        moment = day or self._clock()
        return self.logs_dir / f"combined-{moment.to_date_string()}.jsonl"

    def rotate_if_needed(self, path: Path) -> Path | None:
        """Rename a log file once it exceeds the size limit.

        Returns:
            The rotated file, or None when no rotation was needed.
        """
        if not path.exists() or path.stat().st_size <= self._max_log_bytes:
            return None
        rotated = path.with_name(f"{path.name}.{_file_stamp(self._clock())}.old")
        _ = path.rename(rotated)
        return rotated

    def append_logs(self, entries: Iterable[LogEntry]) -> Path:
        """Append entries to today's combined log file.

        Returns:
            The file the entries were written to.
        """
        path = self.combined_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = self.rotate_if_needed(path)
        payload = b"".join(
            orjson.dumps(entry.model_dump(mode="json")) + b"\n" for entry in entries
        )
        with path.open("ab") as f:
            _ = f.write(payload)
        return path

    def read_logs(self, day: DateTime | None = None) -> list[dict[str, Any]]:
        """Read back the entries of a day's combined log file."""
        path = self.combined_log_path(day)
        if not path.exists():
            return []
        return [
            orjson.loads(line)
            for line in path.read_bytes().splitlines()
            if line.strip()
        ]

    def save_metrics(self, snapshot: MetricsSnapshot) -> Path:
        """Persist a snapshot to a timestamped file and to latest.json.

        Returns:
            The timestamped file.
        """
        data = snapshot.model_dump(mode="json")
        stamp = _file_stamp(pendulum.instance(snapshot.timestamp))
        path = self.metrics_dir / f"metrics-{stamp}.json"
        write_json_file(path, data)
        write_json_file(self.metrics_dir / LATEST_METRICS_FILE, data)
        return path

    def load_latest_metrics(self) -> dict[str, Any] | None:
        """Return the newest persisted snapshot, if any."""
        path = self.metrics_dir / LATEST_METRICS_FILE
        if not path.exists():
            return None
        data = orjson.loads(path.read_bytes())
        return data if isinstance(data, dict) else None

    def load_metrics_history(self, since: DateTime) -> list[dict[str, Any]]:
        """Return persisted snapshots taken at or after a moment.

        Files that cannot be parsed are skipped.

        Returns:
            Snapshots sorted by timestamp, oldest first.
        """
        if not self.metrics_dir.exists():
            return []
        history: list[tuple[DateTime, dict[str, Any]]] = []
        for path in self.metrics_dir.glob("metrics-*.json"):
            try:
                data = orjson.loads(path.read_bytes())
                taken = parse_timestamp(str(data["timestamp"]))
            except (OSError, orjson.JSONDecodeError, KeyError, TypeError, ValueError):
                continue
            if taken >= since:
                history.append((taken, data))
        history.sort(key=lambda item: item[0])
        return [data for _, data in history]

    def write_health_report(self, service_id: str, report: dict[str, Any]) -> Path:
        """Write the last known state of a service."""
        path = self.health_reports_dir / f"{service_id}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = path.write_bytes(dump_json(report, indent=True))
        return path

    def cleanup(self) -> list[Path]:
        """Delete log and metrics files older than the retention window.

        latest.json is always kept.

        Returns:
            The deleted files.
        """
        cutoff = self._clock().subtract(days=self._retention_days).timestamp()
        removed: list[Path] = []

        candidates: list[Path] = []
        if self.logs_dir.exists():
            candidates.extend(self.logs_dir.glob("combined-*"))
        if self.metrics_dir.exists():
            candidates.extend(
                path
                for path in self.metrics_dir.iterdir()
                if path.name != LATEST_METRICS_FILE
            )

        for path in candidates:
            if not path.is_file() or path.stat().st_mtime >= cutoff:
                continue
            path.unlink(missing_ok=True)
            removed.append(path)
        return removed
