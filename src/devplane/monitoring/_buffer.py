"""Bounded in-memory log buffer."""

from collections import deque
from collections.abc import Iterator
from typing import final

from ._models import LogEntry, LogLevel

DEFAULT_BUFFER_CAPACITY = 1000


@final
class LogBuffer:
    """Ring buffer of recent log entries with FIFO eviction.

    Entries are also queued for the next flush to disk. The flush queue
    has the same capacity, so a failing disk never grows memory without
    bound.
    """

    __slots__ = ("_entries", "_pending")

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        if capacity < 1:
            msg = "capacity must be at least 1"
            raise ValueError(msg)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._pending: deque[LogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    @property
    def pending(self) -> int:
        """Return the number of entries waiting to be flushed."""
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self._entries)

    def append(self, entry: LogEntry) -> None:
        """Add an entry, evicting the oldest one when full."""
        self._entries.append(entry)
        self._pending.append(entry)

    def recent(self, count: int | None = None) -> list[LogEntry]:
        """Return the newest entries, oldest first."""
        entries = list(self._entries)
        if count is None:
            return entries
        return entries[-count:] if count > 0 else []

    def query(
        self,
        *,
        service: str | None = None,
        level: LogLevel | None = None,
        limit: int | None = None,
    ) -> list[LogEntry]:
        """Return matching entries, oldest first, keeping the newest `limit`."""
        matches = [
            entry
            for entry in self._entries
            if (service is None or entry.service == service)
            and (level is None or entry.level == level)
        ]
        if limit is not None:
            matches = matches[-limit:] if limit > 0 else []
        return matches

    def drain_pending(self) -> list[LogEntry]:
        """Remove and return every entry not yet flushed."""
        drained = list(self._pending)
        self._pending.clear()
        return drained

    def requeue(self, entries: list[LogEntry]) -> None:
        """Put entries back in front of the flush queue after a failed flush.

        When the queue overflows, the oldest entries are dropped first.
        """
        self._pending = deque([*entries, *self._pending], maxlen=self._pending.maxlen)
