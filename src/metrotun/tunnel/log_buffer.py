"""
Bounded in-memory log of tunnel output.

Entries are frozen once appended; the oldest entry is evicted when the
buffer is full.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from metrotun.config import LOG_CAPACITY


class LogKind(str, Enum):
    INFO = "info"
    STDERR = "stderr"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2026-01-02T03:04:05.678Z."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


@dataclass(frozen=True)
class LogEntry:
    kind: LogKind
    message: str
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the /logs response."""
        return {
            "type": self.kind.value,
            "message": self.message,
            "timestamp": format_timestamp(self.timestamp),
        }


class LogBuffer:
    """Append-only FIFO of ``LogEntry`` objects with a fixed capacity."""

    def __init__(self, capacity: int = LOG_CAPACITY):
        if capacity < 1:
            raise ValueError("Log buffer capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def snapshot(self) -> tuple[LogEntry, ...]:
        """Return the current entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
