"""
Session recorders: append-only sinks for lock events.
"""

import csv
from datetime import datetime
from pathlib import Path
from typing import Protocol

from .models import LockEvent

CSV_FIELDS = ["timestamp", "time", "drum_id", "head", "point", "hz", "cents"]


class SessionRecorder(Protocol):
    """Receives lock events. Events are never read back by the engine."""

    def record(self, event: LockEvent) -> None: ...


class MemorySessionRecorder:
    """Keeps lock events in memory, newest last."""

    def __init__(self, max_events: int | None = None):
        self.max_events = max_events
        self._events: list[LockEvent] = []

    def record(self, event: LockEvent) -> None:
        self._events.append(event)
        if self.max_events is not None and len(self._events) > self.max_events:
            del self._events[: len(self._events) - self.max_events]

    @property
    def events(self) -> list[LockEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)


class CsvSessionRecorder:
    """Appends lock events as rows of a CSV file, writing the header once."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def record(self, event: LockEvent) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
            if write_header:
                writer.writeheader()
            writer.writerow(
                {
                    "timestamp": f"{event.timestamp:.3f}",
                    "time": datetime.fromtimestamp(event.timestamp).strftime("%H:%M:%S"),
                    "drum_id": event.drum_id,
                    "head": event.head.value,
                    "point": event.point_index,
                    "hz": f"{event.hz:.2f}",
                    "cents": f"{event.cents_offset:.1f}",
                }
            )
