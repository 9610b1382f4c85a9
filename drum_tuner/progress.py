"""
Tuning-progress stores.

The engine hands head snapshots to a store keyed by (drum id, head); the
latest snapshot for a key wins. Writes go through DebouncedProgressWriter so
a slow store never blocks the audio frame handler.
"""

import json
import threading
from pathlib import Path
from typing import Any, Callable, Protocol

from .logging_utils import log_event
from .models import Head, HeadTuningState, TensionPointState

ProgressKey = tuple[str, Head]


class ProgressStore(Protocol):
    """Destination for head tuning snapshots."""

    def save(self, drum_id: str, head: Head, state: HeadTuningState) -> None: ...

    def load(self, drum_id: str, head: Head) -> HeadTuningState | None: ...


def head_state_to_dict(state: HeadTuningState) -> dict[str, Any]:
    return {
        "points": [
            {
                "index": p.index,
                "hz": p.measured_hz,
                "cents": p.cents_offset,
                "locked": p.locked,
                "at": p.locked_at,
            }
            for p in state.points
        ],
        "average_locked_hz": state.average_locked_hz,
        "locked_spread_cents": state.locked_spread_cents,
    }


def head_state_from_dict(data: Any) -> HeadTuningState:
    """
    Convert a stored head record into a HeadTuningState.

    Besides the format written by ``head_state_to_dict`` this accepts a plain
    list of booleans, a ``{"lugs": [...]}`` record, or a mapping of lug index
    to locked flag. Aggregates are always recomputed.
    """
    if isinstance(data, dict) and ("points" in data or "lugs" in data):
        raw_points = data.get("points", data.get("lugs")) or []
    elif isinstance(data, list):
        raw_points = data
    elif isinstance(data, dict):
        count = max((int(k) for k in data), default=-1) + 1
        raw_points = [bool(data.get(str(i), data.get(i, False))) for i in range(count)]
    else:
        raise ValueError(f"Unrecognised head state: {data!r}")

    points = []
    for i, raw in enumerate(raw_points):
        if isinstance(raw, dict):
            points.append(
                TensionPointState(
                    index=i,
                    measured_hz=float(raw.get("hz", 0.0) or 0.0),
                    cents_offset=float(raw.get("cents", 0.0) or 0.0),
                    locked=bool(raw.get("locked", False)),
                    locked_at=float(raw.get("at", 0.0) or 0.0),
                )
            )
        else:
            points.append(TensionPointState(index=i, locked=bool(raw)))

    state = HeadTuningState(points=points)
    state.recompute()
    return state


class MemoryProgressStore:
    """In-memory store, mainly for tests and scripts."""

    def __init__(self):
        self._states: dict[ProgressKey, HeadTuningState] = {}
        self.save_count = 0

    def save(self, drum_id: str, head: Head, state: HeadTuningState) -> None:
        self._states[(drum_id, head)] = state.snapshot()
        self.save_count += 1

    def load(self, drum_id: str, head: Head) -> HeadTuningState | None:
        state = self._states.get((drum_id, head))
        return state.snapshot() if state is not None else None


class JsonProgressStore:
    """Stores all head snapshots in one JSON file, rewritten on every save."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._data: dict[str, Any] = {}
        self._load_existing()

    @staticmethod
    def _key(drum_id: str, head: Head) -> str:
        return f"{drum_id}/{head.value}"

    def _load_existing(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        heads = data.get("heads", {}) if isinstance(data, dict) else {}
        if isinstance(heads, dict):
            self._data = heads

    def save(self, drum_id: str, head: Head, state: HeadTuningState) -> None:
        self._data[self._key(drum_id, head)] = head_state_to_dict(state)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"heads": self._data}, f, indent=2)
        tmp_path.replace(self.path)

    def load(self, drum_id: str, head: Head) -> HeadTuningState | None:
        raw = self._data.get(self._key(drum_id, head))
        if raw is None:
            return None
        return head_state_from_dict(raw)


class DebouncedProgressWriter:
    """
    Batches snapshot writes to a store on a background timer.

    Repeated submissions for the same key within the debounce interval
    collapse to the latest one. Store failures are logged and passed to
    ``on_error``; they are not retried.
    """

    def __init__(
        self,
        store: ProgressStore,
        debounce_ms: float = 600.0,
        on_error: Callable[[ProgressKey, Exception], None] | None = None,
    ):
        self.store = store
        self.debounce_ms = debounce_ms
        self.on_error = on_error
        self._pending: dict[ProgressKey, HeadTuningState] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._closed = False

    def submit(self, drum_id: str, head: Head, state: HeadTuningState) -> None:
        """Queue a snapshot. Returns immediately."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Progress writer is closed")
            self._pending[(drum_id, head)] = state.snapshot()
            if self._timer is None:
                self._timer = threading.Timer(self.debounce_ms / 1000.0, self._on_timer)
                self._timer.daemon = True
                self._timer.start()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.flush()

    def flush(self) -> int:
        """Write all pending snapshots now. Returns the number written."""
        with self._lock:
            pending, self._pending = self._pending, {}
        written = 0
        with self._write_lock:
            for (drum_id, head), state in pending.items():
                try:
                    self.store.save(drum_id, head, state)
                    written += 1
                except Exception as e:
                    log_event("ERROR", "Progress", "Failed to save head snapshot",
                              drum=drum_id, head=head.value, error=e)
                    if self.on_error is not None:
                        self.on_error((drum_id, head), e)
        return written

    def close(self) -> None:
        """Cancel the timer and write whatever is pending."""
        with self._lock:
            self._closed = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self.flush()
