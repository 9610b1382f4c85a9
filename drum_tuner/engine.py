"""
Tuning state machine.

The engine is driven one audio frame at a time. Each frame's reading passes
through a fixed sequence of gates (re-arm cooldown, post-lock silence,
validity, proximity to target) before dwell time accumulates. A tension point
locks once its dwell reaches the hold time, after which the cursor advances
through the lugs of a head, across to the other head, and on to the next drum.

All state for one tuning session lives on a TuningEngine instance; several
engines can run side by side.
"""

import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, NamedTuple

import numpy as np

from .conditioner import Band, BandTracker, SignalConditioner, band_for_target
from .constants import BAND_HIGH_MAX_HZ, BAND_LOW_MIN_HZ
from .errors import DrumTunerError, InvalidCursorError
from .kit import Kit
from .logging_utils import log_event
from .models import Cursor, Drum, Head, HeadTuningState, LockEvent
from .notes import cents_diff, format_note
from .pitch_estimator import estimate_pitch
from .progress import DebouncedProgressWriter, ProgressKey, ProgressStore
from .recorder import SessionRecorder
from .settings import TuningSettings
from .targets import check_drum, head_target, is_tunable, point_target


class TuningPhase(Enum):
    """Externally visible phase of the state machine."""

    IDLE = "idle"  # No session running
    LISTENING = "listening"  # Waiting for an in-window reading
    DWELLING = "dwelling"  # In window, accumulating hold time
    LOCKED = "locked"  # A point locked on the last frame
    ADVANCING = "advancing"  # A cursor move is scheduled


class LiveReading(NamedTuple):
    """Per-frame readout for display. Has no effect on the state machine."""
    hz: float | None
    cents_offset: float | None
    rms: float
    target_hz: float | None

    @property
    def note(self) -> str:
        return format_note(self.hz)


@dataclass
class FrameResult:
    """Outcome of processing one audio frame."""
    reading: LiveReading
    phase: TuningPhase
    lock: LockEvent | None = None
    band: Band | None = None  # Band the front-end filter should apply


@dataclass
class DeferredAdvance:
    """A cursor move that takes effect once the frame clock reaches ``due_ms``."""
    due_ms: float
    cursor: Cursor
    reason: str
    cancelled: bool = field(default=False)

    def cancel(self):
        self.cancelled = True

    def is_due(self, now_ms: float) -> bool:
        return not self.cancelled and now_ms >= self.due_ms


class TuningEngine:
    """
    Lock detection and guided advancement across a kit.

    Frames come in through process_audio() (raw samples) or step() (an
    already-estimated reading). Manual overrides may be called between frames
    from another thread; they are serialised with frame processing.
    """

    def __init__(
        self,
        kit: Kit,
        settings: TuningSettings | None = None,
        recorder: SessionRecorder | None = None,
        progress_store: ProgressStore | None = None,
        progress_debounce_ms: float = 600.0,
        on_reading: Callable[[LiveReading], None] | None = None,
        on_error: Callable[[str, Exception], None] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize engine.

        Args:
            kit: Drum catalog, in tuning order
            settings: Lock/advance parameters (defaults if None)
            recorder: Sink for lock events
            progress_store: Store for head snapshots, also used to resume progress
            progress_debounce_ms: Debounce interval for progress writes
            on_reading: Called with every frame's live reading
            on_error: Called with (source, exception) when a recorder or store write fails
            clock: Wall clock for lock timestamps (seconds)
        """
        self.kit = kit
        self._settings = settings or TuningSettings()
        self.recorder = recorder
        self.progress_store = progress_store
        self.on_reading = on_reading
        self.on_error = on_error
        self._clock = clock

        self._writer: DebouncedProgressWriter | None = None
        self._closed = False
        if progress_store is not None:
            self._writer = DebouncedProgressWriter(
                progress_store,
                debounce_ms=progress_debounce_ms,
                on_error=self._on_progress_error,
            )

        self._lock = threading.RLock()
        self._progress: dict[ProgressKey, HeadTuningState] = {}
        self._cursor: Cursor | None = None

        self._conditioner = SignalConditioner(
            window=self._settings.median_window,
            rms_threshold=self._settings.rms_threshold,
        )
        self._band = BandTracker(Band(BAND_LOW_MIN_HZ, BAND_HIGH_MAX_HZ))

        # Transient gate state
        self._dwell_ms = 0.0
        self._dwell_key: tuple | None = None
        self._last_lock_key: tuple | None = None
        self._rearm_until_ms = 0.0
        self._silence_armed = False
        self._silent_ms = 0.0
        self._pending: DeferredAdvance | None = None
        self._locked_last_frame = False
        self._last_frame_ms: float | None = None
        self._warned_targets: set[tuple] = set()

    # ------------------------------------------------------------------
    # Session lifecycle

    def start(self, drum_id: str | None = None) -> Cursor:
        """
        Start a tuning session on the batter head, first lug.

        Args:
            drum_id: Drum to start on (default: the kit's active drum, or the
                first tunable drum)

        Raises:
            UntunableDrumError: If the chosen drum cannot be tuned
            InvalidCursorError: If the drum is not in the kit
            DrumTunerError: If the engine has been closed
        """
        with self._lock:
            if self._closed:
                raise DrumTunerError("Engine is closed")
            if drum_id is None:
                active = self.kit.active_drum
                if active is not None and is_tunable(active):
                    drum_id = active.id
                else:
                    drum_id = self._first_tunable_drum().id
            self._hydrate_progress()
            self._cancel_pending()
            cursor = Cursor(drum_id, Head.BATTER, 0)
            self._move_cursor(cursor, clear_gates=True)
            self._band = BandTracker(self._band.goal)
            self._last_frame_ms = None
            log_event("INFO", "Engine", "Tuning started", drum=drum_id)
            return cursor

    def stop(self):
        """Stop the session. Locked points are kept."""
        with self._lock:
            self._cancel_pending()
            self._reset_transient(clear_gates=True)
            self._cursor = None
            self._last_frame_ms = None
            log_event("INFO", "Engine", "Tuning stopped")

    def close(self):
        """Stop and write any pending progress. The engine cannot be restarted."""
        self.stop()
        self._closed = True
        if self._writer is not None:
            self._writer.close()

    def flush_progress(self) -> int:
        """Write pending progress snapshots now."""
        if self._writer is None:
            return 0
        return self._writer.flush()

    @property
    def running(self) -> bool:
        return self._cursor is not None

    # ------------------------------------------------------------------
    # Settings

    @property
    def settings(self) -> TuningSettings:
        return self._settings

    def update_settings(self, settings: TuningSettings | None = None, **changes) -> TuningSettings:
        """Replace settings between frames. Keyword changes are merged into the current settings."""
        with self._lock:
            new_settings = settings or self._settings
            if changes:
                new_settings = new_settings.merged(changes)
            self._settings = new_settings
            self._conditioner.rms_threshold = new_settings.rms_threshold
            self._conditioner.set_window(new_settings.median_window)
            return new_settings

    # ------------------------------------------------------------------
    # State queries

    @property
    def cursor(self) -> Cursor | None:
        return self._cursor

    @property
    def pending_advance(self) -> DeferredAdvance | None:
        return self._pending

    @property
    def dwell_ms(self) -> float:
        return self._dwell_ms

    @property
    def silence_gate_armed(self) -> bool:
        return self._silence_armed

    @property
    def median_sample_count(self) -> int:
        return self._conditioner.sample_count

    @property
    def requested_band(self) -> Band:
        return self._band.band

    @property
    def phase(self) -> TuningPhase:
        if self._cursor is None:
            return TuningPhase.IDLE
        if self._locked_last_frame:
            return TuningPhase.LOCKED
        if self._pending is not None:
            return TuningPhase.ADVANCING
        if self._dwell_ms > 0:
            return TuningPhase.DWELLING
        return TuningPhase.LISTENING

    def in_cooldown(self, now_ms: float) -> bool:
        return now_ms < self._rearm_until_ms

    def head_state(self, drum_id: str, head: Head) -> HeadTuningState:
        """Snapshot of one head's tuning state."""
        with self._lock:
            return self._head(self.kit.get(drum_id), head).snapshot()

    def is_drum_complete(self, drum_id: str) -> bool:
        """Whether both heads of a drum are fully locked."""
        with self._lock:
            drum = self.kit.get(drum_id)
            if not is_tunable(drum):
                return False
            return all(self._head(drum, head).is_fully_locked for head in Head)

    def current_target(self) -> float | None:
        """Target frequency of the point under the cursor."""
        with self._lock:
            if self._cursor is None:
                return None
            return self._target_for(self._cursor)

    # ------------------------------------------------------------------
    # Frame processing

    def process_audio(
        self,
        samples: np.ndarray,
        sample_rate: int,
        now_ms: float | None = None,
    ) -> FrameResult:
        """
        Run one frame of audio through estimation, conditioning and the gates.

        Args:
            samples: Audio frame
            sample_rate: Sample rate of the frame
            now_ms: Frame timestamp on a monotonic millisecond clock

        Returns:
            FrameResult with the live reading, current phase, and any lock
        """
        if now_ms is None:
            now_ms = time.monotonic() * 1000.0
        with self._lock:
            dt_ms = 0.0 if self._last_frame_ms is None else max(0.0, now_ms - self._last_frame_ms)
            self._last_frame_ms = now_ms

            if self._cursor is None:
                estimate = estimate_pitch(samples, sample_rate, self._settings.min_hz, self._settings.max_hz)
                reading = LiveReading(estimate.hz, None, estimate.rms, None)
                self._publish_reading(reading)
                return FrameResult(reading=reading, phase=TuningPhase.IDLE)

            self._fire_due_advance(now_ms)

            target = self._target_for(self._cursor)
            min_hz, max_hz = self._search_range(target)
            estimate = estimate_pitch(samples, sample_rate, min_hz, max_hz)
            hz = self._conditioner.condition(estimate.hz, estimate.rms, target)
            cents = cents_diff(hz, target)
            band = self._band.update(dt_ms)

            lock = self._step(hz, cents, estimate.rms, dt_ms, now_ms)

            reading = LiveReading(hz, cents, estimate.rms, target)
            self._publish_reading(reading)
            return FrameResult(reading=reading, phase=self.phase, lock=lock, band=band)

    def step(
        self,
        hz: float | None,
        cents: float | None,
        rms: float,
        dt_ms: float,
        now_ms: float,
    ) -> LockEvent | None:
        """
        Apply one frame's conditioned reading to the state machine.

        Args:
            hz: Conditioned pitch (None if none)
            cents: Offset of ``hz`` from the current target
            rms: Frame loudness
            dt_ms: Time since the previous frame
            now_ms: Frame timestamp on a monotonic millisecond clock

        Returns:
            The LockEvent if this frame locked a point, else None
        """
        with self._lock:
            if self._cursor is None:
                return None
            self._last_frame_ms = now_ms
            if self._fire_due_advance(now_ms):
                # The reading was measured against the previous target
                return None
            return self._step(hz, cents, rms, dt_ms, now_ms)

    def tick(self, now_ms: float) -> bool:
        """Fire a due deferred advance without a frame. Returns True if it fired."""
        with self._lock:
            return self._fire_due_advance(now_ms)

    def _step(self, hz, cents, rms, dt_ms, now_ms) -> LockEvent | None:
        s = self._settings
        self._locked_last_frame = False

        # Re-arm cooldown after a lock
        if now_ms < self._rearm_until_ms:
            self._dwell_ms = 0.0
            return None

        # Post-lock silence gate
        if self._silence_armed:
            if rms < s.silence_rms:
                self._silent_ms += dt_ms
                if self._silent_ms < s.require_silence_ms:
                    return None
                self._silence_armed = False
                self._silent_ms = 0.0
            else:
                self._silent_ms = 0.0
                return None

        cursor = self._cursor
        target = self._target_for(cursor)
        if target is None or hz is None or cents is None or rms < s.rms_threshold:
            self._dwell_ms = 0.0
            return None

        if not math.isfinite(cents) or abs(cents) > s.lock_window_cents:
            self._dwell_ms = 0.0
            return None

        key = cursor.key
        if self._dwell_key != key:
            self._dwell_key = key
            self._dwell_ms = 0.0
        self._dwell_ms += dt_ms

        if self._dwell_ms < s.hold_ms or self._last_lock_key == key:
            return None

        return self._commit_lock(cursor, hz, cents, now_ms)

    def _commit_lock(self, cursor: Cursor, hz: float, cents: float, now_ms: float) -> LockEvent:
        s = self._settings
        drum = self.kit.get(cursor.drum_id)
        head_state = self._head(drum, cursor.head)
        timestamp = self._clock()
        head_state.lock_point(cursor.point_index, hz, cents, timestamp)

        event = LockEvent(
            drum_id=cursor.drum_id,
            head=cursor.head,
            point_index=cursor.point_index,
            hz=hz,
            cents_offset=cents,
            timestamp=timestamp,
        )
        log_event("INFO", "Engine", "Locked", drum=drum.id, head=cursor.head.value,
                  point=cursor.point_index, hz=f"{hz:.1f}", cents=f"{cents:+.1f}")

        self._last_lock_key = cursor.key
        self._locked_last_frame = True
        self._rearm_until_ms = now_ms + s.rearm_cooldown_ms
        self._silence_armed = True
        self._silent_ms = 0.0
        self._dwell_ms = 0.0
        self._dwell_key = None
        self._conditioner.reset()

        self._record(event)
        self._publish_head(drum.id, cursor.head, head_state)

        if s.auto_advance:
            next_cursor, reason = self._advance_target(drum, cursor)
            if next_cursor is not None:
                self._cancel_pending()
                self._pending = DeferredAdvance(now_ms + s.settle_delay_ms, next_cursor, reason)
        return event

    # ------------------------------------------------------------------
    # Advancement

    def _advance_target(self, drum: Drum, cursor: Cursor) -> tuple[Cursor | None, str]:
        """Where the cursor goes after ``cursor`` locked."""
        head_state = self._head(drum, cursor.head)

        if not head_state.is_fully_locked:
            for point in head_state.points[cursor.point_index + 1 :]:
                if not point.locked:
                    return Cursor(drum.id, cursor.head, point.index), "next point"
            # Nothing unlocked further along this head
            return None, "end of head"

        if cursor.head == Head.BATTER:
            return Cursor(drum.id, Head.RESO, 0), "batter complete"

        batter = self._head(drum, Head.BATTER)
        if not batter.is_fully_locked:
            return Cursor(drum.id, Head.BATTER, batter.first_unlocked_index()), "resume batter"

        next_drum = self._next_tunable_drum(drum.id)
        return Cursor(next_drum.id, Head.BATTER, 0), "drum complete"

    def _fire_due_advance(self, now_ms: float) -> bool:
        pending = self._pending
        if pending is None:
            return False
        if pending.cancelled:
            self._pending = None
            return False
        if not pending.is_due(now_ms):
            return False
        self._pending = None
        self._move_cursor(pending.cursor, clear_gates=False)
        log_event("INFO", "Engine", "Advanced", reason=pending.reason, drum=pending.cursor.drum_id,
                  head=pending.cursor.head.value, point=pending.cursor.point_index)
        return True

    def _cancel_pending(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _next_tunable_drum(self, drum_id: str) -> Drum:
        candidate = self.kit.next_drum(drum_id)
        for _ in range(len(self.kit)):
            if is_tunable(candidate):
                return candidate
            log_event("WARNING", "Engine", "Skipping untunable drum", drum=candidate.id,
                      lugs=candidate.lug_count)
            candidate = self.kit.next_drum(candidate.id)
        return self.kit.get(drum_id)

    def _first_tunable_drum(self) -> Drum:
        for drum in self.kit:
            if is_tunable(drum):
                return drum
        raise DrumTunerError("Kit has no tunable drums")

    # ------------------------------------------------------------------
    # Manual overrides

    def select_drum(self, drum_id: str, head: Head = Head.BATTER, point_index: int = 0) -> Cursor:
        """
        Jump to a drum (batter head, first lug by default).

        Raises:
            InvalidCursorError: If the drum or point does not exist
            UntunableDrumError: If the drum cannot be tuned
        """
        with self._lock:
            self._require_running()
            cursor = Cursor(drum_id, head, point_index)
            self._override(cursor, "select drum")
            return cursor

    def next_drum(self) -> Cursor:
        with self._lock:
            self._require_running()
            return self.select_drum(self.kit.next_drum(self._cursor.drum_id).id)

    def previous_drum(self) -> Cursor:
        with self._lock:
            self._require_running()
            return self.select_drum(self.kit.previous_drum(self._cursor.drum_id).id)

    def switch_head(self, head: Head) -> Cursor:
        """Switch to the other head of the current drum, first lug."""
        with self._lock:
            self._require_running()
            cursor = Cursor(self._cursor.drum_id, head, 0)
            self._override(cursor, "switch head")
            return cursor

    def jump_to_point(self, point_index: int) -> Cursor:
        """Move to a lug on the current head."""
        with self._lock:
            self._require_running()
            cursor = Cursor(self._cursor.drum_id, self._cursor.head, point_index)
            self._override(cursor, "jump to point")
            return cursor

    def reset_head(self, drum_id: str | None = None, head: Head | None = None) -> HeadTuningState:
        """
        Clear every lock on one head (default: the head under the cursor).

        Other heads are untouched. When the reset head is under the cursor
        the cursor returns to its first lug.
        """
        with self._lock:
            if drum_id is None or head is None:
                self._require_running()
                drum_id = drum_id or self._cursor.drum_id
                head = head or self._cursor.head
            drum = check_drum(self.kit.get(drum_id))
            fresh = HeadTuningState.empty(drum.lug_count)
            self._progress[(drum.id, head)] = fresh
            self._publish_head(drum.id, head, fresh)
            log_event("INFO", "Engine", "Head reset", drum=drum.id, head=head.value)

            if self._cursor is not None:
                if self._cursor.drum_id == drum.id and self._cursor.head == head:
                    self._override(Cursor(drum.id, head, 0), "reset head")
                else:
                    self._cancel_pending()
                    self._reset_transient(clear_gates=True)
            return fresh.snapshot()

    def _override(self, cursor: Cursor, reason: str):
        self._validate(cursor)
        self._cancel_pending()
        self._move_cursor(cursor, clear_gates=True)
        log_event("INFO", "Engine", "Manual override", action=reason, drum=cursor.drum_id,
                  head=cursor.head.value, point=cursor.point_index)

    def _require_running(self):
        if self._cursor is None:
            raise DrumTunerError("Tuning session is not running")

    # ------------------------------------------------------------------
    # Internals

    def _validate(self, cursor: Cursor) -> Drum:
        drum = check_drum(self.kit.get(cursor.drum_id))
        if not 0 <= cursor.point_index < drum.lug_count:
            raise InvalidCursorError(
                f"Point {cursor.point_index} does not exist on {drum.id!r} ({drum.lug_count} lugs)"
            )
        return drum

    def _move_cursor(self, cursor: Cursor, clear_gates: bool):
        """Replace the cursor and drop all per-point transient state."""
        self._validate(cursor)
        self._cursor = cursor
        self.kit.active_drum_id = cursor.drum_id
        self._reset_transient(clear_gates=clear_gates)
        self._band.retarget(self._target_for(cursor))

    def _reset_transient(self, clear_gates: bool):
        self._dwell_ms = 0.0
        self._dwell_key = None
        self._last_lock_key = None
        self._locked_last_frame = False
        self._conditioner.reset()
        if clear_gates:
            self._rearm_until_ms = 0.0
            self._silence_armed = False
            self._silent_ms = 0.0

    def _target_for(self, cursor: Cursor) -> float | None:
        drum = self.kit.get(cursor.drum_id)
        target = point_target(head_target(drum, cursor.head), cursor.point_index, drum)
        if target is None and cursor.key not in self._warned_targets:
            self._warned_targets.add(cursor.key)
            log_event("WARNING", "Engine", "No usable target, point cannot lock", drum=drum.id,
                      head=cursor.head.value, point=cursor.point_index)
        return target

    def _search_range(self, target: float | None) -> tuple[float, float]:
        s = self._settings
        if target is None:
            return s.min_hz, s.max_hz
        band = band_for_target(target)
        low = max(s.min_hz, band.low_hz)
        high = min(s.max_hz, band.high_hz)
        if high <= low:
            return s.min_hz, s.max_hz
        return low, high

    def _head(self, drum: Drum, head: Head) -> HeadTuningState:
        key = (drum.id, head)
        state = self._progress.get(key)
        if state is None or not state.is_valid_for(drum.lug_count):
            state = HeadTuningState.empty(drum.lug_count)
            self._progress[key] = state
        return state

    def _hydrate_progress(self):
        if self.progress_store is None:
            return
        for drum in self.kit:
            if not is_tunable(drum):
                continue
            for head in Head:
                if (drum.id, head) in self._progress:
                    continue
                stored = self.progress_store.load(drum.id, head)
                if stored is not None and stored.is_valid_for(drum.lug_count):
                    stored.recompute()
                    self._progress[(drum.id, head)] = stored

    def _publish_head(self, drum_id: str, head: Head, state: HeadTuningState):
        if self._writer is None:
            return
        try:
            self._writer.submit(drum_id, head, state)
        except Exception as e:
            log_event("ERROR", "Engine", "Progress write rejected", drum=drum_id, head=head.value, error=e)
            self._on_progress_error((drum_id, head), e)

    def _record(self, event: LockEvent):
        if self.recorder is None:
            return
        try:
            self.recorder.record(event)
        except Exception as e:
            log_event("ERROR", "Engine", "Session recorder failed", error=e)
            if self.on_error is not None:
                self.on_error("recorder", e)

    def _on_progress_error(self, key: ProgressKey, error: Exception):
        if self.on_error is not None:
            self.on_error("progress", error)

    def _publish_reading(self, reading: LiveReading):
        if self.on_reading is not None:
            self.on_reading(reading)
