"""Tests for progress stores and the debounced writer."""

import json
import threading
import time

import pytest

from drum_tuner.models import Head, HeadTuningState
from drum_tuner.progress import (
    DebouncedProgressWriter,
    JsonProgressStore,
    MemoryProgressStore,
    head_state_from_dict,
    head_state_to_dict,
)


def partial_state() -> HeadTuningState:
    state = HeadTuningState.empty(4)
    state.lock_point(0, 110.0, 1.0, 100.0)
    state.lock_point(2, 111.0, 3.0, 101.0)
    return state


class TestHeadStateDict:
    """Conversion to and from stored records."""

    def test_round_trip(self):
        state = partial_state()
        restored = head_state_from_dict(head_state_to_dict(state))
        assert restored == state

    def test_list_of_bools(self):
        state = head_state_from_dict([True, False, True])
        assert [p.locked for p in state.points] == [True, False, True]
        assert state.points[0].measured_hz == 0.0

    def test_lugs_record(self):
        state = head_state_from_dict({"lugs": [False, True]})
        assert state.lug_count == 2
        assert state.locked_count == 1

    def test_index_mapping(self):
        state = head_state_from_dict({"0": True, "2": True})
        assert [p.locked for p in state.points] == [True, False, True]

    def test_aggregates_recomputed(self):
        record = head_state_to_dict(partial_state())
        record["average_locked_hz"] = 999.0
        restored = head_state_from_dict(record)
        assert restored.average_locked_hz == pytest.approx(110.5)
        assert restored.locked_spread_cents == pytest.approx(2.0)

    def test_unrecognised(self):
        with pytest.raises(ValueError):
            head_state_from_dict("locked")


class TestMemoryProgressStore:
    """In-memory store."""

    def test_missing_key(self):
        assert MemoryProgressStore().load("tom", Head.BATTER) is None

    def test_last_write_wins(self):
        store = MemoryProgressStore()
        store.save("tom", Head.BATTER, HeadTuningState.empty(4))
        store.save("tom", Head.BATTER, partial_state())
        assert store.load("tom", Head.BATTER).locked_count == 2
        assert store.save_count == 2

    def test_stored_copy_is_isolated(self):
        store = MemoryProgressStore()
        state = partial_state()
        store.save("tom", Head.RESO, state)
        state.lock_point(1, 110.0, 0.0, 1.0)

        loaded = store.load("tom", Head.RESO)
        assert loaded.locked_count == 2
        loaded.lock_point(3, 110.0, 0.0, 1.0)
        assert store.load("tom", Head.RESO).locked_count == 2


class TestJsonProgressStore:
    """File-backed store."""

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "progress" / "heads.json"
        store = JsonProgressStore(path)
        store.save("tom", Head.BATTER, partial_state())
        store.save("tom", Head.RESO, HeadTuningState.empty(4))

        reopened = JsonProgressStore(path)
        assert reopened.load("tom", Head.BATTER) == partial_state()
        assert reopened.load("tom", Head.RESO).locked_count == 0
        assert reopened.load("kick", Head.BATTER) is None

    def test_file_layout(self, tmp_path):
        path = tmp_path / "heads.json"
        JsonProgressStore(path).save("snare", Head.BATTER, partial_state())

        data = json.loads(path.read_text())
        assert "snare/batter" in data["heads"]
        assert not (tmp_path / "heads.json.tmp").exists()

    def test_accepts_legacy_lock_shapes(self, tmp_path):
        path = tmp_path / "heads.json"
        path.write_text(json.dumps({"heads": {"tom/batter": [True, True, False]}}))
        state = JsonProgressStore(path).load("tom", Head.BATTER)
        assert state.locked_count == 2


class RecordingStore(MemoryProgressStore):
    """Memory store that can be told to fail, and signals each save."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.saved = threading.Event()

    def save(self, drum_id, head, state):
        if self.fail:
            raise OSError("store unavailable")
        super().save(drum_id, head, state)
        self.saved.set()


class TestDebouncedProgressWriter:
    """Background batching of snapshot writes."""

    def test_repeated_submissions_collapse(self):
        store = RecordingStore()
        writer = DebouncedProgressWriter(store, debounce_ms=60000)
        try:
            writer.submit("tom", Head.BATTER, HeadTuningState.empty(4))
            writer.submit("tom", Head.BATTER, partial_state())
            writer.submit("tom", Head.RESO, HeadTuningState.empty(4))
            assert writer.pending_count == 2

            assert writer.flush() == 2
            assert store.save_count == 2
            assert store.load("tom", Head.BATTER).locked_count == 2
            assert writer.pending_count == 0
        finally:
            writer.close()

    def test_submit_takes_snapshot(self):
        store = RecordingStore()
        writer = DebouncedProgressWriter(store, debounce_ms=60000)
        state = HeadTuningState.empty(4)
        writer.submit("tom", Head.BATTER, state)
        state.lock_point(0, 110.0, 0.0, 1.0)
        writer.close()
        assert store.load("tom", Head.BATTER).locked_count == 0

    def test_timer_flushes(self):
        store = RecordingStore()
        writer = DebouncedProgressWriter(store, debounce_ms=10)
        try:
            start = time.monotonic()
            writer.submit("tom", Head.BATTER, partial_state())
            assert store.saved.wait(timeout=5.0)
            assert time.monotonic() - start < 5.0
            assert store.load("tom", Head.BATTER).locked_count == 2
        finally:
            writer.close()

    def test_failure_reported_not_retried(self):
        store = RecordingStore(fail=True)
        errors = []
        writer = DebouncedProgressWriter(
            store, debounce_ms=60000, on_error=lambda key, exc: errors.append((key, exc))
        )
        writer.submit("tom", Head.BATTER, partial_state())

        assert writer.flush() == 0
        assert len(errors) == 1
        assert errors[0][0] == ("tom", Head.BATTER)
        assert isinstance(errors[0][1], OSError)

        # Nothing left to retry
        assert writer.flush() == 0
        assert len(errors) == 1
        writer.close()

    def test_closed_writer_rejects_submissions(self):
        writer = DebouncedProgressWriter(RecordingStore(), debounce_ms=60000)
        writer.close()
        with pytest.raises(RuntimeError):
            writer.submit("tom", Head.BATTER, HeadTuningState.empty(4))
