"""Tests for tuning settings and their persistence."""

import json

import pytest

from drum_tuner.settings import TuningSettings, load_settings, save_settings


class TestTuningSettings:
    """Defaults and derived values."""

    def test_defaults(self):
        s = TuningSettings()
        assert s.lock_cents == 5.0
        assert s.hold_ms == 300.0
        assert s.rms_threshold == 0.02
        assert s.rearm_cooldown_ms == 1000.0
        assert s.require_silence_ms == 280.0
        assert s.auto_advance is True
        assert s.settle_delay_ms == 260.0

    def test_derived_thresholds(self):
        s = TuningSettings()
        assert s.lock_window_cents == pytest.approx(9.0)
        assert s.silence_rms == pytest.approx(0.012)

    def test_coupled_matches_defaults_at_reference_hold(self):
        coupled = TuningSettings.coupled(hold_ms=300.0)
        assert coupled == TuningSettings()

    def test_coupled_scales_gates(self):
        coupled = TuningSettings.coupled(hold_ms=600.0)
        assert coupled.rearm_cooldown_ms == pytest.approx(2000.0)
        assert coupled.require_silence_ms == pytest.approx(560.0)

    def test_coupled_overrides(self):
        coupled = TuningSettings.coupled(hold_ms=600.0, rearm_cooldown_ms=500.0, lock_cents=3.0)
        assert coupled.rearm_cooldown_ms == 500.0
        assert coupled.require_silence_ms == pytest.approx(560.0)
        assert coupled.lock_cents == 3.0

    def test_from_dict_ignores_unknown_keys(self):
        s = TuningSettings.from_dict({"hold_ms": 450, "theme": "dark"})
        assert s.hold_ms == 450.0
        assert isinstance(s.hold_ms, float)

    def test_from_dict_coerces_types(self):
        s = TuningSettings.from_dict({"lock_cents": "7.5", "auto_advance": "false", "median_window": "3"})
        assert s.lock_cents == 7.5
        assert s.auto_advance is False
        assert s.median_window == 3

    def test_invalid_value_ignored(self):
        s = TuningSettings.from_dict({"hold_ms": "slow", "lock_cents": 6})
        assert s.hold_ms == 300.0
        assert s.lock_cents == 6.0

    def test_merged_leaves_original(self):
        s = TuningSettings()
        changed = s.merged({"auto_advance": False})
        assert s.auto_advance is True
        assert changed.auto_advance is False

    def test_frozen(self):
        with pytest.raises(AttributeError):
            TuningSettings().hold_ms = 10.0


class TestSettingsFiles:
    """JSON persistence."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "settings.json") == TuningSettings()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "conf" / "settings.json"
        settings = TuningSettings(lock_cents=4.0, hold_ms=500.0, auto_advance=False)
        save_settings(settings, path)
        assert load_settings(path) == settings

    def test_partial_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"rms_threshold": 0.05}))
        s = load_settings(path)
        assert s.rms_threshold == 0.05
        assert s.hold_ms == 300.0

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps([1, 2, 3]))
        with pytest.raises(ValueError):
            load_settings(path)
