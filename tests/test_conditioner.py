"""Tests for median smoothing, harmonic folding and band tracking."""

import math

import numpy as np
import pytest

from drum_tuner import SAMPLE_RATE
from drum_tuner.conditioner import (
    Band,
    BandTracker,
    SignalConditioner,
    band_for_target,
    fold_harmonics,
)
from drum_tuner.pitch_estimator import estimate_pitch


class TestSignalConditioner:
    """Rolling median over loud frames."""

    def setup_method(self):
        self.conditioner = SignalConditioner(window=5, rms_threshold=0.02)

    def test_single_value(self):
        assert self.conditioner.condition(110.0, 0.1, None) == pytest.approx(110.0)
        assert self.conditioner.sample_count == 1

    def test_median_rejects_outlier(self):
        for hz in (110.0, 111.0, 300.0, 110.5):
            self.conditioner.condition(hz, 0.1, None)
        result = self.conditioner.condition(110.0, 0.1, None)
        # Median of [110, 111, 300, 110.5, 110]
        assert result == pytest.approx(110.5)

    def test_window_keeps_last_values(self):
        for hz in (100.0, 100.0, 100.0, 200.0, 200.0, 200.0):
            result = self.conditioner.condition(hz, 0.1, None)
        assert self.conditioner.sample_count == 5
        assert result == pytest.approx(200.0)

    def test_quiet_frame_discards_history(self):
        self.conditioner.condition(110.0, 0.1, None)
        self.conditioner.condition(110.0, 0.1, None)

        assert self.conditioner.condition(110.0, 0.01, None) is None
        assert self.conditioner.sample_count == 0

        # A new strike starts from scratch
        assert self.conditioner.condition(150.0, 0.1, None) == pytest.approx(150.0)

    def test_missing_pitch_discards_history(self):
        self.conditioner.condition(110.0, 0.1, None)
        assert self.conditioner.condition(None, 0.1, None) is None
        assert self.conditioner.sample_count == 0

    def test_non_finite_pitch_discards_history(self):
        self.conditioner.condition(110.0, 0.1, None)
        assert self.conditioner.condition(math.nan, 0.1, None) is None
        assert self.conditioner.sample_count == 0

    def test_set_window(self):
        for hz in (100.0, 101.0, 102.0, 103.0, 104.0):
            self.conditioner.condition(hz, 0.1, None)
        self.conditioner.set_window(3)
        assert self.conditioner.sample_count == 3
        assert self.conditioner.condition(105.0, 0.1, None) == pytest.approx(104.0)

    def test_reset(self):
        self.conditioner.condition(110.0, 0.1, None)
        self.conditioner.reset()
        assert self.conditioner.sample_count == 0

    def test_folds_toward_target(self):
        result = self.conditioner.condition(220.0, 0.1, 110.0)
        assert result == pytest.approx(110.0)


class TestFoldHarmonics:
    """Harmonic folding toward the target."""

    @pytest.mark.parametrize("k", [2, 3, 4, 5])
    def test_integer_harmonics_fold(self, k):
        assert fold_harmonics(100.0 * k, 100.0) == pytest.approx(100.0)

    def test_near_target_unchanged(self):
        assert fold_harmonics(105.0, 100.0) == pytest.approx(105.0)

    def test_candidate_outside_window_not_used(self):
        # 1000 / 5 = 200 is still more than 50% above the target
        assert fold_harmonics(1000.0, 100.0) == pytest.approx(1000.0)

    def test_best_candidate_wins(self):
        # 330/3 = 110 beats both 330/2 = 165 and 330/4 = 82.5
        assert fold_harmonics(330.0, 110.0) == pytest.approx(110.0)

    def test_missing_inputs_pass_through(self):
        assert fold_harmonics(None, 100.0) is None
        assert fold_harmonics(200.0, None) == 200.0
        assert fold_harmonics(200.0, math.nan) == 200.0

    def test_custom_divisors(self):
        assert fold_harmonics(300.0, 100.0, divisors=(2,)) == pytest.approx(150.0)
        assert fold_harmonics(300.0, 100.0, divisors=(3,)) == pytest.approx(100.0)

    def test_octave_sine_folds_after_estimation(self):
        """A sine at twice the target comes back near the target once conditioned."""
        target = 110.0
        band = band_for_target(target)
        t = np.arange(4096) / SAMPLE_RATE
        frame = 0.8 * np.sin(2 * np.pi * 2 * target * t)

        estimate = estimate_pitch(frame, SAMPLE_RATE, band.low_hz, band.high_hz)
        assert estimate.hz == pytest.approx(2 * target, rel=0.01)

        conditioner = SignalConditioner()
        result = conditioner.condition(estimate.hz, estimate.rms, target)
        assert result == pytest.approx(target, rel=0.03)


class TestBand:
    """Band placement and glide."""

    @pytest.mark.parametrize(
        "target,expected",
        [
            (110.0, (44.0, 330.0)),
            (300.0, (80.0, 900.0)),
            (40.0, (20.0, 170.0)),
            (60.0, (24.0, 180.0)),
        ],
    )
    def test_band_for_target(self, target, expected):
        band = band_for_target(target)
        assert band.low_hz == pytest.approx(expected[0])
        assert band.high_hz == pytest.approx(expected[1])

    def test_glide_toward_goal(self):
        tracker = BandTracker(Band(20.0, 900.0), time_constant_ms=20.0)
        tracker.retarget(110.0)

        band = tracker.update(20.0)
        alpha = 1 - math.exp(-1)
        assert band.low_hz == pytest.approx(20.0 + 24.0 * alpha)
        assert band.high_hz == pytest.approx(900.0 - 570.0 * alpha)

        band = tracker.update(1000.0)
        assert band.low_hz == pytest.approx(44.0, abs=1e-6)
        assert band.high_hz == pytest.approx(330.0, abs=1e-6)

    def test_zero_dt_does_not_move(self):
        tracker = BandTracker(Band(20.0, 900.0))
        tracker.retarget(110.0)
        assert tracker.update(0.0) == Band(20.0, 900.0)

    def test_unusable_target_keeps_goal(self):
        tracker = BandTracker(Band(20.0, 900.0))
        tracker.retarget(110.0)
        for bad in (None, 0.0, math.nan, math.inf):
            tracker.retarget(bad)
        assert tracker.goal == band_for_target(110.0)
