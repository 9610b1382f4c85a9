"""
Tests for the autocorrelation pitch estimator using synthetic signals.

Frames are sized for the search range (several periods of the lowest
admissible frequency), and the range is the band around the expected target.
"""

import numpy as np
import pytest

from drum_tuner import SAMPLE_RATE
from drum_tuner.conditioner import band_for_target
from drum_tuner.pitch_estimator import (
    PitchEstimate,
    estimate_pitch,
    hann_window,
    normalized_autocorrelation,
    parabolic_offset,
    recommended_frame_size,
)


def generate_sine_wave(
    frequency: float,
    duration_samples: int,
    sample_rate: int = SAMPLE_RATE,
    amplitude: float = 0.8,
) -> np.ndarray:
    """Generate a sine wave at the given frequency."""
    t = np.arange(duration_samples) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float64)


def generate_drum_hit(
    frequency: float,
    duration_samples: int,
    sample_rate: int = SAMPLE_RATE,
    decay_s: float = 0.4,
) -> np.ndarray:
    """Exponentially decaying sine, like the fundamental of a struck head."""
    t = np.arange(duration_samples) / sample_rate
    return 0.8 * np.exp(-t / decay_s) * np.sin(2 * np.pi * frequency * t)


class TestSineRoundTrip:
    """Pure sines at typical drum targets come back within 1%."""

    @pytest.mark.parametrize(
        "target_hz,frame_size",
        [
            (60.0, 8192),  # Kick
            (110.0, 4096),  # Floor tom
            (140.0, 4096),  # Rack tom
            (260.0, 2048),  # Snare
        ],
    )
    def test_target_band(self, target_hz, frame_size):
        band = band_for_target(target_hz)
        frame = generate_sine_wave(target_hz, frame_size)
        result = estimate_pitch(frame, SAMPLE_RATE, band.low_hz, band.high_hz)

        assert result.hz is not None
        assert result.hz == pytest.approx(target_hz, rel=0.01)

    def test_default_range(self):
        frame = generate_sine_wave(440.0, 2048)
        result = estimate_pitch(frame, SAMPLE_RATE)
        assert result.hz == pytest.approx(440.0, rel=0.01)

    def test_drum_like_signal(self):
        band = band_for_target(125.0)
        frame = generate_drum_hit(125.0, 4096)
        result = estimate_pitch(frame, SAMPLE_RATE, band.low_hz, band.high_hz)
        assert result.hz == pytest.approx(125.0, rel=0.01)

    def test_other_sample_rate(self):
        frame = generate_sine_wave(150.0, 4096, sample_rate=44100)
        band = band_for_target(150.0)
        result = estimate_pitch(frame, 44100, band.low_hz, band.high_hz)
        assert result.hz == pytest.approx(150.0, rel=0.01)

    def test_stateless(self):
        frame = generate_sine_wave(200.0, 2048)
        first = estimate_pitch(frame, SAMPLE_RATE)
        second = estimate_pitch(frame, SAMPLE_RATE)
        assert first == second


class TestRejection:
    """Frames that should not produce a pitch."""

    def test_all_zero_frame(self):
        result = estimate_pitch(np.zeros(4096), SAMPLE_RATE)
        assert result.hz is None
        assert result.rms == 0.0

    def test_low_amplitude_frame(self):
        frame = generate_sine_wave(110.0, 4096, amplitude=0.002)
        result = estimate_pitch(frame, SAMPLE_RATE)
        assert result.hz is None
        assert result.rms < 0.005

    def test_rms_reported_when_loud(self):
        frame = generate_sine_wave(110.0, 4096, amplitude=0.5)
        result = estimate_pitch(frame, SAMPLE_RATE)
        # Hann-windowed sine: amplitude * sqrt(1/2) * sqrt(3/8)
        assert result.rms == pytest.approx(0.5 * np.sqrt(0.5) * np.sqrt(3 / 8), rel=0.02)

    def test_too_short(self):
        result = estimate_pitch(np.array([0.5, -0.5]), SAMPLE_RATE)
        assert result == PitchEstimate(None, 0.0)

    def test_empty_lag_range(self):
        frame = generate_sine_wave(440.0, 2048)
        result = estimate_pitch(frame, SAMPLE_RATE, min_hz=500.0, max_hz=450.0)
        assert result.hz is None

    def test_noise_without_positive_peak(self):
        # Alternating samples correlate negatively at every odd lag and the
        # search range holds only lag 1
        frame = np.tile([1.0, -1.0], 1024)
        result = estimate_pitch(frame, 4, min_hz=2.0, max_hz=4.0)
        assert result.hz is None


class TestHelpers:
    """Window, autocorrelation and interpolation helpers."""

    def test_hann_window_shape(self):
        w = hann_window(5)
        assert w[0] == pytest.approx(0.0)
        assert w[-1] == pytest.approx(0.0)
        assert w[2] == pytest.approx(1.0)
        assert np.allclose(w, w[::-1])

    def test_autocorrelation_normalised(self):
        frame = generate_sine_wave(100.0, 1024) * hann_window(1024)
        ac = normalized_autocorrelation(frame, 2000)
        assert len(ac) == 2001
        assert ac[0] == pytest.approx(1.0)
        assert np.all(ac[1024:] == 0.0)

    def test_parabolic_offset(self):
        assert parabolic_offset(0.8, 1.0, 0.8) == pytest.approx(0.0)
        assert parabolic_offset(0.5, 1.0, 0.7) == pytest.approx(0.125)

    def test_parabolic_flat_is_zero(self):
        assert parabolic_offset(1.0, 1.0, 1.0) == 0.0

    @pytest.mark.parametrize(
        "min_hz,expected",
        [(40.0, 8192), (100.0, 4096), (20.0, 16384), (250.0, 2048)],
    )
    def test_recommended_frame_size(self, min_hz, expected):
        assert recommended_frame_size(min_hz, SAMPLE_RATE) == expected
