"""
Autocorrelation pitch estimation for struck drumheads.

One frame in, one (hz, rms) estimate out. The estimator carries no state
between frames, so it can be called from an audio callback for every block.
"""

from typing import NamedTuple

import numpy as np
from scipy.signal import correlate

from .constants import MAX_HZ, MIN_HZ, QUIET_RMS, SAMPLE_RATE

# Periods of the lowest frequency a frame should hold
_PERIODS_PER_FRAME = 6


class PitchEstimate(NamedTuple):
    """Pitch estimate for one frame."""
    hz: float | None  # None when quiet, ambiguous or out of range
    rms: float  # RMS of the windowed frame


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window, 0.5 - 0.5*cos(2*pi*i/(N-1))."""
    if size < 2:
        return np.ones(size)
    i = np.arange(size)
    return 0.5 - 0.5 * np.cos(2.0 * np.pi * i / (size - 1))


def recommended_frame_size(min_hz: float = MIN_HZ, sample_rate: int = SAMPLE_RATE) -> int:
    """
    Smallest power-of-two frame holding several periods of ``min_hz``.

    Shorter frames let the window's autocorrelation envelope pull the peak
    toward shorter lags, biasing estimates sharp by more than a percent.
    """
    needed = _PERIODS_PER_FRAME * sample_rate / min_hz
    return int(2 ** int(np.ceil(np.log2(needed))))


def normalized_autocorrelation(windowed: np.ndarray, max_lag: int) -> np.ndarray:
    """
    Autocorrelation for lags 0..max_lag, normalised so lag 0 equals 1.

    Lags beyond the frame length are zero.
    """
    n = len(windowed)
    full = correlate(windowed, windowed, mode="full", method="auto")
    ac = np.zeros(max_lag + 1, dtype=np.float64)
    available = min(max_lag + 1, n)
    ac[:available] = full[n - 1 : n - 1 + available]
    if ac[0] > 0:
        ac /= ac[0]
    return ac


def parabolic_offset(c0: float, c1: float, c2: float) -> float:
    """Sub-sample offset of a peak from three samples around it."""
    denom = 2.0 * (c0 - 2.0 * c1 + c2)
    if abs(denom) < 1e-12:
        return 0.0
    return (c0 - c2) / denom


def estimate_pitch(
    frame: np.ndarray,
    sample_rate: int = SAMPLE_RATE,
    min_hz: float = MIN_HZ,
    max_hz: float = MAX_HZ,
) -> PitchEstimate:
    """
    Estimate the fundamental frequency of one audio frame.

    Args:
        frame: Audio samples
        sample_rate: Sample rate in Hz
        min_hz: Lowest admissible pitch
        max_hz: Highest admissible pitch

    Returns:
        PitchEstimate with hz=None for quiet frames, frames without a
        positive correlation peak, or estimates outside [min_hz, max_hz]
    """
    samples = np.asarray(frame, dtype=np.float64).ravel()
    if samples.size < 3:
        return PitchEstimate(None, 0.0)

    windowed = samples * hann_window(samples.size)
    rms = float(np.sqrt(np.mean(windowed**2)))
    if not np.isfinite(rms) or rms < QUIET_RMS:
        return PitchEstimate(None, rms if np.isfinite(rms) else 0.0)

    min_lag = max(1, int(np.floor(sample_rate / max_hz)))
    max_lag = int(np.floor(sample_rate / min_hz))
    if max_lag - 1 < min_lag:
        return PitchEstimate(None, rms)

    ac = normalized_autocorrelation(windowed, max_lag)

    # Search [min_lag, max_lag - 1]; lag 0 is always the global maximum
    search = ac[min_lag:max_lag]
    peak_lag = min_lag + int(np.argmax(search))
    if ac[peak_lag] <= 0:
        return PitchEstimate(None, rms)

    offset = parabolic_offset(ac[peak_lag - 1], ac[peak_lag], ac[peak_lag + 1])
    refined_lag = peak_lag + offset
    if refined_lag <= 0:
        return PitchEstimate(None, rms)

    hz = sample_rate / refined_lag
    if not np.isfinite(hz) or hz < min_hz or hz > max_hz:
        return PitchEstimate(None, rms)
    return PitchEstimate(float(hz), rms)
