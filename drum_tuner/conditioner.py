"""
Conditioning of raw per-frame pitch estimates.

Raw autocorrelation estimates jump around between frames and occasionally
land on a harmonic. This module provides:
- Median smoothing over the last few loud frames
- Harmonic folding toward the current target
- An adaptive pass band that follows the current target
"""

import math
from collections import deque
from typing import NamedTuple

import numpy as np

from .constants import (
    BAND_HIGH_MAX_HZ,
    BAND_HIGH_MIN_SPAN_HZ,
    BAND_HIGH_RATIO,
    BAND_LOW_MAX_HZ,
    BAND_LOW_MIN_HZ,
    BAND_LOW_RATIO,
    BAND_TIME_CONSTANT_MS,
    FOLD_DIVISORS,
    FOLD_GAIN,
    FOLD_WINDOW,
    MEDIAN_WINDOW,
)


def fold_harmonics(
    hz: float | None,
    target_hz: float | None,
    divisors: tuple[int, ...] = FOLD_DIVISORS,
    gain: float = FOLD_GAIN,
    window: float = FOLD_WINDOW,
) -> float | None:
    """
    Fold an estimate that sits on a harmonic back down toward the target.

    A candidate ``hz / k`` replaces the estimate when it stays within
    ``±window`` of the target and its distance to the target is below
    ``gain`` times the best distance so far.

    Args:
        hz: Smoothed estimate
        target_hz: Current target
        divisors: Harmonic numbers to try
        gain: Required improvement factor
        window: Allowed relative distance of a candidate from the target

    Returns:
        Folded estimate (unchanged when no candidate qualifies)
    """
    if not hz or not target_hz or not math.isfinite(target_hz) or target_hz <= 0:
        return hz
    best = hz
    best_err = abs(hz - target_hz)
    for k in divisors:
        candidate = hz / k
        if target_hz * (1 - window) <= candidate <= target_hz * (1 + window):
            err = abs(candidate - target_hz)
            if err < best_err * gain:
                best = candidate
                best_err = err
    return best


class SignalConditioner:
    """
    Median smoother with harmonic folding.

    Keeps the pitches of the most recent loud frames. Any quiet or pitchless
    frame discards the history so a new strike starts clean.
    """

    def __init__(self, window: int = MEDIAN_WINDOW, rms_threshold: float = 0.02):
        """
        Initialize conditioner.

        Args:
            window: Number of loud frames in the median
            rms_threshold: Loudness a frame needs to enter the history
        """
        self.rms_threshold = rms_threshold
        self._history: deque[float] = deque(maxlen=max(1, window))

    def condition(self, raw_hz: float | None, rms: float, target_hz: float | None) -> float | None:
        """
        Smooth one raw estimate.

        Args:
            raw_hz: Pitch estimate for the frame (None if none)
            rms: Frame loudness
            target_hz: Current target used as the folding reference

        Returns:
            Smoothed and folded pitch, or None when the frame breaks continuity
        """
        if raw_hz is None or not math.isfinite(raw_hz) or rms < self.rms_threshold:
            self._history.clear()
            return None
        self._history.append(raw_hz)
        smoothed = float(np.median(np.fromiter(self._history, dtype=np.float64)))
        return fold_harmonics(smoothed, target_hz)

    def set_window(self, window: int):
        """Resize the median window, keeping the most recent values."""
        window = max(1, int(window))
        if window != self._history.maxlen:
            self._history = deque(self._history, maxlen=window)

    def reset(self):
        """Discard the history."""
        self._history.clear()

    @property
    def sample_count(self) -> int:
        return len(self._history)


class Band(NamedTuple):
    """Admissible frequency band."""
    low_hz: float
    high_hz: float


def band_for_target(target_hz: float) -> Band:
    """Pass band centred on a target: wide enough for the fundamental, tight on junk."""
    low = max(BAND_LOW_MIN_HZ, min(BAND_LOW_MAX_HZ, target_hz * BAND_LOW_RATIO))
    high = max(low + BAND_HIGH_MIN_SPAN_HZ, min(BAND_HIGH_MAX_HZ, target_hz * BAND_HIGH_RATIO))
    return Band(low, high)


class BandTracker:
    """
    Band request for the audio front-end that glides toward the target band.

    Each update moves the band exponentially toward the band for the current
    target, with the given time constant measured in frame time.
    """

    def __init__(self, initial: Band, time_constant_ms: float = BAND_TIME_CONSTANT_MS):
        self.time_constant_ms = time_constant_ms
        self._band = initial
        self._goal = initial

    @property
    def band(self) -> Band:
        return self._band

    @property
    def goal(self) -> Band:
        return self._goal

    def retarget(self, target_hz: float | None):
        """Set the goal band for a new target. Unusable targets keep the old goal."""
        if target_hz and math.isfinite(target_hz) and target_hz > 0:
            self._goal = band_for_target(target_hz)

    def update(self, dt_ms: float) -> Band:
        """Advance the glide by ``dt_ms`` and return the current band."""
        if self.time_constant_ms <= 0:
            self._band = self._goal
            return self._band
        alpha = 1.0 - math.exp(-max(0.0, dt_ms) / self.time_constant_ms)
        low = self._band.low_hz + (self._goal.low_hz - self._band.low_hz) * alpha
        high = self._band.high_hz + (self._goal.high_hz - self._band.high_hz) * alpha
        self._band = Band(low, high)
        return self._band
