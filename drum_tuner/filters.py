"""
Streaming band-pass filter for the audio front-end.

A 2nd-order Butterworth high-pass followed by a 2nd-order Butterworth
low-pass, run as second-order sections with filter state carried between
blocks. Cut-offs can be moved between blocks without resetting the state.
"""

import numpy as np
from scipy.signal import butter, sosfilt, sosfilt_zi

from .constants import SAMPLE_RATE

# Cut-off changes smaller than this don't trigger a redesign
_RETUNE_TOLERANCE_HZ = 0.5


class BandPassFilter:
    """High-pass + low-pass chain with adjustable cut-offs."""

    def __init__(self, low_hz: float, high_hz: float, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.low_hz = 0.0
        self.high_hz = 0.0
        self._sos: np.ndarray | None = None
        self._zi: np.ndarray | None = None
        self._primed = False
        self.set_band(low_hz, high_hz)

    def _design(self, low_hz: float, high_hz: float) -> np.ndarray:
        nyquist = self.sample_rate / 2
        low = max(1.0, min(low_hz, nyquist * 0.95))
        high = max(low + 1.0, min(high_hz, nyquist * 0.95))
        hp = butter(2, low, btype="highpass", fs=self.sample_rate, output="sos")
        lp = butter(2, high, btype="lowpass", fs=self.sample_rate, output="sos")
        return np.vstack([hp, lp])

    def set_band(self, low_hz: float, high_hz: float) -> bool:
        """
        Move the cut-offs.

        Returns:
            True if the filter was redesigned
        """
        if (
            self._sos is not None
            and abs(low_hz - self.low_hz) < _RETUNE_TOLERANCE_HZ
            and abs(high_hz - self.high_hz) < _RETUNE_TOLERANCE_HZ
        ):
            return False
        self._sos = self._design(low_hz, high_hz)
        if self._zi is None:
            self._zi = np.zeros((self._sos.shape[0], 2))
        self.low_hz = low_hz
        self.high_hz = high_hz
        return True

    def process(self, samples: np.ndarray) -> np.ndarray:
        """Filter one block, continuing from the previous block's state."""
        samples = np.asarray(samples, dtype=np.float64)
        if samples.size == 0:
            return samples
        if not self._primed:
            # Start from steady state for the first sample to avoid a step transient
            self._zi = sosfilt_zi(self._sos) * samples[0]
            self._primed = True
        out, self._zi = sosfilt(self._sos, samples, zi=self._zi)
        return out

    def reset(self):
        self._zi = np.zeros((self._sos.shape[0], 2))
        self._primed = False
