"""
Debug script: plot what the pitch estimator sees for a few frames.

For each frame, the top panel shows the windowed samples and the bottom
panel the normalised autocorrelation over the searched lag range, with the
chosen peak and the target lag marked.

Usage:
    python scripts/debug_frame_pitch.py [recording.npy] [target_hz]

Without a recording, a synthetic decaying strike at the target is used.
"""

import sys
from pathlib import Path

import matplotlib
import numpy as np

matplotlib.use('Agg')
import matplotlib.pyplot as plt

from drum_tuner.conditioner import band_for_target
from drum_tuner.constants import BUFFER_SIZE, SAMPLE_RATE
from drum_tuner.pitch_estimator import (
    estimate_pitch,
    hann_window,
    normalized_autocorrelation,
    recommended_frame_size,
)


def synthetic_strike(target_hz: float, seconds: float = 1.5, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return 0.6 * np.exp(-t / 0.5) * np.sin(2 * np.pi * target_hz * t)


def plot_frames(audio, target_hz, output_prefix, num_frames=6, sample_rate=SAMPLE_RATE):
    """Save one plot per frame."""
    band = band_for_target(target_hz)
    frame_size = recommended_frame_size(band.low_hz, sample_rate)
    min_lag = max(1, int(np.floor(sample_rate / band.high_hz)))
    max_lag = int(np.floor(sample_rate / band.low_hz))
    target_lag = sample_rate / target_hz

    for frame_num in range(num_frames):
        start = frame_num * BUFFER_SIZE
        frame = audio[start:start + frame_size]
        if len(frame) < frame_size:
            break

        windowed = frame * hann_window(frame_size)
        ac = normalized_autocorrelation(windowed, max_lag)
        result = estimate_pitch(frame, sample_rate, band.low_hz, band.high_hz)

        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8))

        t_ms = np.arange(frame_size) / sample_rate * 1000
        ax1.plot(t_ms, frame, color='lightgray', linewidth=0.5, label='Raw')
        ax1.plot(t_ms, windowed, 'b-', linewidth=0.5, label='Windowed')
        ax1.set_title(f'Frame {frame_num} (rms={result.rms:.4f})')
        ax1.set_xlabel('Time (ms)')
        ax1.legend(loc='upper right')
        ax1.grid(True, alpha=0.3)

        lags = np.arange(min_lag, max_lag)
        ax2.plot(lags, ac[min_lag:max_lag], 'purple', linewidth=0.8)
        ax2.axvline(target_lag, color='green', linestyle='--', linewidth=2, label=f'Target: {target_hz:.1f} Hz')
        if result.hz is not None:
            ax2.axvline(sample_rate / result.hz, color='red', linewidth=1.5,
                        label=f'Detected: {result.hz:.2f} Hz')
        ax2.set_title(f'Autocorrelation, search {band.low_hz:.0f}-{band.high_hz:.0f} Hz')
        ax2.set_xlabel('Lag (samples)')
        ax2.set_ylabel('Normalised correlation')
        ax2.legend(loc='upper right')
        ax2.grid(True, alpha=0.3)

        plt.tight_layout()
        filename = f'{output_prefix}_frame_{frame_num:02d}.png'
        plt.savefig(filename, dpi=100)
        plt.close()
        print(f'Saved: {filename}')


if __name__ == '__main__':
    target = 110.0
    if len(sys.argv) > 2:
        target = float(sys.argv[2])

    if len(sys.argv) > 1:
        recording = Path(sys.argv[1])
        audio = np.load(recording).astype(np.float64).ravel()
        prefix = str(recording.with_suffix(''))
    else:
        audio = synthetic_strike(target)
        prefix = f'scripts/debug_synthetic_{target:.0f}hz'

    plot_frames(audio, target, prefix)
    print('Done!')
