"""
Note naming and cents helpers for the live readout.
"""

from typing import NamedTuple

import numpy as np

from .constants import A4_REFERENCE, NOTE_NAMES


class NoteInfo(NamedTuple):
    """Nearest equal-tempered note for a frequency."""
    midi: int
    name: str
    octave: int
    exact_hz: float


def hz_to_note(hz: float | None, reference: float = A4_REFERENCE) -> NoteInfo | None:
    """Convert a frequency to its nearest note, or None for missing/invalid input."""
    if not hz or not np.isfinite(hz) or hz <= 0:
        return None
    midi = int(round(69 + 12 * np.log2(hz / reference)))
    name = NOTE_NAMES[midi % 12]
    octave = midi // 12 - 1
    exact_hz = reference * 2 ** ((midi - 69) / 12)
    return NoteInfo(midi, name, octave, float(exact_hz))


def format_note(hz: float | None) -> str:
    """Format a frequency as a note name like "A2", or "--" when unknown."""
    note = hz_to_note(hz)
    if note is None:
        return "--"
    return f"{note.name}{note.octave}"


def cents_diff(measured_hz: float | None, target_hz: float | None) -> float | None:
    """Cents from target to measured (positive = sharp)."""
    if not measured_hz or not target_hz:
        return None
    if measured_hz <= 0 or target_hz <= 0:
        return None
    return float(1200.0 * np.log2(measured_hz / target_hz))


def cents_to_ratio(cents: float) -> float:
    return float(2.0 ** ((cents or 0.0) / 1200.0))
