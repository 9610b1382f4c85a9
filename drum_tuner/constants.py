"""
Shared constants for drum tuning.
"""

SAMPLE_RATE = 48000
BUFFER_SIZE = 2048  # Audio block size delivered by the input stream

A4_REFERENCE = 440.0
NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Pitch search range for drumheads
MIN_HZ = 40.0
MAX_HZ = 900.0

# Frames whose windowed RMS falls below this carry no pitch
QUIET_RMS = 0.005

DEFAULT_RESO_RATIO = 1.06

# Rolling median window (loud frames)
MEDIAN_WINDOW = 5

# Harmonic folding
FOLD_DIVISORS = (2, 3, 4, 5)
FOLD_GAIN = 0.75  # Candidate error must beat this fraction of the best error
FOLD_WINDOW = 0.5  # Candidate must stay within ±50% of target

# Adaptive band around the current target
BAND_LOW_RATIO = 0.4
BAND_LOW_MIN_HZ = 20.0
BAND_LOW_MAX_HZ = 80.0
BAND_HIGH_RATIO = 3.0
BAND_HIGH_MIN_SPAN_HZ = 150.0
BAND_HIGH_MAX_HZ = 900.0
BAND_TIME_CONSTANT_MS = 20.0
