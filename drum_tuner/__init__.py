"""
drum_tuner - Real-time drum tuning engine with per-lug lock detection and guided advancement
"""

from .conditioner import Band, BandTracker, SignalConditioner, band_for_target, fold_harmonics
from .constants import A4_REFERENCE, BUFFER_SIZE, NOTE_NAMES, SAMPLE_RATE
from .engine import DeferredAdvance, FrameResult, LiveReading, TuningEngine, TuningPhase
from .errors import DrumTunerError, InvalidCursorError, NoInputDeviceError, UntunableDrumError
from .kit import Kit, load_kit, save_kit
from .models import (
    Cursor,
    Drum,
    DrumTarget,
    DrumType,
    Head,
    HeadTuningState,
    LockEvent,
    TensionPointState,
)
from .pitch_estimator import PitchEstimate, estimate_pitch, recommended_frame_size
from .progress import DebouncedProgressWriter, JsonProgressStore, MemoryProgressStore
from .recorder import CsvSessionRecorder, MemorySessionRecorder
from .settings import TuningSettings, load_settings, save_settings
from .targets import batter_target, head_target, point_target, reso_target

__version__ = "0.1.0"
__all__ = [
    "TuningEngine",
    "TuningPhase",
    "TuningSettings",
    "LiveReading",
    "FrameResult",
    "DeferredAdvance",
    "Kit",
    "Drum",
    "DrumTarget",
    "DrumType",
    "Head",
    "HeadTuningState",
    "TensionPointState",
    "LockEvent",
    "Cursor",
    "PitchEstimate",
    "estimate_pitch",
    "recommended_frame_size",
    "SignalConditioner",
    "BandTracker",
    "Band",
    "band_for_target",
    "fold_harmonics",
    "batter_target",
    "reso_target",
    "head_target",
    "point_target",
    "MemorySessionRecorder",
    "CsvSessionRecorder",
    "MemoryProgressStore",
    "JsonProgressStore",
    "DebouncedProgressWriter",
    "load_kit",
    "save_kit",
    "load_settings",
    "save_settings",
    "DrumTunerError",
    "UntunableDrumError",
    "InvalidCursorError",
    "NoInputDeviceError",
    "SAMPLE_RATE",
    "BUFFER_SIZE",
    "A4_REFERENCE",
    "NOTE_NAMES",
]
