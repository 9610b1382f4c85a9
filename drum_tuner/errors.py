"""
Exceptions raised by the drum tuner core.

Transient signal problems (quiet frames, ambiguous pitch) are never raised;
they show up as missing readings instead.
"""


class DrumTunerError(Exception):
    """Base class for drum tuner errors."""


class UntunableDrumError(DrumTunerError, ValueError):
    """A drum's configuration cannot be tuned (e.g. no lugs)."""

    def __init__(self, drum_id: str, reason: str):
        super().__init__(f"Drum {drum_id!r} cannot be tuned: {reason}")
        self.drum_id = drum_id
        self.reason = reason


class InvalidCursorError(DrumTunerError, LookupError):
    """The tuning cursor points at a drum or tension point that does not exist."""


class NoInputDeviceError(DrumTunerError, RuntimeError):
    """No audio input device is available for capture."""
