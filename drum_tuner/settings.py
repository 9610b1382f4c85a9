"""
Tuning settings with defaults and JSON persistence.

Settings are plain values read by the engine at each frame, so replacing
them between frames takes effect immediately.
"""

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from .constants import MAX_HZ, MEDIAN_WINDOW, MIN_HZ
from .logging_utils import log_event

# Reference hold time the coupled gate durations are scaled from
_COUPLING_HOLD_MS = 300.0


@dataclass(frozen=True)
class TuningSettings:
    """Lock detection and advance parameters."""
    lock_cents: float = 5.0  # Base lock window (±cents)
    lock_margin_cents: float = 4.0  # Added to lock_cents for the proximity gate
    hold_ms: float = 300.0  # Dwell needed inside the window before locking
    rms_threshold: float = 0.02  # Loudness needed for a reading to count
    rearm_cooldown_ms: float = 1000.0  # No locks for this long after a lock
    require_silence_ms: float = 280.0  # Continuous quiet needed after a lock
    silence_gate_factor: float = 0.6  # Quiet means rms < rms_threshold * factor
    auto_advance: bool = True
    settle_delay_ms: float = 260.0  # Delay between a lock and the cursor moving
    min_hz: float = MIN_HZ
    max_hz: float = MAX_HZ
    median_window: int = MEDIAN_WINDOW

    @property
    def lock_window_cents(self) -> float:
        return self.lock_cents + self.lock_margin_cents

    @property
    def silence_rms(self) -> float:
        return self.rms_threshold * self.silence_gate_factor

    @classmethod
    def coupled(cls, hold_ms: float, **overrides: Any) -> "TuningSettings":
        """
        Settings where the silence gate and re-arm cooldown scale with hold time.

        At the default 300 ms hold this reproduces the default 280 ms silence
        and 1000 ms cooldown.
        """
        scale = hold_ms / _COUPLING_HOLD_MS
        defaults = cls()
        values = {
            "hold_ms": hold_ms,
            "require_silence_ms": defaults.require_silence_ms * scale,
            "rearm_cooldown_ms": defaults.rearm_cooldown_ms * scale,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TuningSettings":
        """Build settings from a dict, ignoring unknown keys and coercing types."""
        settings = cls()
        return settings.merged(data)

    def merged(self, data: dict[str, Any]) -> "TuningSettings":
        """Return a copy with the known keys of ``data`` applied."""
        known = {f.name: f for f in fields(self)}
        updates = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            current = getattr(self, key)
            try:
                if isinstance(current, bool):
                    updates[key] = value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes", "on")
                elif isinstance(current, int):
                    updates[key] = int(value)
                else:
                    updates[key] = float(value)
            except (TypeError, ValueError):
                log_event("WARNING", "Settings", "Ignoring invalid value", key=key, value=value)
        return replace(self, **updates)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def save_settings(settings: TuningSettings, path: str | Path) -> None:
    """Save settings to a JSON file."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    log_event("INFO", "Settings", "Saved", path=file_path)


def load_settings(path: str | Path) -> TuningSettings:
    """
    Load settings from a JSON file.

    Returns defaults when the file does not exist. Unknown keys are ignored.

    Raises:
        ValueError: If the file is not a JSON object
    """
    file_path = Path(path)
    if not file_path.exists():
        log_event("INFO", "Settings", "No saved settings found, using defaults", path=file_path)
        return TuningSettings()

    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a JSON object: {path}")

    settings = TuningSettings.from_dict(data)
    log_event("INFO", "Settings", "Loaded", path=file_path)
    return settings
