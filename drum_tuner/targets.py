"""
Target frequencies for drums, heads and individual tension points.

The base curves are empirical lookup tables, not physics: kick and snare
targets are interpolated smoothly across diameters, toms use size bands.
Per-lug offsets are likewise table data keyed by drum type.
"""

import math
from typing import Callable

import numpy as np

from .errors import InvalidCursorError, UntunableDrumError
from .models import Drum, DrumType, Head
from .notes import cents_to_ratio

# (diameter inches, batter Hz) - interpolated, clamped at the ends
KICK_CURVE = ((18.0, 70.0), (20.0, 65.0), (22.0, 60.0), (24.0, 55.0), (26.0, 50.0))
SNARE_CURVE = ((10.0, 330.0), (12.0, 300.0), (13.0, 280.0), (14.0, 260.0), (15.0, 245.0))

# (largest diameter in band, batter Hz)
TOM_BANDS = ((10.0, 150.0), (12.0, 140.0), (13.0, 125.0), (15.0, 110.0), (math.inf, 85.0))


def _snare_offsets(lug_count: int) -> dict[int, float]:
    # Lugs either side of the snare bed sit slightly flat
    return {0: -12.0, (lug_count // 2) % lug_count: -12.0}


# Drum type -> lug index -> cents offset from the head target
POINT_OFFSET_RULES: dict[DrumType, Callable[[int], dict[int, float]]] = {
    DrumType.SNARE: _snare_offsets,
}


def batter_target(drum_type: DrumType, diameter_inches: float) -> float:
    """Suggested batter-head frequency for a drum type and size."""
    if drum_type == DrumType.KICK:
        sizes, hz = zip(*KICK_CURVE)
        return float(np.interp(diameter_inches, sizes, hz))
    if drum_type == DrumType.SNARE:
        sizes, hz = zip(*SNARE_CURVE)
        return float(np.interp(diameter_inches, sizes, hz))
    for max_size, hz in TOM_BANDS:
        if diameter_inches <= max_size:
            return hz
    return TOM_BANDS[-1][1]


def reso_target(batter_hz: float, reso_ratio: float) -> float:
    """Resonant-head target relative to the batter head."""
    return batter_hz * reso_ratio


def _usable(hz: float | None) -> bool:
    return hz is not None and math.isfinite(hz) and hz > 0


def check_drum(drum: Drum) -> Drum:
    """
    Reject drums that cannot enter the state machine.

    Raises:
        UntunableDrumError: If the drum has no tension points
    """
    if drum.lug_count < 1:
        raise UntunableDrumError(drum.id, f"lug count must be positive, got {drum.lug_count}")
    return drum


def is_tunable(drum: Drum) -> bool:
    return drum.lug_count >= 1


def head_target(drum: Drum, head: Head) -> float | None:
    """
    Target frequency for a head.

    Returns:
        Target in Hz, or None when the configured target is zero or non-finite
    """
    batter = drum.target.batter_hz
    if batter is None:
        batter = batter_target(drum.type, drum.diameter_inches)
    if not _usable(batter):
        return None
    if head == Head.BATTER:
        return float(batter)
    hz = reso_target(batter, drum.target.reso_ratio)
    return float(hz) if _usable(hz) else None


def point_offsets(drum: Drum) -> list[float]:
    """Cents offset of each lug from the head target."""
    offsets = [0.0] * drum.lug_count
    rule = POINT_OFFSET_RULES.get(drum.type)
    if rule is not None and drum.lug_count > 0:
        for index, cents in rule(drum.lug_count).items():
            offsets[index] = cents
    return offsets


def point_target(head_target_hz: float | None, point_index: int, drum: Drum) -> float | None:
    """
    Target frequency for one tension point.

    Args:
        head_target_hz: Target of the head the point belongs to
        point_index: Lug index (0-based)
        drum: Drum the lug belongs to

    Returns:
        Target in Hz, or None when the head target is unusable

    Raises:
        InvalidCursorError: If the lug does not exist on the drum
    """
    check_drum(drum)
    if not 0 <= point_index < drum.lug_count:
        raise InvalidCursorError(f"Point {point_index} out of range for {drum.lug_count} lugs")
    if not _usable(head_target_hz):
        return None
    return head_target_hz * cents_to_ratio(point_offsets(drum)[point_index])
