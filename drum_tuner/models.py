"""
Data model for drum tuning: drums, heads, per-lug state and lock events.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum

from .constants import DEFAULT_RESO_RATIO


class DrumType(Enum):
    """Kind of drum, which selects its target curve and lug offsets."""

    KICK = "kick"
    SNARE = "snare"
    TOM = "tom"


class Head(Enum):
    """One of the two heads of a drum."""

    BATTER = "batter"  # Top, struck head
    RESO = "reso"  # Bottom, resonant head

    @property
    def other(self) -> "Head":
        return Head.RESO if self is Head.BATTER else Head.BATTER


@dataclass(frozen=True)
class DrumTarget:
    """Target description for a drum.

    Attributes:
        batter_hz: Explicit batter-head target, or None to use the suggested value
        reso_ratio: Resonant head target as a multiple of the batter target
    """
    batter_hz: float | None = None
    reso_ratio: float = DEFAULT_RESO_RATIO


@dataclass(frozen=True)
class Drum:
    """A drum in the kit catalog."""
    id: str
    type: DrumType
    diameter_inches: float
    lug_count: int
    target: DrumTarget = field(default_factory=DrumTarget)

    @property
    def label(self) -> str:
        return f'{self.diameter_inches:g}" {self.type.value}'


@dataclass
class TensionPointState:
    """Tuning state of a single lug on one head.

    ``measured_hz`` and ``cents_offset`` only mean something once ``locked``.
    """
    index: int
    measured_hz: float = 0.0
    cents_offset: float = 0.0
    locked: bool = False
    locked_at: float = 0.0  # Wall-clock timestamp (seconds) of the lock


@dataclass
class HeadTuningState:
    """Ordered per-lug state for one head, with aggregates over locked lugs."""
    points: list[TensionPointState] = field(default_factory=list)
    average_locked_hz: float = 0.0
    locked_spread_cents: float = 0.0

    @classmethod
    def empty(cls, lug_count: int) -> "HeadTuningState":
        """Create a head state with every lug unlocked."""
        return cls(points=[TensionPointState(index=i) for i in range(lug_count)])

    @property
    def lug_count(self) -> int:
        return len(self.points)

    @property
    def locked_count(self) -> int:
        return sum(1 for p in self.points if p.locked)

    @property
    def is_fully_locked(self) -> bool:
        return bool(self.points) and all(p.locked for p in self.points)

    def first_unlocked_index(self) -> int | None:
        for point in self.points:
            if not point.locked:
                return point.index
        return None

    def lock_point(self, index: int, hz: float, cents: float, timestamp: float) -> TensionPointState:
        """Mark a lug as locked with its measurement and refresh the aggregates."""
        point = self.points[index]
        point.measured_hz = hz
        point.cents_offset = cents
        point.locked = True
        point.locked_at = timestamp
        self.recompute()
        return point

    def recompute(self):
        """Recompute aggregates from the locked subset."""
        locked = [p for p in self.points if p.locked]
        if not locked:
            self.average_locked_hz = 0.0
            self.locked_spread_cents = 0.0
            return
        self.average_locked_hz = sum(p.measured_hz for p in locked) / len(locked)
        cents = [p.cents_offset for p in locked]
        self.locked_spread_cents = max(cents) - min(cents)

    def snapshot(self) -> "HeadTuningState":
        """Independent copy safe to hand to another owner."""
        return replace(self, points=[replace(p) for p in self.points])

    def is_valid_for(self, lug_count: int) -> bool:
        """Whether this state has the right shape for a drum with ``lug_count`` lugs."""
        if len(self.points) != lug_count:
            return False
        return all(
            p.index == i and math.isfinite(p.measured_hz) for i, p in enumerate(self.points)
        )


@dataclass(frozen=True)
class LockEvent:
    """A committed lock of one tension point."""
    drum_id: str
    head: Head
    point_index: int
    hz: float
    cents_offset: float
    timestamp: float


@dataclass(frozen=True)
class Cursor:
    """Position of the tuning session: which drum, head and lug is being tuned."""
    drum_id: str
    head: Head = Head.BATTER
    point_index: int = 0

    @property
    def key(self) -> tuple[str, Head, int]:
        return (self.drum_id, self.head, self.point_index)
