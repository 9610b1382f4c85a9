"""
Kit catalog: the ordered drums being tuned and the active selection.

Kits can be loaded from JSON. Loose shapes (a bare number as target, missing
lug counts or ratios) are normalised here so the rest of the package sees
a single representation.
"""

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import DEFAULT_RESO_RATIO
from .errors import InvalidCursorError
from .models import Drum, DrumTarget, DrumType


def default_lug_count(drum_type: DrumType) -> int:
    return 10 if drum_type == DrumType.SNARE else 8


def drum_from_dict(data: dict[str, Any]) -> Drum:
    """
    Build a Drum from a loosely-shaped dict.

    Accepted keys: id, type, diameter_inches (or size_in), lug_count (or lugs),
    target (number or {batter_hz, reso_ratio}), reso_ratio.
    """
    drum_type = DrumType(str(data.get("type", "tom")).lower())
    diameter = float(data.get("diameter_inches", data.get("size_in", 12)))
    lugs = data.get("lug_count", data.get("lugs"))
    lug_count = int(lugs) if lugs is not None else default_lug_count(drum_type)

    raw_target = data.get("target")
    batter_hz = None
    reso_ratio = data.get("reso_ratio")
    if isinstance(raw_target, (int, float)) and not isinstance(raw_target, bool):
        batter_hz = float(raw_target)
    elif isinstance(raw_target, dict):
        if raw_target.get("batter_hz") is not None:
            batter_hz = float(raw_target["batter_hz"])
        if raw_target.get("reso_ratio") is not None:
            reso_ratio = raw_target["reso_ratio"]
    reso_ratio = float(reso_ratio) if reso_ratio is not None else DEFAULT_RESO_RATIO

    return Drum(
        id=str(data.get("id") or uuid.uuid4().hex),
        type=drum_type,
        diameter_inches=diameter,
        lug_count=lug_count,
        target=DrumTarget(batter_hz=batter_hz, reso_ratio=reso_ratio),
    )


def drum_to_dict(drum: Drum) -> dict[str, Any]:
    return {
        "id": drum.id,
        "type": drum.type.value,
        "diameter_inches": drum.diameter_inches,
        "lug_count": drum.lug_count,
        "target": {
            "batter_hz": drum.target.batter_hz,
            "reso_ratio": drum.target.reso_ratio,
        },
    }


@dataclass
class Kit:
    """Ordered drum catalog with an active drum."""
    drums: list[Drum] = field(default_factory=list)
    active_drum_id: str | None = None

    def __post_init__(self):
        ids = [d.id for d in self.drums]
        if len(ids) != len(set(ids)):
            raise ValueError("Drum ids in a kit must be unique")
        if self.active_drum_id is None and self.drums:
            self.active_drum_id = self.drums[0].id

    def __len__(self) -> int:
        return len(self.drums)

    def __iter__(self):
        return iter(self.drums)

    def get(self, drum_id: str) -> Drum:
        """
        Look up a drum by id.

        Raises:
            InvalidCursorError: If no drum has that id
        """
        for drum in self.drums:
            if drum.id == drum_id:
                return drum
        raise InvalidCursorError(f"No drum with id {drum_id!r} in kit")

    def index_of(self, drum_id: str) -> int:
        for i, drum in enumerate(self.drums):
            if drum.id == drum_id:
                return i
        raise InvalidCursorError(f"No drum with id {drum_id!r} in kit")

    def next_drum(self, drum_id: str) -> Drum:
        """Drum after ``drum_id`` in kit order, wrapping to the first."""
        idx = self.index_of(drum_id)
        return self.drums[(idx + 1) % len(self.drums)]

    def previous_drum(self, drum_id: str) -> Drum:
        """Drum before ``drum_id`` in kit order, wrapping to the last."""
        idx = self.index_of(drum_id)
        return self.drums[(idx - 1) % len(self.drums)]

    @property
    def active_drum(self) -> Drum | None:
        if self.active_drum_id is None:
            return None
        return self.get(self.active_drum_id)


def load_kit(path: str | Path) -> Kit:
    """
    Load a kit from a JSON file.

    File format: ``{"drums": [...], "active_drum_id": "..."}`` or a bare list
    of drums.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file contains no drums
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Kit file not found: {path}")

    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        data = {"drums": data}
    drums = [drum_from_dict(d) for d in data.get("drums", [])]
    if not drums:
        raise ValueError(f"No drums found in kit: {path}")

    active = data.get("active_drum_id")
    if active is not None and active not in {d.id for d in drums}:
        active = None
    return Kit(drums=drums, active_drum_id=active)


def save_kit(kit: Kit, path: str | Path) -> None:
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "drums": [drum_to_dict(d) for d in kit.drums],
        "active_drum_id": kit.active_drum_id,
    }
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
