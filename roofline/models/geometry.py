from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

Point = Tuple[float, float]

# Line labels
EAVE = "eave"
RIDGE = "ridge"
VALLEY = "valley"
RAKE = "rake"
RAKE_LEFT = "rake-left"
RAKE_RIGHT = "rake-right"
UNKNOWN = "unknown"

LINE_LABELS: FrozenSet[str] = frozenset({EAVE, RIDGE, VALLEY, RAKE, RAKE_LEFT, RAKE_RIGHT, UNKNOWN})

ORIGIN_AUTO = "auto-detect"
ORIGIN_REMOTE = "remote-suggestion"


@dataclass(frozen=True)
class Segment:
    id: str
    x1: float
    y1: float
    x2: float
    y2: float
    angle: float  # undirected line angle in [0, pi)
    length: float

    @classmethod
    def from_endpoints(cls, id: str, x1: float, y1: float, x2: float, y2: float) -> "Segment":
        angle = math.atan2(y2 - y1, x2 - x1) % math.pi
        return cls(id=id, x1=float(x1), y1=float(y1), x2=float(x2), y2=float(y2),
                   angle=angle, length=math.hypot(x2 - x1, y2 - y1))

    def with_endpoints(self, x1: float, y1: float, x2: float, y2: float, keep_angle: bool = False) -> "Segment":
        """Copy with new endpoints; length is recomputed, angle too unless ``keep_angle``."""
        angle = self.angle if keep_angle else math.atan2(y2 - y1, x2 - x1) % math.pi
        return replace(self, x1=float(x1), y1=float(y1), x2=float(x2), y2=float(y2),
                       angle=angle, length=math.hypot(x2 - x1, y2 - y1))

    def scaled(self, factor: float) -> "Segment":
        return replace(self, x1=self.x1 * factor, y1=self.y1 * factor, x2=self.x2 * factor,
                       y2=self.y2 * factor, length=self.length * factor)

    @property
    def midpoint(self) -> Point:
        return ((self.x1 + self.x2) / 2.0, (self.y1 + self.y2) / 2.0)

    @property
    def direction(self) -> Point:
        return (math.cos(self.angle), math.sin(self.angle))

    @property
    def angle_from_horizontal_deg(self) -> float:
        # 0 = horizontal, 90 = vertical
        deg = math.degrees(self.angle)
        return 180.0 - deg if deg > 90.0 else deg


@dataclass(frozen=True)
class LabeledSegment(Segment):
    label: str = UNKNOWN
    confidence: float = 0.0
    origin: str = ORIGIN_AUTO

    @classmethod
    def from_segment(cls, seg: Segment, label: str, confidence: float, origin: str = ORIGIN_AUTO) -> "LabeledSegment":
        return cls(id=seg.id, x1=seg.x1, y1=seg.y1, x2=seg.x2, y2=seg.y2, angle=seg.angle,
                   length=seg.length, label=label, confidence=_clamp01(confidence), origin=origin)

    def with_label(self, label: str, confidence: Optional[float] = None) -> "LabeledSegment":
        conf = self.confidence if confidence is None else _clamp01(confidence)
        return replace(self, label=label, confidence=conf)

    def with_confidence(self, confidence: float) -> "LabeledSegment":
        return replace(self, confidence=_clamp01(confidence))

    def boosted(self, amount: float) -> "LabeledSegment":
        return self.with_confidence(self.confidence + amount)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "x1": self.x1, "y1": self.y1, "x2": self.x2, "y2": self.y2,
            "angle": self.angle,
            "length": self.length,
            "label": self.label,
            "confidence": self.confidence,
            "origin": self.origin,
        }


@dataclass(frozen=True)
class Polyline:
    id: str
    kind: str
    points: Tuple[Point, ...]

    def with_points(self, points: Sequence[Point]) -> "Polyline":
        return replace(self, points=tuple((float(x), float(y)) for x, y in points))


@dataclass(frozen=True)
class RoofGeometry:
    outline: Tuple[Point, ...] = ()
    closed: bool = False
    holes: Tuple[Tuple[Point, ...], ...] = ()
    lines: Tuple[Polyline, ...] = ()
    extra: Dict = field(default_factory=dict, compare=False)  # passthrough fields from callers

    def with_outline(self, outline: Sequence[Point], closed: Optional[bool] = None) -> "RoofGeometry":
        return replace(self, outline=tuple((float(x), float(y)) for x, y in outline),
                       closed=self.closed if closed is None else closed)

    def with_lines(self, lines: Sequence[Polyline]) -> "RoofGeometry":
        return replace(self, lines=tuple(lines))


def points_from_flat(flat: Sequence[float]) -> List[Point]:
    """[x0, y0, x1, y1, ...] -> [(x0, y0), (x1, y1), ...]; a trailing odd value is ignored."""
    return [(float(flat[i]), float(flat[i + 1])) for i in range(0, len(flat) - 1, 2)]


def points_to_flat(points: Sequence[Point]) -> List[float]:
    out: List[float] = []
    for x, y in points:
        out.extend((float(x), float(y)))
    return out


def _clamp01(v: float) -> float:
    return max(0.0, min(1.0, float(v)))


__all__ = [
    "Point",
    "Segment",
    "LabeledSegment",
    "Polyline",
    "RoofGeometry",
    "points_from_flat",
    "points_to_flat",
    "EAVE", "RIDGE", "VALLEY", "RAKE", "RAKE_LEFT", "RAKE_RIGHT", "UNKNOWN",
    "LINE_LABELS",
    "ORIGIN_AUTO", "ORIGIN_REMOTE",
]
