from __future__ import annotations

import logging
import math
from typing import List, Sequence

import numpy as np

from roofline.models.geometry import (
    EAVE,
    RAKE,
    RAKE_LEFT,
    RAKE_RIGHT,
    RIDGE,
    UNKNOWN,
    LabeledSegment,
    Segment,
)

logger = logging.getLogger(__name__)


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def find_sky_boundary_y(gray: np.ndarray, roof_region_fraction: float) -> int:
    """
    Row (processing coordinates) with the strongest mean |g[y+1] - g[y-1]|.

    The scan covers rows from 4% of the height up to min(40% of height,
    70% of the roof region).
    """
    ph = gray.shape[0]
    max_row = _round_half_up(min(ph * 0.40, ph * roof_region_fraction * 0.70))
    min_row = max(2, _round_half_up(ph * 0.04))
    max_row = min(max_row, ph - 1)
    if max_row <= min_row:
        return min_row
    g = gray.astype(np.float32)
    strength = np.abs(g[min_row + 1:max_row + 1] - g[min_row - 1:max_row - 1]).mean(axis=1)
    return min_row + int(np.argmax(strength))


def orientation_filter(segs: Sequence[Segment], max_vertical_angle_deg: float = 75.0) -> List[Segment]:
    return [s for s in segs if s.angle_from_horizontal_deg <= max_vertical_angle_deg]


def contrast_consistency_filter(
    segs: Sequence[Segment],
    gray: np.ndarray,
    scale: float,
    threshold: float,
    sample_count: int = 9,
    normal_offset: int = 5,
) -> List[Segment]:
    """
    Drop segments whose mean cross-line contrast is below ``threshold``.

    ``gray`` is the processing-resolution buffer and ``scale`` maps segment
    coordinates into it. Each of ``sample_count`` points along the segment
    compares pixels on both sides at the normal offset and 1.6x of it.
    Very short segments and segments with no in-bounds sample are kept.
    """
    ph, pw = gray.shape
    offsets = (normal_offset, int(normal_offset * 1.6))
    kept: List[Segment] = []
    for seg in segs:
        px1, py1 = seg.x1 * scale, seg.y1 * scale
        ddx, ddy = seg.x2 * scale - px1, seg.y2 * scale - py1
        length = math.hypot(ddx, ddy)
        if length < 4:
            kept.append(seg)
            continue
        nx, ny = -ddy / length, ddx / length
        total = 0.0
        valid = 0
        for i in range(sample_count):
            t = (i + 0.5) / sample_count
            qx, qy = px1 + t * ddx, py1 + t * ddy
            point_total = 0.0
            point_samples = 0
            for off in offsets:
                ax, ay = _round_half_up(qx + nx * off), _round_half_up(qy + ny * off)
                bx, by = _round_half_up(qx - nx * off), _round_half_up(qy - ny * off)
                if not (0 <= ax < pw and 0 <= ay < ph and 0 <= bx < pw and 0 <= by < ph):
                    continue
                point_total += abs(float(gray[ay, ax]) - float(gray[by, bx]))
                point_samples += 1
            if point_samples:
                total += point_total / point_samples
                valid += 1
        if valid == 0 or total / valid >= threshold:
            kept.append(seg)
    return kept


def extend_rake(seg: Segment, img_w: float, top: float, bottom: float) -> Segment:
    """Extend a 15-75 degree segment to the nearest region edge on each side."""
    norm = seg.angle_from_horizontal_deg
    if norm < 15 or norm > 75:
        return seg
    mx, my = seg.midpoint
    dx, dy = seg.direction
    candidates: List[float] = []
    if abs(dx) > 1e-6:
        candidates += [-mx / dx, (img_w - mx) / dx]
    if abs(dy) > 1e-6:
        candidates += [(top - my) / dy, (bottom - my) / dy]
    neg = [t for t in candidates if t < -0.5]
    pos = [t for t in candidates if t > 0.5]
    if not neg or not pos:
        return seg
    t1, t2 = max(neg), min(pos)

    def cx(v: float) -> float:
        return max(0.0, min(img_w, v))

    def cy(v: float) -> float:
        return max(top, min(bottom, v))

    return seg.with_endpoints(cx(mx + t1 * dx), cy(my + t1 * dy), cx(mx + t2 * dx), cy(my + t2 * dy), keep_angle=True)


def extend_rakes(segs: Sequence[Segment], img_w: float, top: float, bottom: float) -> List[Segment]:
    return [extend_rake(s, img_w, top, bottom) for s in segs]


def label_facade_segments(
    segs: Sequence[Segment],
    img_w: float,
    img_h: float,
    roof_region_fraction: float,
    sky_boundary_y: float,
) -> List[LabeledSegment]:
    """Initial labels from position relative to the sky line and the roof-region bottom."""
    roof_bottom = roof_region_fraction * img_h
    out: List[LabeledSegment] = []
    for seg in segs:
        mid_x, mid_y = seg.midpoint
        rel_x = mid_x / img_w
        norm = seg.angle_from_horizontal_deg
        is_horizontal = norm < 22
        is_diagonal = 22 <= norm <= 75
        near_side = rel_x < 0.30 or rel_x > 0.70
        near_sky = abs(mid_y - sky_boundary_y) < img_h * 0.07
        near_eave = abs(mid_y - roof_bottom) < img_h * 0.10

        label, conf = UNKNOWN, 0.20
        if is_horizontal:
            if near_sky:
                label, conf = RIDGE, 0.70
            elif near_eave:
                label, conf = EAVE, 0.75
            elif mid_y < (sky_boundary_y + roof_bottom) / 2:
                label, conf = RIDGE, 0.45
            else:
                label, conf = EAVE, 0.45
        elif is_diagonal:
            label, conf = RAKE, (0.55 if near_side else 0.32)
        out.append(LabeledSegment.from_segment(seg, label, conf))
    return out


def apply_horizon_bias(segs: Sequence[LabeledSegment], img_h: float, roof_region_fraction: float,
                       sky_boundary_y: float) -> List[LabeledSegment]:
    eave_line = roof_region_fraction * img_h
    out = []
    for s in segs:
        mid_y = s.midpoint[1]
        eave_bias = max(0.0, 1 - abs(mid_y - eave_line) / (img_h * 0.12)) * 0.18
        ridge_bias = max(0.0, 1 - abs(mid_y - sky_boundary_y) / (img_h * 0.08)) * 0.14
        out.append(s.boosted(max(eave_bias, ridge_bias)))
    return out


def _is_rake_right(s: Segment) -> bool:
    # Top-to-bottom travel heads right
    x1, y1, x2, y2 = s.x1, s.y1, s.x2, s.y2
    if y1 > y2:
        x1, y1, x2, y2 = x2, y2, x1, y1
    return x2 >= x1


def select_best_lines(
    segs: Sequence[LabeledSegment],
    img_w: float,
    img_h: float,
    sky_boundary_y: float,
    roof_region_fraction: float,
    per_direction_cap: int = 2,
) -> List[LabeledSegment]:
    """
    Directional capping and canonical labels.

    Horizontals (< 25 degrees) keep the top 2*cap and become ridge or eave
    by the nearer anchor; diagonals (25-75) keep the top cap per side and
    become rake-left / rake-right. Ranking is 0.55*confidence +
    0.45*length/img_w.
    """
    roof_bottom = roof_region_fraction * img_h
    horizontal: List[LabeledSegment] = []
    left: List[LabeledSegment] = []
    right: List[LabeledSegment] = []
    for s in segs:
        norm = s.angle_from_horizontal_deg
        if norm < 25:
            horizontal.append(s)
        elif norm <= 75:
            (right if _is_rake_right(s) else left).append(s)

    def score(s: LabeledSegment) -> float:
        return s.confidence * 0.55 + (s.length / img_w) * 0.45

    def pick(arr: List[LabeledSegment], n: int) -> List[LabeledSegment]:
        return sorted(arr, key=score, reverse=True)[:max(0, n)]

    out: List[LabeledSegment] = []
    for s in pick(horizontal, per_direction_cap * 2):
        mid_y = s.midpoint[1]
        if abs(mid_y - sky_boundary_y) <= abs(mid_y - roof_bottom):
            out.append(s.with_label(RIDGE, s.confidence + 0.12))
        else:
            out.append(s.with_label(EAVE, s.confidence + 0.10))
    out += [s.with_label(RAKE_LEFT, s.confidence + 0.08) for s in pick(left, per_direction_cap)]
    out += [s.with_label(RAKE_RIGHT, s.confidence + 0.08) for s in pick(right, per_direction_cap)]
    return out


__all__ = [
    "find_sky_boundary_y",
    "orientation_filter",
    "contrast_consistency_filter",
    "extend_rake",
    "extend_rakes",
    "label_facade_segments",
    "apply_horizon_bias",
    "select_best_lines",
]
