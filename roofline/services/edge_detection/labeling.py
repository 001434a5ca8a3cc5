from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np
import cv2

from roofline.models.geometry import EAVE, RAKE, RIDGE, UNKNOWN, VALLEY, LabeledSegment, Point, Segment
from .segments import convex_hull


def _dist_to_ring(px: float, py: float, ring: Sequence[Point]) -> float:
    if not ring:
        return math.inf
    contour = np.array(ring, dtype=np.float32).reshape(-1, 1, 2)
    return abs(cv2.pointPolygonTest(contour, (float(px), float(py)), True))


def label_top_down(segs: Sequence[Segment], img_w: float, img_h: float) -> List[LabeledSegment]:
    """
    Aerial labeling by position against the hull of all segment endpoints.

    Near-hull or border horizontals are eaves (0.72), long upper horizontals
    ridges (0.50), interior diagonals valleys (0.38), border diagonals and
    verticals rakes (0.42); everything else stays unknown (0.25).
    """
    if not segs:
        return []
    pts: List[Point] = []
    for s in segs:
        pts += [(s.x1, s.y1), (s.x2, s.y2)]
    hull = convex_hull(pts)
    hull_thresh = min(img_w, img_h) * 0.07

    out: List[LabeledSegment] = []
    for seg in segs:
        mid_x, mid_y = seg.midpoint
        rel_x, rel_y = mid_x / img_w, mid_y / img_h
        norm = seg.angle_from_horizontal_deg
        is_horizontal = norm < 22
        is_vertical = norm > 68
        is_diagonal = not is_horizontal and not is_vertical
        near_hull = _dist_to_ring(mid_x, mid_y, hull) < hull_thresh
        near_border = rel_x < 0.12 or rel_x > 0.88 or rel_y < 0.10 or rel_y > 0.90
        is_long = seg.length > img_w * 0.12

        label, conf = UNKNOWN, 0.25
        if is_horizontal and (near_border or near_hull):
            label, conf = EAVE, 0.72
        elif is_horizontal and is_long and rel_y < 0.55:
            label, conf = RIDGE, 0.50
        elif is_diagonal and not near_border and 0.08 < rel_x < 0.92:
            label, conf = VALLEY, 0.38
        elif (is_vertical or is_diagonal) and near_border:
            label, conf = RAKE, 0.42
        out.append(LabeledSegment.from_segment(seg, label, conf))
    return out


__all__ = ["label_top_down"]
