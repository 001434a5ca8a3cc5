from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np
import cv2

from roofline.models.geometry import Point, Segment

logger = logging.getLogger(__name__)

PAD_PX = 20.0  # intersections may sit slightly outside the image
VERTEX_MERGE_PX = 6.0
PARALLEL_DOT = 0.985  # |cos| above this (~10 degrees) is treated as parallel
MAX_CYCLE = 6
MAX_START_VERTICES = 60
MAX_CANDIDATES = 200


@dataclass
class PlaneSuggestion:
    id: str
    polygon: List[Point]
    area: float
    edge_coverage: float  # share of segment midpoints inside the polygon
    score: float

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "polygon": [[x, y] for x, y in self.polygon],
            "area": self.area,
            "edge_coverage": self.edge_coverage,
            "score": self.score,
        }


def _intersect(a: Segment, b: Segment) -> Optional[Point]:
    dx1, dy1 = a.x2 - a.x1, a.y2 - a.y1
    dx2, dy2 = b.x2 - b.x1, b.y2 - b.y1
    denom = dx1 * dy2 - dy1 * dx2
    if abs(denom) < 1e-9:
        return None
    t = ((b.x1 - a.x1) * dy2 - (b.y1 - a.y1) * dx2) / denom
    return (a.x1 + t * dx1, a.y1 + t * dy1)


def _contour(poly: Sequence[Point]) -> np.ndarray:
    return np.array(poly, dtype=np.float32).reshape(-1, 1, 2)


def polygon_area(poly: Sequence[Point]) -> float:
    if len(poly) < 3:
        return 0.0
    return float(cv2.contourArea(_contour(poly)))


def is_convex(poly: Sequence[Point]) -> bool:
    if len(poly) < 3:
        return False
    return bool(cv2.isContourConvex(_contour(poly)))


def point_in_polygon(px: float, py: float, poly: Sequence[Point]) -> bool:
    """Inside or on the boundary."""
    if len(poly) < 3:
        return False
    return cv2.pointPolygonTest(_contour(poly), (float(px), float(py)), False) >= 0


def suggest_planes(
    segments: Sequence[Segment],
    img_w: float,
    img_h: float,
    max_planes: int = 8,
    min_area: float = 2000.0,
) -> List[PlaneSuggestion]:
    """
    Suggest roof-plane polygons from cycles in the arrangement of extended segments.

    Every segment is treated as an infinite line; intersections of
    non-parallel pairs become graph vertices, consecutive intersections
    along a segment become edges, and short cycles (3-6 vertices) are
    scored by area, convexity and how many segment midpoints they enclose.
    """
    segs = list(segments)
    if len(segs) < 3:
        return []

    vertices: List[Point] = []
    seg_verts: List[List[Tuple[float, int]]] = [[] for _ in segs]

    def add_vertex(p: Point) -> int:
        for k, (vx, vy) in enumerate(vertices):
            if math.hypot(vx - p[0], vy - p[1]) < VERTEX_MERGE_PX:
                return k
        vertices.append(p)
        return len(vertices) - 1

    for i in range(len(segs)):
        for j in range(i + 1, len(segs)):
            a, b = segs[i], segs[j]
            dot = abs(math.cos(a.angle) * math.cos(b.angle) + math.sin(a.angle) * math.sin(b.angle))
            if dot > PARALLEL_DOT:
                continue
            p = _intersect(a, b)
            if p is None:
                continue
            if p[0] < -PAD_PX or p[0] > img_w + PAD_PX or p[1] < -PAD_PX or p[1] > img_h + PAD_PX:
                continue
            vid = add_vertex(p)
            for k, s in ((i, a), (j, b)):
                t = (p[0] - s.x1) * (s.x2 - s.x1) + (p[1] - s.y1) * (s.y2 - s.y1)
                seg_verts[k].append((t, vid))

    if len(vertices) < 3:
        return []

    adj: Dict[int, List[Tuple[int, int]]] = {}
    for si, verts in enumerate(seg_verts):
        verts.sort()
        for (_, v0), (_, v1) in zip(verts, verts[1:]):
            if v0 == v1:
                continue
            adj.setdefault(v0, []).append((v1, si))
            adj.setdefault(v1, []).append((v0, si))

    candidates: List[List[int]] = []

    def dfs(start: int, cur: int, path: List[int], used: Set[int], last_seg: int) -> None:
        if len(path) >= 3:
            for to, si in adj.get(cur, ()):
                if to == start and si != last_seg and si not in used:
                    candidates.append(list(path))
                    return
        if len(path) >= MAX_CYCLE:
            return
        for to, si in adj.get(cur, ()):
            if to in path or si in used or si == last_seg:
                continue
            path.append(to)
            used.add(si)
            dfs(start, to, path, used, si)
            path.pop()
            used.discard(si)

    for vid in range(min(len(vertices), MAX_START_VERTICES)):
        dfs(vid, vid, [vid], set(), -1)
        if len(candidates) > MAX_CANDIDATES:
            break

    results: List[PlaneSuggestion] = []
    seen: Set[Tuple[int, ...]] = set()
    mids = [s.midpoint for s in segs]
    for vids in candidates:
        key = tuple(sorted(vids))
        if key in seen:
            continue
        poly = [vertices[v] for v in vids]
        area = polygon_area(poly)
        if area < min_area:
            continue
        seen.add(key)
        coverage = sum(1 for mx, my in mids if point_in_polygon(mx, my, poly)) / len(segs)
        area_norm = min(1.0, area / (img_w * img_h * 0.35))
        score = area_norm * 0.5 + (1.0 if is_convex(poly) else 0.6) * 0.3 + coverage * 0.2
        results.append(PlaneSuggestion(id="", polygon=poly, area=area, edge_coverage=coverage, score=score))

    results.sort(key=lambda r: r.score, reverse=True)
    top = results[:max_planes]
    for i, r in enumerate(top):
        r.id = f"plane-{i}"
    logger.debug(f"Plane suggestion: {len(vertices)} vertices, {len(candidates)} cycles, {len(top)} kept")
    return top


__all__ = ["PlaneSuggestion", "suggest_planes", "polygon_area", "is_convex", "point_in_polygon"]
