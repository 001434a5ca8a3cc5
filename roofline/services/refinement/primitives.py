from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from roofline.models.geometry import Point


def _perp_dist(p: Point, a: Point, b: Point) -> float:
    dx, dy = b[0] - a[0], b[1] - a[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return math.hypot(p[0] - a[0], p[1] - a[1])
    return abs(dy * p[0] - dx * p[1] + b[0] * a[1] - b[1] * a[0]) / length


def rdp_simplify(points: Sequence[Point], epsilon: float) -> List[Point]:
    """
    Ramer-Douglas-Peucker on an open polyline with an explicit range stack.

    Endpoints are always kept; epsilon <= 0 returns the input unchanged.
    """
    pts = [(float(x), float(y)) for x, y in points]
    if epsilon <= 0 or len(pts) < 3:
        return pts
    keep = [False] * len(pts)
    keep[0] = keep[-1] = True
    stack: List[Tuple[int, int]] = [(0, len(pts) - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue
        best_i, best_d = -1, -1.0
        for i in range(start + 1, end):
            d = _perp_dist(pts[i], pts[start], pts[end])
            if d > best_d:
                best_i, best_d = i, d
        if best_d > epsilon:
            keep[best_i] = True
            stack.append((start, best_i))
            stack.append((best_i, end))
    return [p for p, k in zip(pts, keep) if k]


def simplify_closed(points: Sequence[Point], epsilon: float) -> List[Point]:
    """
    RDP on a closed ring, split at two extreme vertices.

    The ring is cut at the vertex farthest from the centroid and the vertex
    farthest from that one, so both anchors are true corners.
    """
    pts = [(float(x), float(y)) for x, y in points]
    n = len(pts)
    if epsilon <= 0 or n < 4:
        return pts
    cx = sum(p[0] for p in pts) / n
    cy = sum(p[1] for p in pts) / n
    i0 = max(range(n), key=lambda i: math.hypot(pts[i][0] - cx, pts[i][1] - cy))
    i1 = max(range(n), key=lambda i: math.hypot(pts[i][0] - pts[i0][0], pts[i][1] - pts[i0][1]))
    if i0 == i1:
        return pts
    a, b = min(i0, i1), max(i0, i1)
    first = rdp_simplify(pts[a:b + 1], epsilon)
    second = rdp_simplify(pts[b:] + pts[:a + 1], epsilon)
    ring = first[:-1] + second[:-1]
    # Restore the caller's starting vertex when it survived
    start = pts[0]
    if start in ring:
        k = ring.index(start)
        ring = ring[k:] + ring[:k]
    return ring


def fit_line_pca(points: Sequence[Point]) -> Optional[Tuple[float, float, float, float]]:
    """Centroid and unit direction (cx, cy, ux, uy) of the principal axis."""
    if len(points) < 2:
        return None
    arr = np.asarray(points, dtype=np.float64)
    cx, cy = (float(v) for v in arr.mean(axis=0))
    d = arr - (cx, cy)
    sxx = float((d[:, 0] * d[:, 0]).mean())
    syy = float((d[:, 1] * d[:, 1]).mean())
    sxy = float((d[:, 0] * d[:, 1]).mean())
    if sxx == 0 and syy == 0:
        return None
    theta = 0.5 * math.atan2(2.0 * sxy, sxx - syy)
    return cx, cy, math.cos(theta), math.sin(theta)


def project_toward_line(p: Point, line: Tuple[float, float, float, float], amount: float) -> Point:
    cx, cy, ux, uy = line
    t = (p[0] - cx) * ux + (p[1] - cy) * uy
    qx, qy = cx + t * ux, cy + t * uy
    return (p[0] + (qx - p[0]) * amount, p[1] + (qy - p[1]) * amount)


def _turn_deg(a: Point, b: Point, c: Point) -> float:
    # Direction change at b, 0..180
    h1 = math.atan2(b[1] - a[1], b[0] - a[0])
    h2 = math.atan2(c[1] - b[1], c[0] - b[0])
    d = abs(math.degrees(h2 - h1)) % 360.0
    return 360.0 - d if d > 180.0 else d


def straighten_runs(points: Sequence[Point], closed: bool, breakpoint_deg: float = 35.0, amount: float = 0.85) -> List[Point]:
    """
    Pull wobbly vertices onto a PCA line per run between breakpoints.

    A breakpoint is a vertex where the path turns by more than
    ``breakpoint_deg``; open polylines also break at both ends. Breakpoints
    never move. A closed ring with fewer than two breakpoints has no run
    with fixed ends and is left alone.
    """
    pts = [(float(x), float(y)) for x, y in points]
    n = len(pts)
    if n < 3 or amount <= 0:
        return pts
    if closed:
        breaks = [i for i in range(n) if _turn_deg(pts[i - 1], pts[i], pts[(i + 1) % n]) > breakpoint_deg]
        if len(breaks) < 2:
            return pts
        runs = [(breaks[k], breaks[(k + 1) % len(breaks)]) for k in range(len(breaks))]
    else:
        breaks = [0] + [i for i in range(1, n - 1) if _turn_deg(pts[i - 1], pts[i], pts[i + 1]) > breakpoint_deg] + [n - 1]
        runs = list(zip(breaks[:-1], breaks[1:]))

    out = list(pts)
    for start, end in runs:
        idx = _run_indices(start, end, n)
        if len(idx) < 3:
            continue
        line = fit_line_pca([pts[i] for i in idx])
        if line is None:
            continue
        for i in idx[1:-1]:
            out[i] = project_toward_line(pts[i], line, amount)
    return out


def _run_indices(start: int, end: int, n: int) -> List[int]:
    if end > start:
        return list(range(start, end + 1))
    # Wraps around a closed ring
    return list(range(start, n)) + list(range(0, end + 1))


def flatten_horizontal(points: Sequence[Point], closed: bool, tol_deg: float = 14.0) -> List[Point]:
    """
    Level near-horizontal edges.

    Consecutive edges within ``tol_deg`` of horizontal form a chain whose
    vertices all move to the chain's mean Y. A level chain stays where it
    is, so a second pass changes nothing.
    """
    pts = [(float(x), float(y)) for x, y in points]
    if len(pts) < 2:
        return pts
    # Levelling a chain can bring a neighbouring edge under tol_deg, so
    # repeat until the set of flat edges stops growing
    flat_count = -1
    while True:
        chains, count = _flat_chains(pts, closed, tol_deg)
        if count == flat_count:
            return pts
        flat_count = count
        out = list(pts)
        for chain in chains:
            if len({pts[i][1] for i in chain}) == 1:
                continue
            mean_y = sum(pts[i][1] for i in chain) / len(chain)
            for i in chain:
                out[i] = (out[i][0], mean_y)
        pts = out


def _flat_chains(pts: List[Point], closed: bool, tol_deg: float) -> Tuple[List[List[int]], int]:
    n = len(pts)
    edge_count = n if closed and n >= 3 else n - 1

    def is_flat(i: int) -> bool:
        a, b = pts[i], pts[(i + 1) % n]
        dx, dy = abs(b[0] - a[0]), abs(b[1] - a[1])
        if dx == 0 and dy == 0:
            return False
        return math.degrees(math.atan2(dy, dx)) <= tol_deg

    flags = [is_flat(i) for i in range(edge_count)]
    if not any(flags):
        return [], 0

    chains: List[List[int]] = []
    if closed and n >= 3 and all(flags):
        chains = [list(range(n))]
    else:
        start = 0
        if closed and n >= 3:
            # Begin right after a non-flat edge so no chain straddles the seam
            start = next(i for i in range(edge_count) if not flags[i]) + 1
        current: List[int] = []
        for k in range(edge_count):
            i = (start + k) % edge_count
            if flags[i]:
                if not current:
                    current = [i]
                current.append((i + 1) % n)
            elif current:
                chains.append(current)
                current = []
        if current:
            chains.append(current)
    return chains, sum(flags)


def merge_peaks(points: Sequence[Point], proximity_px: float, passes: int = 3) -> List[Point]:
    """Merge local Y-minima within ``proximity_px`` horizontally, keeping the higher one."""
    pts = [(float(x), float(y)) for x, y in points]
    for _ in range(passes):
        n = len(pts)
        if n <= 3:
            break
        peaks = [i for i in range(n) if pts[i][1] < pts[i - 1][1] and pts[i][1] < pts[(i + 1) % n][1]]
        drop = set()
        for a_i, a in enumerate(peaks):
            for b in peaks[a_i + 1:]:
                if a in drop or b in drop:
                    continue
                if abs(pts[a][0] - pts[b][0]) < proximity_px:
                    drop.add(b if pts[b][1] >= pts[a][1] else a)
        if not drop or n - len(drop) < 3:
            break
        pts = [p for i, p in enumerate(pts) if i not in drop]
    return pts


class _UnionFind:
    def __init__(self, n: int) -> None:
        self.parent = list(range(n))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self.parent[rb] = ra


def cluster_points(points: Sequence[Point], radius: float) -> List[Point]:
    """
    Union points within ``radius`` and move each to its cluster centroid.

    Candidate pairs come from a grid of ``radius``-sized cells; the
    clustering is the same as an all-pairs scan.
    """
    pts = [(float(x), float(y)) for x, y in points]
    if radius <= 0 or len(pts) < 2:
        return pts
    uf = _UnionFind(len(pts))
    grid: Dict[Tuple[int, int], List[int]] = defaultdict(list)
    for i, (x, y) in enumerate(pts):
        grid[(int(math.floor(x / radius)), int(math.floor(y / radius)))].append(i)
    for (gx, gy), members in grid.items():
        for ox in (-1, 0, 1):
            for oy in (-1, 0, 1):
                for j in grid.get((gx + ox, gy + oy), ()):
                    for i in members:
                        if i < j and math.hypot(pts[i][0] - pts[j][0], pts[i][1] - pts[j][1]) <= radius:
                            uf.union(i, j)
    roots = [uf.find(i) for i in range(len(pts))]
    sums: Dict[int, List[float]] = defaultdict(lambda: [0.0, 0.0, 0.0])
    for root, (x, y) in zip(roots, pts):
        acc = sums[root]
        acc[0] += x
        acc[1] += y
        acc[2] += 1
    centroids = {root: (acc[0] / acc[2], acc[1] / acc[2]) for root, acc in sums.items()}
    return [centroids[root] for root in roots]


def dedupe_consecutive(points: Sequence[Point], tol: float = 0.5) -> List[Point]:
    out: List[Point] = []
    for p in points:
        if out and math.hypot(p[0] - out[-1][0], p[1] - out[-1][1]) <= tol:
            continue
        out.append((float(p[0]), float(p[1])))
    return out


def snap_angles(points: Sequence[Point], directions: int = 8) -> List[Point]:
    """Rotate each segment onto the nearest canonical direction, anchored at its first point."""
    pts = [(float(x), float(y)) for x, y in points]
    if len(pts) < 2:
        return pts
    step = 2.0 * math.pi / directions
    out = [pts[0]]
    for i in range(1, len(pts)):
        ax, ay = out[-1]
        dx, dy = pts[i][0] - ax, pts[i][1] - ay
        length = math.hypot(dx, dy)
        if length < 1:
            out.append(pts[i])
            continue
        ang = round(math.atan2(dy, dx) / step) * step
        out.append((ax + math.cos(ang) * length, ay + math.sin(ang) * length))
    return out


def auto_close(points: Sequence[Point], closed: bool, max_gap: float,
               min_gap: Optional[float] = 0.5) -> Tuple[List[Point], bool]:
    """
    Close an open shape whose ends nearly meet.

    With the end more than ``min_gap`` and less than ``max_gap`` from the
    start the terminal point is dropped and the shape marked closed.
    ``min_gap=None`` removes the lower bound, for callers whose ends were
    already snapped together.
    """
    pts = [(float(x), float(y)) for x, y in points]
    if closed or len(pts) < 3:
        return pts, closed
    d = math.hypot(pts[-1][0] - pts[0][0], pts[-1][1] - pts[0][1])
    if (min_gap is None or d > min_gap) and d < max_gap and len(pts) - 1 >= 3:
        return pts[:-1], True
    return pts, False


__all__ = [
    "rdp_simplify",
    "simplify_closed",
    "fit_line_pca",
    "project_toward_line",
    "straighten_runs",
    "flatten_horizontal",
    "merge_peaks",
    "cluster_points",
    "dedupe_consecutive",
    "snap_angles",
    "auto_close",
]
