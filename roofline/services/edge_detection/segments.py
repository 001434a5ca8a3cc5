from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import cv2

from roofline.models.geometry import Point, Segment
from .canny import direction_bins

logger = logging.getLogger(__name__)


@dataclass
class ComponentFit:
    cx: float
    cy: float
    theta: float  # principal axis, radians in (-pi/2, pi/2]
    t_min: float
    t_max: float
    residual_rms: float  # RMS perpendicular distance to the axis

    def to_segment(self, id: str) -> Segment:
        ux, uy = math.cos(self.theta), math.sin(self.theta)
        return Segment.from_endpoints(
            id,
            self.cx + ux * self.t_min, self.cy + uy * self.t_min,
            self.cx + ux * self.t_max, self.cy + uy * self.t_max,
        )


def connected_components(edges: np.ndarray, min_pixels: int = 4) -> List[Tuple[np.ndarray, np.ndarray]]:
    """8-connected components of the edge map as (xs, ys) arrays; small ones are dropped."""
    binary = (edges > 0).astype(np.uint8)
    if not binary.any():
        return []
    n, labels = cv2.connectedComponents(binary, connectivity=8)
    ys, xs = np.nonzero(labels)
    lab = labels[ys, xs]
    order = np.argsort(lab, kind="stable")
    ys, xs, lab = ys[order], xs[order], lab[order]
    bounds = np.searchsorted(lab, np.arange(1, n + 1))
    out: List[Tuple[np.ndarray, np.ndarray]] = []
    for k in range(n - 1):
        lo, hi = bounds[k], bounds[k + 1]
        if hi - lo >= min_pixels:
            out.append((xs[lo:hi].astype(np.float64), ys[lo:hi].astype(np.float64)))
    return out


def fit_component(xs: np.ndarray, ys: np.ndarray) -> Optional[ComponentFit]:
    """PCA line fit: theta = 0.5 * atan2(2 Sxy, Sxx - Syy), extent from projections."""
    if len(xs) < 2:
        return None
    cx = float(xs.mean())
    cy = float(ys.mean())
    dx = xs - cx
    dy = ys - cy
    sxx = float((dx * dx).mean())
    syy = float((dy * dy).mean())
    sxy = float((dx * dy).mean())
    theta = 0.5 * math.atan2(2.0 * sxy, sxx - syy)
    ux, uy = math.cos(theta), math.sin(theta)
    t = dx * ux + dy * uy
    perp = -dx * uy + dy * ux
    return ComponentFit(cx=cx, cy=cy, theta=theta, t_min=float(t.min()), t_max=float(t.max()),
                        residual_rms=float(math.sqrt((perp * perp).mean())))


def _split_by_direction(xs: np.ndarray, ys: np.ndarray, bins: np.ndarray, min_pixels: int) -> List[Tuple[np.ndarray, np.ndarray]]:
    # Relabel a bent component per gradient-direction bin so corners separate its sides
    xi = xs.astype(np.int64)
    yi = ys.astype(np.int64)
    x0, y0 = int(xi.min()), int(yi.min())
    h = int(yi.max()) - y0 + 1
    w = int(xi.max()) - x0 + 1
    comp_bins = bins[yi, xi]
    parts: List[Tuple[np.ndarray, np.ndarray]] = []
    for b in range(4):
        sel = comp_bins == b
        if int(sel.sum()) < min_pixels:
            continue
        crop = np.zeros((h, w), dtype=np.uint8)
        crop[yi[sel] - y0, xi[sel] - x0] = 255
        for pxs, pys in connected_components(crop, min_pixels):
            parts.append((pxs + x0, pys + y0))
    return parts


def extract_segments(
    edges: np.ndarray,
    gx: np.ndarray,
    gy: np.ndarray,
    min_length: float,
    min_pixels: int = 4,
    straightness_tolerance_px: float = 1.5,
) -> List[Segment]:
    """
    Group edge pixels into straight segments.

    Components whose PCA fit leaves an RMS perpendicular residual above
    ``straightness_tolerance_px`` are split by gradient direction first.
    Segment ids are positional (``seg-<n>``).
    """
    bins = direction_bins(gx, gy)
    fits: List[ComponentFit] = []
    for xs, ys in connected_components(edges, min_pixels):
        fit = fit_component(xs, ys)
        if fit is None:
            continue
        if fit.residual_rms <= straightness_tolerance_px:
            fits.append(fit)
            continue
        for pxs, pys in _split_by_direction(xs, ys, bins, min_pixels):
            part = fit_component(pxs, pys)
            if part is not None:
                fits.append(part)
    segs = [f.to_segment(f"seg-{i}") for i, f in enumerate(fits)]
    return [s for s in segs if s.length >= min_length]


def merge_segments(segs: Sequence[Segment], angle_tol_deg: float = 10.0, gap_px: float = 15.0, passes: int = 2) -> List[Segment]:
    """Merge near-collinear, nearly touching segments into the first one's axis."""
    out = list(segs)
    for _ in range(passes):
        out = _merge_pass(out, angle_tol_deg, gap_px)
    return out


def _merge_pass(segs: List[Segment], angle_tol_deg: float, gap: float) -> List[Segment]:
    cos_tol = math.cos(math.radians(angle_tol_deg))
    used = [False] * len(segs)
    out: List[Segment] = []
    for i, a in enumerate(segs):
        if used[i]:
            continue
        used[i] = True
        len_a = math.hypot(a.x2 - a.x1, a.y2 - a.y1) or 1.0
        ux, uy = (a.x2 - a.x1) / len_a, (a.y2 - a.y1) / len_a
        acx, acy = a.midpoint
        t_min, t_max = -len_a / 2.0, len_a / 2.0
        for j in range(i + 1, len(segs)):
            if used[j]:
                continue
            b = segs[j]
            dot = abs(math.cos(a.angle) * math.cos(b.angle) + math.sin(a.angle) * math.sin(b.angle))
            if dot < cos_tol:
                continue
            bmx, bmy = b.midpoint
            if abs(-uy * (bmx - acx) + ux * (bmy - acy)) > gap:
                continue
            tb1 = (b.x1 - acx) * ux + (b.y1 - acy) * uy
            tb2 = (b.x2 - acx) * ux + (b.y2 - acy) * uy
            b_min, b_max = min(tb1, tb2), max(tb1, tb2)
            if b_max < t_min - gap or b_min > t_max + gap:
                continue
            t_min = min(t_min, b_min)
            t_max = max(t_max, b_max)
            used[j] = True
        if t_min == -len_a / 2.0 and t_max == len_a / 2.0:
            out.append(a)
        else:
            out.append(a.with_endpoints(acx + ux * t_min, acy + uy * t_min,
                                        acx + ux * t_max, acy + uy * t_max, keep_angle=True))
    return out


def dominant_direction_filter(segs: Sequence[Segment], num_directions: int = 3, tol_deg: float = 10.0,
                              bins: int = 180, nms_radius: int = 15) -> List[Segment]:
    """Keep segments within ``tol_deg`` of one of the strongest length-weighted angle peaks."""
    if not segs or num_directions <= 0:
        return list(segs)

    def bin_of(s: Segment) -> int:
        return min(bins - 1, int(math.floor(s.angle / math.pi * bins)))

    hist = np.zeros(bins, dtype=np.float64)
    for s in segs:
        hist[bin_of(s)] += s.length
    work = hist.copy()
    peaks: List[int] = []
    while len(peaks) < num_directions:
        best = int(np.argmax(work))
        if work[best] < 1:
            break
        peaks.append(best)
        for d in range(-nms_radius, nms_radius + 1):
            work[(best + d) % bins] = 0.0
    tol = int(round(tol_deg / 180.0 * bins))

    def near_peak(b: int) -> bool:
        return any(min(abs(b - p), bins - abs(b - p)) <= tol for p in peaks)

    kept = [s for s in segs if near_peak(bin_of(s))]
    logger.debug(f"Dominant directions {peaks}: {len(segs)} -> {len(kept)} segments")
    return kept


def convex_hull(points: Sequence[Point]) -> List[Point]:
    pts = sorted(set((float(x), float(y)) for x, y in points))
    if len(pts) < 3:
        return pts
    hull = cv2.convexHull(np.array(pts, dtype=np.float32))
    return [(float(x), float(y)) for x, y in hull.reshape(-1, 2)]


__all__ = [
    "ComponentFit",
    "connected_components",
    "fit_component",
    "extract_segments",
    "merge_segments",
    "dominant_direction_filter",
    "convex_hull",
]
