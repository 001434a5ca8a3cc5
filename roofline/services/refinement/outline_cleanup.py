from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import cv2

from roofline.models.geometry import Point
from roofline.services.edge_detection.preprocessing import resize_to_width, to_grayscale
from .primitives import auto_close, flatten_horizontal, merge_peaks, simplify_closed, straighten_runs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutlineCleanupOptions:
    coarse_epsilon_frac: float = 0.013  # of image diagonal
    fine_epsilon_frac: float = 0.008
    process_width: int = 512  # gradient map resolution cap
    snap_to_gradient: bool = True
    adaptive_snap: bool = True
    snap_window_frac: float = 0.06  # of image height, fixed variant
    snap_offsets: Tuple[int, ...] = (-3, -1, 0, 1, 3)
    snap_threshold: float = 11.0
    adaptive_window_frac: float = 0.16
    adaptive_offsets: Tuple[int, ...] = (-4, -2, 0, 2, 4)
    snap_min_gradient: float = 11.0
    snap_gain: float = 1.25  # best row must beat the start row by this factor
    consolidate_peaks: bool = True
    peak_proximity_frac: float = 0.09  # of image width
    peak_passes: int = 3
    breakpoint_deg: float = 35.0
    straighten_blend: float = 0.85
    flatten_tol_deg: float = 14.0
    close_frac: float = 0.05  # of image width
    close_min_gap: float = 0.5  # px


def vertical_gradient_map(image: np.ndarray, process_width: int = 512) -> Tuple[np.ndarray, float]:
    """|Sobel Gy| of a <= process_width copy; returns (map, scale)."""
    gray, scale = resize_to_width(to_grayscale(image), process_width)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    return np.abs(gy), scale


def snap_to_gradient(
    points: Sequence[Point],
    gy: np.ndarray,
    scale: float,
    img_h: float,
    options: OutlineCleanupOptions,
) -> List[Point]:
    """
    Move vertices straight down onto the strongest horizontal edge below them.

    A vertex never moves up; it stays put when the best row in its window is
    its own row or the response is too weak.
    """
    ph, pw = gy.shape
    if options.adaptive_snap:
        window = int(round(img_h * options.adaptive_window_frac * scale))
        offsets = options.adaptive_offsets
    else:
        window = int(round(img_h * options.snap_window_frac * scale))
        offsets = options.snap_offsets

    out: List[Point] = []
    for wx, wy in points:
        px = min(pw - 1, max(0, int(round(wx * scale))))
        py0 = min(ph - 1, max(0, int(round(wy * scale))))
        py1 = min(ph - 1, py0 + window)
        cols = np.clip(np.array(offsets) + px, 0, pw - 1)
        profile = gy[py0:py1 + 1][:, cols].mean(axis=1)
        best = int(np.argmax(profile))
        best_g = float(profile[best])
        if options.adaptive_snap:
            ok = best_g >= options.snap_min_gradient and best_g >= profile[0] * options.snap_gain
        else:
            ok = best_g > options.snap_threshold - 1
        if ok and best > 0:
            out.append((wx, min(img_h, (py0 + best) / scale)))
        else:
            out.append((wx, wy))
    return out


class OutlineCleanupService:
    """
    Refinement for a closed outline produced by an automated tracer.

    Order: coarse simplify, snap to gradient, consolidate peaks and
    straighten, flatten horizontals, fine simplify, close. Each step falls
    back to its input if it would leave fewer than 3 vertices.
    """

    def __init__(self, options: Optional[OutlineCleanupOptions] = None) -> None:
        self.options = options or OutlineCleanupOptions()

    def clean(
        self,
        points: Sequence[Point],
        img_w: float,
        img_h: float,
        image: Optional[np.ndarray] = None,
        options: Optional[OutlineCleanupOptions] = None,
    ) -> List[Point]:
        opts = options or self.options
        raw = [(float(x), float(y)) for x, y in points]
        if len(raw) > 3 and math.hypot(raw[-1][0] - raw[0][0], raw[-1][1] - raw[0][1]) <= opts.close_min_gap:
            # Repeated closing vertex
            raw = raw[:-1]
        if len(raw) < 3:
            return raw
        diag = math.hypot(img_w, img_h)

        cur = _guarded(raw, simplify_closed(raw, diag * opts.coarse_epsilon_frac))

        if image is not None and opts.snap_to_gradient:
            try:
                gy, scale = vertical_gradient_map(image, opts.process_width)
                cur = snap_to_gradient(cur, gy, scale, img_h, opts)
            except Exception as e:
                logger.warning(f"Edge snap skipped: {e}")

        if opts.consolidate_peaks:
            cur = _guarded(cur, merge_peaks(cur, img_w * opts.peak_proximity_frac, opts.peak_passes))
        cur = straighten_runs(cur, closed=True, breakpoint_deg=opts.breakpoint_deg, amount=opts.straighten_blend)
        cur = flatten_horizontal(cur, closed=True, tol_deg=opts.flatten_tol_deg)
        cur = _guarded(cur, simplify_closed(cur, diag * opts.fine_epsilon_frac))
        closed_pts, _ = auto_close(cur, False, img_w * opts.close_frac, opts.close_min_gap)
        cur = _guarded(cur, closed_pts)
        logger.debug(f"Outline cleanup {len(raw)} -> {len(cur)} vertices")
        return cur


def _guarded(before: List[Point], after: List[Point]) -> List[Point]:
    return after if len(after) >= 3 else before


__all__ = ["OutlineCleanupOptions", "OutlineCleanupService", "vertical_gradient_map", "snap_to_gradient"]
