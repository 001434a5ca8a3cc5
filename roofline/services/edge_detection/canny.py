from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import cv2

logger = logging.getLogger(__name__)

STRONG = 255
WEAK = 128


@dataclass
class CannyResult:
    edges: np.ndarray  # uint8, 255 on edge pixels
    low: int
    high: int
    gx: np.ndarray
    gy: np.ndarray

    @property
    def num_edge_pixels(self) -> int:
        return int(np.count_nonzero(self.edges))


def sobel_gradients(gray: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """3x3 Sobel; returns (gx, gy, magnitude). gy is positive when intensity grows downward."""
    src = gray.astype(np.float32)
    gx = cv2.Sobel(src, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(src, cv2.CV_32F, 0, 1, ksize=3)
    return gx, gy, np.hypot(gx, gy)


def direction_bins(gx: np.ndarray, gy: np.ndarray) -> np.ndarray:
    """Quantize gradient direction (mod 180) into 4 bins centred on 0, 45, 90 and 135 degrees."""
    deg = np.degrees(np.arctan2(gy, gx)) % 180.0
    return (np.floor(((deg + 22.5) % 180.0) / 45.0).astype(np.uint8)) % 4


def non_max_suppression(mag: np.ndarray, gx: np.ndarray, gy: np.ndarray) -> np.ndarray:
    h, w = mag.shape
    out = np.zeros_like(mag, dtype=np.float32)
    if h < 3 or w < 3:
        return out
    bins = direction_bins(gx, gy)[1:-1, 1:-1]
    center = mag[1:-1, 1:-1]

    def nb(dy: int, dx: int) -> np.ndarray:
        return mag[1 + dy:h - 1 + dy, 1 + dx:w - 1 + dx]

    # Neighbours along the gradient for each bin (image y grows downward)
    pairs = {
        0: (nb(0, -1), nb(0, 1)),
        1: (nb(-1, -1), nb(1, 1)),
        2: (nb(-1, 0), nb(1, 0)),
        3: (nb(-1, 1), nb(1, -1)),
    }
    keep = np.zeros(center.shape, dtype=bool)
    for b, (n1, n2) in pairs.items():
        sel = bins == b
        keep |= sel & (center >= n1) & (center >= n2)
    keep &= center > 0
    out[1:-1, 1:-1] = np.where(keep, center, 0.0)
    return out


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def auto_thresholds(gray: np.ndarray, sensitivity: float) -> Tuple[int, int]:
    """
    Hysteresis thresholds from the median of every 4th pixel.

    sigma = 0.10 + 0.45 * sensitivity; low/high = (1 -/+ sigma) * median,
    clamped to [0, 255].
    """
    samples = np.sort(gray.ravel()[::4])
    if samples.size == 0:
        return 0, 0
    median = float(samples[samples.size // 2])
    sigma = 0.10 + float(np.clip(sensitivity, 0.0, 1.0)) * 0.45
    low = max(0, _round_half_up((1.0 - sigma) * median))
    high = min(255, _round_half_up((1.0 + sigma) * median))
    return low, high


def double_threshold(nms: np.ndarray, low: float, high: float) -> np.ndarray:
    """Tri-state map: STRONG where >= high, WEAK where >= low, 0 elsewhere."""
    tri = np.zeros(nms.shape, dtype=np.uint8)
    positive = nms > 0
    tri[positive & (nms >= low)] = WEAK
    tri[positive & (nms >= high)] = STRONG
    return tri


def hysteresis(tri: np.ndarray) -> np.ndarray:
    """Keep weak pixels 8-connected to a strong pixel."""
    candidates = (tri > 0).astype(np.uint8)
    if not candidates.any():
        return np.zeros(tri.shape, dtype=np.uint8)
    _, labels = cv2.connectedComponents(candidates, connectivity=8)
    seeded = np.unique(labels[tri == STRONG])
    seeded = seeded[seeded > 0]
    keep = np.isin(labels, seeded) & (candidates > 0)
    return np.where(keep, 255, 0).astype(np.uint8)


def auto_canny(gray: np.ndarray, sensitivity: float) -> CannyResult:
    gx, gy, mag = sobel_gradients(gray)
    nms = non_max_suppression(mag, gx, gy)
    low, high = auto_thresholds(gray, sensitivity)
    edges = hysteresis(double_threshold(nms, low, high))
    return CannyResult(edges=edges, low=low, high=high, gx=gx, gy=gy)


def morph_close(edges: np.ndarray, radius: int) -> np.ndarray:
    """Dilate then erode with a (2r+1) square to bridge small gaps."""
    if radius <= 0:
        return edges.copy()
    kernel = np.ones((2 * radius + 1, 2 * radius + 1), dtype=np.uint8)
    dilated = cv2.dilate(edges, kernel)
    return cv2.erode(dilated, kernel)


__all__ = [
    "STRONG",
    "WEAK",
    "CannyResult",
    "sobel_gradients",
    "direction_bins",
    "non_max_suppression",
    "auto_thresholds",
    "double_threshold",
    "hysteresis",
    "auto_canny",
    "morph_close",
]
