from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
import cv2

logger = logging.getLogger(__name__)

FACADE = "facade"
TOP_DOWN = "top-down"


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Luma-weighted grayscale (0.299R + 0.587G + 0.114B) as float32.

    Accepts HxW, HxWx3 (RGB) or HxWx4 (RGBA, alpha ignored). Always returns a
    new buffer.
    """
    if image.ndim == 2:
        return image.astype(np.float32, copy=True)
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ValueError(f"Unsupported image shape {image.shape}")
    rgb = np.ascontiguousarray(image[:, :, :3]).astype(np.float32)
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)


def resize_to_width(gray: np.ndarray, max_width: int) -> Tuple[np.ndarray, float]:
    """Downscale so width <= max_width. Returns (buffer, scale); never upscales."""
    h, w = gray.shape[:2]
    scale = min(1.0, float(max_width) / float(w)) if w > 0 else 1.0
    if scale >= 1.0:
        return gray.copy(), 1.0
    pw = max(1, int(round(w * scale)))
    ph = max(1, int(round(h * scale)))
    return cv2.resize(gray, (pw, ph), interpolation=cv2.INTER_AREA), scale


def bilateral_smooth(gray: np.ndarray, sigma_color: float, sigma_space: float, diameter: int = 9) -> np.ndarray:
    return cv2.bilateralFilter(gray.astype(np.float32), diameter, float(sigma_color), float(sigma_space))


def equalize_local_contrast(gray: np.ndarray, clip_limit: float, tiles: int = 8) -> np.ndarray:
    """CLAHE over tiles x tiles regions; OpenCV interpolates bilinearly between tile LUTs."""
    u8 = np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    clahe = cv2.createCLAHE(clipLimit=float(clip_limit), tileGridSize=(tiles, tiles))
    return clahe.apply(u8).astype(np.float32)


def median3(gray: np.ndarray) -> np.ndarray:
    return cv2.medianBlur(gray.astype(np.float32), 3)


def preprocess_for_roofs(gray: np.ndarray, detail_suppression: float, facade: bool) -> np.ndarray:
    """
    Texture suppression ahead of edge detection.

    Facade photos carry more clutter (siding, trim, windows) so the
    suppression strength is raised by 0.15 and the bilateral pass runs a
    second time with 70% sigmas.

    Args:
        gray: float32 grayscale buffer
        detail_suppression: strength in [0, 1]
        facade: street-level framing

    Returns:
        new float32 buffer of the same shape
    """
    s = float(np.clip(detail_suppression, 0.0, 1.0))
    if facade:
        s = min(1.0, s + 0.15)
    sigma_color = 30.0 + s * 70.0
    sigma_space = 30.0 + s * 45.0

    out = bilateral_smooth(gray, sigma_color, sigma_space, 9)
    if facade:
        out = bilateral_smooth(out, sigma_color * 0.7, sigma_space * 0.7, 7)
    if s > 0.15:
        out = equalize_local_contrast(out, 1.5 + s * 1.5)
    if s > 0.25:
        out = median3(out)
    return out


def sky_score(gray: np.ndarray) -> float:
    """Bright, low-variance top band scores high; piecewise 1.0 / 0.75 / 0.45 / 0."""
    h = gray.shape[0]
    top_rows = max(2, int(np.floor(h * 0.15)))
    band = gray[:top_rows].astype(np.float64)
    if band.size == 0:
        return 0.0
    mean = float(band.mean())
    std = float(band.std())
    if mean > 150 and std < 35:
        return 1.0
    if mean > 130 and std < 45:
        return 0.75
    if mean > 110 and std < 55:
        return 0.45
    return 0.0


def detect_scene_mode(gray: np.ndarray, max_width: int = 160, threshold: float = 0.55) -> Tuple[str, float]:
    """Classify framing from a small copy: facade when the sky score clears ``threshold``."""
    small, _ = resize_to_width(gray, max_width)
    score = sky_score(small)
    mode = FACADE if score >= threshold else TOP_DOWN
    logger.debug(f"Scene mode {mode} (sky score {score:.2f})")
    return mode, score


__all__ = [
    "FACADE",
    "TOP_DOWN",
    "to_grayscale",
    "resize_to_width",
    "bilateral_smooth",
    "equalize_local_contrast",
    "median3",
    "preprocess_for_roofs",
    "sky_score",
    "detect_scene_mode",
]
