from __future__ import annotations

import base64
import binascii
import io
from typing import Sequence

import numpy as np
import cv2
from PIL import Image

from roofline.models.geometry import LabeledSegment

DEFAULT_MAX_PIXELS = 40_000_000


def decode_image_bytes(data: bytes, max_pixels: int = DEFAULT_MAX_PIXELS) -> np.ndarray:
    """Decode PNG/JPEG/... bytes into an HxWx3 uint8 RGB array."""
    if not data:
        raise ValueError("Empty image payload")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Exception as e:
        raise ValueError(f"Could not decode image: {e}") from e
    if img.size[0] * img.size[1] > max_pixels:
        raise ValueError(f"Image too large: {img.size[0]}x{img.size[1]}")
    if img.mode != "RGB":
        img = img.convert("RGB")
    return np.asarray(img, dtype=np.uint8).copy()


def decode_image_base64(payload: str, max_pixels: int = DEFAULT_MAX_PIXELS) -> np.ndarray:
    """Accepts plain base64 or a ``data:image/...;base64,`` URL."""
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("image_base64 must be valid base64") from e
    return decode_image_bytes(data, max_pixels)


def encode_png_base64(image: np.ndarray) -> str:
    buf = io.BytesIO()
    Image.fromarray(image).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode()


# RGB per line label
LABEL_COLORS = {
    "eave": (0, 200, 255),
    "ridge": (255, 64, 64),
    "valley": (64, 200, 64),
    "rake": (255, 170, 0),
    "rake-left": (255, 170, 0),
    "rake-right": (255, 120, 200),
    "unknown": (160, 160, 160),
}


def render_overlay(image: np.ndarray, segments: Sequence[LabeledSegment], thickness: int = 2) -> np.ndarray:
    """Draw labeled segments on an RGB copy of ``image``."""
    if image.ndim == 2:
        canvas = cv2.cvtColor(image.astype(np.uint8), cv2.COLOR_GRAY2RGB)
    else:
        canvas = np.ascontiguousarray(image[:, :, :3]).astype(np.uint8).copy()
    for s in segments:
        color = LABEL_COLORS.get(s.label, LABEL_COLORS["unknown"])
        p1 = (int(round(s.x1)), int(round(s.y1)))
        p2 = (int(round(s.x2)), int(round(s.y2)))
        cv2.line(canvas, p1, p2, color, thickness, lineType=cv2.LINE_AA)
    return canvas


__all__ = [
    "decode_image_bytes",
    "decode_image_base64",
    "encode_png_base64",
    "render_overlay",
    "LABEL_COLORS",
    "DEFAULT_MAX_PIXELS",
]
