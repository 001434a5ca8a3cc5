from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from roofline.models.geometry import LabeledSegment
from .canny import auto_canny, morph_close
from .facade import (
    apply_horizon_bias,
    contrast_consistency_filter,
    extend_rakes,
    find_sky_boundary_y,
    label_facade_segments,
    orientation_filter,
    select_best_lines,
)
from .labeling import label_top_down
from .preprocessing import FACADE, TOP_DOWN, detect_scene_mode, preprocess_for_roofs, resize_to_width, to_grayscale
from .segments import dominant_direction_filter, extract_segments, merge_segments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionOptions:
    sensitivity: float = 0.5  # 0..1, widens the auto-Canny band
    detail_suppression: float = 0.5  # 0..1, texture smoothing strength
    min_line_fraction: float = 0.06  # of image width
    dominant_only: bool = True  # top-down only
    num_directions: int = 3
    direction_tol_deg: float = 10.0
    max_process_width: int = 800
    roof_region_fraction: float = 0.5  # facade: roof lives in the top fraction of rows
    ignore_vertical: bool = True
    max_vertical_angle_deg: float = 75.0
    sky_boundary_bias: bool = True
    edge_contrast_threshold: float = 0.06  # fraction of 255
    per_direction_cap: int = 2
    mode: Optional[str] = None  # force "facade" | "top-down"; None = classify
    sky_score_threshold: float = 0.55
    mode_sample_width: int = 160
    min_component_pixels: int = 4
    straightness_tolerance_px: float = 1.5
    merge_angle_tol_deg: float = 10.0
    merge_passes: int = 2
    contrast_sample_count: int = 9
    contrast_normal_offset: int = 5


@dataclass
class DetectionResult:
    mode: str  # facade|top-down
    sky_score: Optional[float]  # None when the mode was forced
    sky_boundary_y: float  # source-image pixels
    low_threshold: int
    high_threshold: int
    scale: float  # processing / source
    segments: List[LabeledSegment] = field(default_factory=list)

    def label_counts(self) -> dict:
        return dict(Counter(s.label for s in self.segments))


class EdgeDetectionService:
    """
    Local roof-line detector: preprocessing, auto-Canny, component line
    fitting, merging, then facade or top-down heuristics.

    The caller hands in an already decoded pixel buffer (HxW, HxWx3 RGB or
    HxWx4 RGBA); nothing is decoded or rendered here.
    """

    def __init__(self, default_options: Optional[DetectionOptions] = None) -> None:
        self.default_options = default_options or DetectionOptions()

    def detect(self, image: np.ndarray, options: Optional[DetectionOptions] = None) -> DetectionResult:
        opts = options or self.default_options
        if image is None or image.size == 0 or image.ndim not in (2, 3):
            raise ValueError("image must be a non-empty 2-D or 3-D array")

        gray_full = to_grayscale(image)
        img_h, img_w = gray_full.shape
        gray, scale = resize_to_width(gray_full, opts.max_process_width)
        ph, pw = gray.shape
        w_scale = 1.0 / scale

        if opts.mode in (FACADE, TOP_DOWN):
            mode, score = opts.mode, None
        else:
            mode, score = detect_scene_mode(gray, opts.mode_sample_width, opts.sky_score_threshold)
        facade = mode == FACADE
        logger.debug(f"Edge detection mode={mode} {pw}x{ph} (scale {scale:.3f})")

        pre = preprocess_for_roofs(gray, opts.detail_suppression, facade)

        if facade and opts.sky_boundary_bias:
            sky_y_proc = find_sky_boundary_y(pre, opts.roof_region_fraction)
        else:
            sky_y_proc = int(round(ph * opts.roof_region_fraction * 0.18))
        sky_y = sky_y_proc * w_scale

        canny = auto_canny(pre, opts.sensitivity)
        logger.debug(f"auto-Canny {canny.num_edge_pixels} px, thresholds {canny.low}/{canny.high}")
        edges = morph_close(canny.edges, 1 if opts.detail_suppression < 0.3 else 2)
        if facade:
            edges[int(round(ph * opts.roof_region_fraction)):, :] = 0

        raw = extract_segments(
            edges, canny.gx, canny.gy,
            min_length=opts.min_line_fraction * img_w * scale,
            min_pixels=opts.min_component_pixels,
            straightness_tolerance_px=opts.straightness_tolerance_px,
        )
        segs = [s.scaled(w_scale) for s in raw]
        gap = max(10.0, 0.012 * img_w)
        segs = merge_segments(segs, opts.merge_angle_tol_deg, gap, opts.merge_passes)
        segs = [s for s in segs if s.length >= opts.min_line_fraction * img_w]
        logger.debug(f"{len(raw)} raw segments, {len(segs)} after merge")

        roof_bottom = opts.roof_region_fraction * img_h
        if facade:
            if opts.ignore_vertical:
                segs = orientation_filter(segs, opts.max_vertical_angle_deg)
            if opts.edge_contrast_threshold > 0:
                segs = contrast_consistency_filter(
                    segs, pre, scale, opts.edge_contrast_threshold * 255.0,
                    sample_count=opts.contrast_sample_count,
                    normal_offset=opts.contrast_normal_offset,
                )
            segs = extend_rakes(segs, img_w, min(sky_y, roof_bottom), roof_bottom)
            labeled = label_facade_segments(segs, img_w, img_h, opts.roof_region_fraction, sky_y)
            labeled = apply_horizon_bias(labeled, img_h, opts.roof_region_fraction, sky_y)
            labeled = select_best_lines(labeled, img_w, img_h, sky_y, opts.roof_region_fraction,
                                        opts.per_direction_cap)
        else:
            if opts.dominant_only and opts.num_directions > 0:
                segs = dominant_direction_filter(segs, opts.num_directions, opts.direction_tol_deg)
            labeled = label_top_down(segs, img_w, img_h)

        result = DetectionResult(
            mode=mode,
            sky_score=score,
            sky_boundary_y=sky_y,
            low_threshold=canny.low,
            high_threshold=canny.high,
            scale=scale,
            segments=labeled,
        )
        logger.info(f"Detected {len(labeled)} roof lines ({mode}): {result.label_counts()}")
        return result


__all__ = ["DetectionOptions", "DetectionResult", "EdgeDetectionService"]
