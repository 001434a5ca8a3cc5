"""
Local roof-line detection.

Turns a decoded roof photograph into labeled, confidence-scored line
segments without any network service:

- preprocessing: grayscale, bilateral smoothing, CLAHE, median
- canny: Sobel, non-maximum suppression, hysteresis, morphological close
- segments: connected components, PCA line fits, merging, dominant directions
- facade / labeling: framing-specific filters and labels

The scene is classified as facade (street level, sky on top) or top-down
(aerial) first; the two framings use different heuristics downstream.
"""

from .pipeline import DetectionOptions, DetectionResult, EdgeDetectionService

__all__ = ["DetectionOptions", "DetectionResult", "EdgeDetectionService"]
