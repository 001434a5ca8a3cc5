from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from roofline.models.geometry import ORIGIN_REMOTE, RIDGE, VALLEY, LabeledSegment, Point, Segment

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_KIND_TO_LABEL = {"RIDGE": RIDGE, "VALLEY": VALLEY}


class SuggestionError(RuntimeError):
    """Remote suggestion service failed or returned an unusable payload."""


@dataclass
class OutlineSuggestion:
    points: List[Point]  # normalized 0..1, origin top-left
    confidence: float


@dataclass
class LineSuggestion:
    kind: str  # RIDGE|VALLEY
    points: List[Point]  # exactly two, normalized
    confidence: float


def _extract_json(text: str) -> Dict[str, Any]:
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise SuggestionError("No JSON found in suggestion response")
    try:
        return json.loads(match.group(0))
    except ValueError as e:
        raise SuggestionError(f"Invalid JSON in suggestion response: {e}") from e


def _norm_point(p: Any) -> Optional[Point]:
    try:
        x, y = float(p["x"]), float(p["y"])
    except (KeyError, TypeError, ValueError):
        return None
    return (min(1.0, max(0.0, x)), min(1.0, max(0.0, y)))


def parse_outline_payload(data: Dict[str, Any]) -> OutlineSuggestion:
    raw = data.get("outline") or data.get("polygon") or []
    points = [p for p in (_norm_point(q) for q in raw) if p is not None]
    if len(points) < 3:
        raise SuggestionError("Outline suggestion has fewer than 3 valid points")
    return OutlineSuggestion(points=points, confidence=float(data.get("confidence", 0.0) or 0.0))


def parse_line_payload(data: Dict[str, Any]) -> List[LineSuggestion]:
    out: List[LineSuggestion] = []
    for item in data.get("suggestions") or []:
        kind = str(item.get("kind", "")).upper()
        if kind not in _KIND_TO_LABEL:
            continue
        points = [p for p in (_norm_point(q) for q in item.get("points") or []) if p is not None]
        if len(points) != 2:
            continue
        out.append(LineSuggestion(kind=kind, points=points, confidence=float(item.get("confidence", 0.0) or 0.0)))
    return out


def denormalize_points(points: Sequence[Point], img_w: float, img_h: float) -> List[Point]:
    return [(x * img_w, y * img_h) for x, y in points]


def normalize_points(points: Sequence[Point], img_w: float, img_h: float) -> List[Point]:
    return [(x / img_w, y / img_h) for x, y in points]


def lines_to_segments(suggestions: Sequence[LineSuggestion], img_w: float, img_h: float) -> List[LabeledSegment]:
    segs: List[LabeledSegment] = []
    for i, s in enumerate(suggestions):
        (x1, y1), (x2, y2) = denormalize_points(s.points, img_w, img_h)
        seg = Segment.from_endpoints(f"remote-{i}", x1, y1, x2, y2)
        segs.append(LabeledSegment.from_segment(seg, _KIND_TO_LABEL[s.kind], s.confidence, origin=ORIGIN_REMOTE))
    return segs


class RemoteSuggestionClient:
    """
    Client for an external outline / line suggestion service.

    The service receives a base64 image (plus the normalized outline for
    line labeling) and answers ``{"outline": [{x, y}...], "confidence"}``
    or ``{"suggestions": [{kind, points, confidence}]}`` with 0-1
    coordinates, either as the JSON body or wrapped in a ``text`` field.
    """

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None,
                 model: Optional[str] = None, timeout_s: Optional[float] = None):
        self.api_url = api_url if api_url is not None else os.getenv("SUGGEST_API_URL", "")
        self.api_key = api_key if api_key is not None else os.getenv("SUGGEST_API_KEY", "")
        self.model = model if model is not None else os.getenv("SUGGEST_MODEL", "")
        self.timeout_s = timeout_s if timeout_s is not None else float(os.getenv("SUGGEST_TIMEOUT_S", "30"))

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    def _post(self, task: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.enabled:
            raise SuggestionError("Remote suggestion service is not configured")
        headers = {"Content-Type": "application/json", "User-Agent": "roofline/1.0"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"task": task, **body}
        if self.model:
            payload["model"] = self.model
        try:
            r = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout_s)
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as e:
            logger.warning(f"Suggestion request failed ({task}): {e}")
            raise SuggestionError(f"Suggestion request failed: {e}") from e
        except ValueError as e:
            raise SuggestionError("Suggestion response is not JSON") from e
        if isinstance(data, dict) and isinstance(data.get("text"), str):
            return _extract_json(data["text"])
        if not isinstance(data, dict):
            raise SuggestionError("Suggestion response is not a JSON object")
        return data

    def suggest_outline(self, image_base64: str, mime_type: str = "image/jpeg") -> OutlineSuggestion:
        data = self._post("roof-outline", {"image": {"media_type": mime_type, "data": image_base64}})
        return parse_outline_payload(data)

    def suggest_lines(self, image_base64: str, outline: Sequence[Point], mime_type: str = "image/jpeg") -> List[LineSuggestion]:
        body = {
            "image": {"media_type": mime_type, "data": image_base64},
            "outline": [{"x": x, "y": y} for x, y in outline],
        }
        return parse_line_payload(self._post("label-edges", body))


__all__ = [
    "SuggestionError",
    "OutlineSuggestion",
    "LineSuggestion",
    "RemoteSuggestionClient",
    "parse_outline_payload",
    "parse_line_payload",
    "denormalize_points",
    "normalize_points",
    "lines_to_segments",
]
