import base64
import io

import numpy as np
import pytest
import cv2
from PIL import Image
from fastapi.testclient import TestClient

import roofline.main as main
from roofline.main import app
from roofline.services.suggestion_client import LineSuggestion, OutlineSuggestion, SuggestionError

client = TestClient(app)


def create_image_b64(img: np.ndarray) -> str:
    buf = io.BytesIO()
    Image.fromarray(img).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode()


def gable_b64() -> str:
    img = np.full((300, 300, 3), 235, dtype=np.uint8)
    img[140:] = 190
    cv2.fillPoly(img, [np.array([[90, 50], [210, 50], [300, 140], [0, 140]], dtype=np.int32)], (60, 60, 60))
    return create_image_b64(img)


def enable_suggestions(monkeypatch):
    monkeypatch.setattr(main.suggestion_client, "api_url", "https://suggest.example/v1")


def test_health_and_root():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "service": "roofline"}
    root = client.get("/").json()
    assert root["endpoints"]["detect"] == "/detect"


def test_request_id_header():
    resp = client.get("/health", headers={"X-Request-Id": "abc123"})
    assert resp.headers.get("X-Request-Id") == "abc123"
    assert client.get("/health").headers.get("X-Request-Id")


def test_detect_gable():
    payload = {
        "image_base64": gable_b64(),
        "options": {"detail_suppression": 0.0},
        "include_planes": True,
        "return_overlay": True,
    }
    resp = client.post("/detect", json=payload)
    assert resp.status_code == 200
    data = resp.json()
    assert data["mode"] == "facade"
    assert data["image_size"] == [300, 300]
    labels = sorted(s["label"] for s in data["segments"])
    assert labels == ["eave", "rake-left", "rake-right", "ridge"]
    assert isinstance(data["planes"], list)
    overlay = Image.open(io.BytesIO(base64.b64decode(data["overlay"])))
    assert overlay.size == (300, 300)


def test_detect_accepts_data_url():
    resp = client.post("/detect", json={"image_base64": "data:image/png;base64," + gable_b64()})
    assert resp.status_code == 200
    assert "overlay" not in resp.json()


def test_detect_rejects_bad_image():
    resp = client.post("/detect", json={"image_base64": "not base64!!"})
    assert resp.status_code == 400
    resp = client.post("/detect", json={"image_base64": base64.b64encode(b"plain text").decode()})
    assert resp.status_code == 400


def test_detect_validates_options():
    resp = client.post("/detect", json={"image_base64": gable_b64(), "options": {"sensitivity": 2}})
    assert resp.status_code == 422


def test_cleanup_outline():
    pts = [[101, 99], [250, 102], [398, 101], [402, 199], [399, 302], [251, 298], [102, 301], [98, 201]]
    resp = client.post("/cleanup/outline", json={"points": pts, "image_width": 500, "image_height": 400})
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["points"]) == 4
    assert data["closed"] is True


def test_cleanup_outline_needs_dimensions():
    resp = client.post("/cleanup/outline", json={"points": [[0, 0], [10, 0], [10, 10]]})
    assert resp.status_code == 400


def test_cleanup_geometry_with_strength_and_locks():
    body = {
        "outline": [[0, 0], [100, 0], [100, 100], [0, 100], [2, 3]],
        "closed": False,
        "holes": [[[40, 40], [60, 40], [60, 60]]],
        "lines": [
            {"id": "l1", "kind": "ridge", "points": [[10, 50], [30, 53], [50, 47]]},
            {"id": "l2", "kind": "valley", "points": [[0, 0], [40, 43]]},
        ],
        "strength": 0.5,
        "locked_line_ids": ["l1"],
    }
    resp = client.post("/cleanup/geometry", json=body)
    assert resp.status_code == 200
    data = resp.json()
    assert data["closed"] is True
    assert len(data["outline"]) == 4
    assert data["holes"] == [[[40.0, 40.0], [60.0, 40.0], [60.0, 60.0]]]
    locked = next(l for l in data["lines"] if l["id"] == "l1")
    assert locked["points"] == [[10, 50], [30, 53], [50, 47]]


def test_suggest_planes():
    segs = [
        {"x1": 10, "y1": 10, "x2": 110, "y2": 10},
        {"x1": 110, "y1": 10, "x2": 110, "y2": 90},
        {"x1": 110, "y1": 90, "x2": 10, "y2": 90},
        {"x1": 10, "y1": 90, "x2": 10, "y2": 10},
    ]
    resp = client.post("/suggest/planes", json={"segments": segs, "image_width": 200, "image_height": 200})
    assert resp.status_code == 200
    planes = resp.json()["planes"]
    assert len(planes) == 1
    assert planes[0]["area"] == 8000


def test_suggest_disabled_returns_503(monkeypatch):
    monkeypatch.setattr(main.suggestion_client, "api_url", "")
    resp = client.post("/suggest/outline", json={"image_base64": gable_b64()})
    assert resp.status_code == 503
    resp = client.post("/suggest/lines", json={"image_base64": gable_b64(), "outline": [[0, 0], [1, 0], [1, 1]]})
    assert resp.status_code == 503


def test_suggest_outline_is_refined(monkeypatch):
    enable_suggestions(monkeypatch)
    raw = [(0.3, 0.166), (0.5, 0.17), (0.7, 0.167), (1.0, 0.466), (0.0, 0.466)]
    monkeypatch.setattr(main.suggestion_client, "suggest_outline",
                        lambda image_base64, mime_type="image/jpeg": OutlineSuggestion(points=list(raw), confidence=0.8))
    resp = client.post("/suggest/outline", json={"image_base64": gable_b64(), "mime_type": "image/png"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["origin"] == "remote-suggestion"
    assert data["confidence"] == 0.8
    assert len(data["raw_points"]) == 5
    assert data["raw_points"][0] == pytest.approx([90.0, 49.8])
    assert 3 <= len(data["points"]) <= 5


def test_suggest_outline_upstream_failure(monkeypatch):
    enable_suggestions(monkeypatch)

    def _fail(image_base64, mime_type="image/jpeg"):
        raise SuggestionError("upstream timed out")

    monkeypatch.setattr(main.suggestion_client, "suggest_outline", _fail)
    resp = client.post("/suggest/outline", json={"image_base64": gable_b64()})
    assert resp.status_code == 502
    assert "upstream timed out" in resp.text


def test_suggest_lines(monkeypatch):
    enable_suggestions(monkeypatch)
    seen = {}

    def _lines(image_base64, outline, mime_type="image/jpeg"):
        seen["outline"] = outline
        return [LineSuggestion(kind="RIDGE", points=[(0.3, 0.1666), (0.7, 0.1666)], confidence=0.9)]

    monkeypatch.setattr(main.suggestion_client, "suggest_lines", _lines)
    body = {"image_base64": gable_b64(), "outline": [[0, 140], [90, 50], [210, 50], [300, 140]]}
    resp = client.post("/suggest/lines", json=body)
    assert resp.status_code == 200
    segs = resp.json()["segments"]
    assert len(segs) == 1
    assert segs[0]["label"] == "ridge"
    assert segs[0]["origin"] == "remote-suggestion"
    assert seen["outline"][1] == (0.3, 50 / 300)
