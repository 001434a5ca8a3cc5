import numpy as np
import pytest

from roofline.models.geometry import EAVE, RAKE, RAKE_LEFT, RAKE_RIGHT, RIDGE, UNKNOWN, LabeledSegment, Segment
from roofline.services.edge_detection.facade import (
    apply_horizon_bias,
    contrast_consistency_filter,
    extend_rake,
    find_sky_boundary_y,
    label_facade_segments,
    orientation_filter,
    select_best_lines,
)


def labeled(id, x1, y1, x2, y2, label=UNKNOWN, confidence=0.5):
    return LabeledSegment.from_segment(Segment.from_endpoints(id, x1, y1, x2, y2), label, confidence)


def test_contrast_filter_keeps_real_boundary():
    gray = np.full((100, 100), 50.0, dtype=np.float32)
    gray[50:] = 200.0
    seg = Segment.from_endpoints("seg-0", 10, 50, 90, 50)
    for threshold in (1.0, 15.3, 50.0):
        assert contrast_consistency_filter([seg], gray, 1.0, threshold) == [seg]


def test_contrast_filter_drops_segment_on_uniform_region():
    gray = np.full((100, 100), 120.0, dtype=np.float32)
    seg = Segment.from_endpoints("seg-0", 10, 50, 90, 50)
    assert contrast_consistency_filter([seg], gray, 1.0, 0.5) == []


def test_contrast_filter_uses_processing_scale():
    gray = np.full((50, 50), 50.0, dtype=np.float32)
    gray[25:] = 200.0
    # Source coordinates are twice the processing resolution
    seg = Segment.from_endpoints("seg-0", 20, 50, 80, 50)
    assert contrast_consistency_filter([seg], gray, 0.5, 50.0) == [seg]


def test_orientation_filter_drops_near_vertical():
    keep = Segment.from_endpoints("a", 0, 0, 50, 50)
    drop = Segment.from_endpoints("b", 10, 0, 12, 80)
    assert orientation_filter([keep, drop], 75.0) == [keep]


def test_sky_boundary_found_at_brightness_step():
    gray = np.full((200, 120), 80.0, dtype=np.float32)
    gray[:60] = 230.0
    y = find_sky_boundary_y(gray, 0.5)
    assert 58 <= y <= 61


def test_extend_rake_reaches_region_edges():
    seg = Segment.from_endpoints("seg-0", 40, 60, 60, 80)
    ext = extend_rake(seg, 200, 20, 150)
    ends = sorted([(ext.x1, ext.y1), (ext.x2, ext.y2)])
    assert ends[0] == pytest.approx((0.0, 20.0), abs=1e-6)
    assert ends[1] == pytest.approx((130.0, 150.0), abs=1e-6)
    assert ext.angle == seg.angle
    assert ext.id == seg.id


def test_extend_rake_ignores_horizontal_lines():
    seg = Segment.from_endpoints("seg-0", 40, 60, 100, 62)
    assert extend_rake(seg, 200, 20, 150) is seg


def test_initial_facade_labels():
    segs = [
        Segment.from_endpoints("ridge", 100, 52, 200, 52),
        Segment.from_endpoints("eave", 0, 145, 300, 145),
        Segment.from_endpoints("side", 10, 130, 70, 70),
        Segment.from_endpoints("center", 130, 130, 170, 90),
        Segment.from_endpoints("post", 150, 60, 150, 140),
    ]
    out = {s.id: s for s in label_facade_segments(segs, 300, 300, 0.5, 50)}
    assert (out["ridge"].label, out["ridge"].confidence) == (RIDGE, 0.70)
    assert (out["eave"].label, out["eave"].confidence) == (EAVE, 0.75)
    assert (out["side"].label, out["side"].confidence) == (RAKE, 0.55)
    assert (out["center"].label, out["center"].confidence) == (RAKE, 0.32)
    assert (out["post"].label, out["post"].confidence) == (UNKNOWN, 0.20)


def test_horizon_bias_boosts_lines_near_anchors():
    near_eave = labeled("a", 0, 150, 100, 150, EAVE, 0.5)
    far = labeled("b", 0, 250, 100, 250, EAVE, 0.5)
    out = apply_horizon_bias([near_eave, far], 300, 0.5, 50)
    assert out[0].confidence == pytest.approx(0.68)
    assert out[1].confidence == pytest.approx(0.5)


def test_select_best_lines_caps_and_relabels():
    segs = [
        labeled("ridge", 50, 52, 250, 52, RIDGE, 0.7),
        labeled("eave", 0, 145, 300, 145, EAVE, 0.75),
        labeled("stub", 100, 100, 120, 100, EAVE, 0.2),
        labeled("left", 0, 140, 90, 50, RAKE, 0.55),
        labeled("left-short", 20, 120, 40, 100, RAKE, 0.32),
        labeled("right", 210, 50, 300, 140, RAKE, 0.55),
    ]
    out = {s.id: s for s in select_best_lines(segs, 300, 300, 50, 0.5, per_direction_cap=1)}
    assert set(out) == {"ridge", "eave", "left", "right"}
    assert out["ridge"].label == RIDGE
    assert out["ridge"].confidence == pytest.approx(0.82)
    assert out["eave"].label == EAVE
    assert out["eave"].confidence == pytest.approx(0.85)
    assert out["left"].label == RAKE_LEFT
    assert out["right"].label == RAKE_RIGHT
    assert out["right"].confidence == pytest.approx(0.63)


def test_select_best_lines_never_exceeds_one():
    segs = [labeled("ridge", 50, 50, 250, 50, RIDGE, 0.97)]
    out = select_best_lines(segs, 300, 300, 50, 0.5)
    assert out[0].confidence == 1.0
