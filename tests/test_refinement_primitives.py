import math

import pytest

from roofline.services.refinement.primitives import (
    auto_close,
    cluster_points,
    dedupe_consecutive,
    fit_line_pca,
    flatten_horizontal,
    merge_peaks,
    rdp_simplify,
    simplify_closed,
    snap_angles,
    straighten_runs,
)

WOBBLY = [(0, 0), (10, 1), (20, -1), (30, 1.5), (40, -0.5), (50, 0)]


def test_rdp_zero_epsilon_is_identity():
    assert rdp_simplify(WOBBLY, 0) == [(float(x), float(y)) for x, y in WOBBLY]


def test_rdp_never_adds_points_and_keeps_endpoints():
    for eps in (0.5, 1.0, 2.0, 10.0):
        out = rdp_simplify(WOBBLY, eps)
        assert len(out) <= len(WOBBLY)
        assert out[0] == (0.0, 0.0) and out[-1] == (50.0, 0.0)
    assert rdp_simplify(WOBBLY, 10.0) == [(0.0, 0.0), (50.0, 0.0)]


def test_rdp_keeps_real_corner():
    pts = [(0, 0), (25, 0.4), (50, 0), (50, 25), (50, 50)]
    assert rdp_simplify(pts, 2.0) == [(0.0, 0.0), (50.0, 0.0), (50.0, 50.0)]


def test_rdp_handles_long_polylines():
    pts = [(i, math.sin(i / 3.0) * 20) for i in range(20000)]
    out = rdp_simplify(pts, 0.5)
    assert 2 < len(out) < len(pts)


def test_simplify_closed_collapses_noisy_rectangle():
    ring = [(101, 99), (250, 102), (398, 101), (402, 199), (399, 302), (251, 298), (102, 301), (98, 201)]
    out = simplify_closed(ring, 8.0)
    assert out == [(101.0, 99.0), (398.0, 101.0), (399.0, 302.0), (102.0, 301.0)]


def test_fit_line_pca_direction():
    cx, cy, ux, uy = fit_line_pca([(0, 0), (10, 10), (20, 20)])
    assert (cx, cy) == (10, 10)
    assert abs(ux) == pytest.approx(math.sqrt(0.5))
    assert abs(uy) == pytest.approx(math.sqrt(0.5))
    assert fit_line_pca([(3, 3), (3, 3)]) is None


def test_straighten_open_run_keeps_endpoints():
    out = straighten_runs(WOBBLY, closed=False, breakpoint_deg=35, amount=0.85)
    assert out[0] == (0.0, 0.0) and out[-1] == (50.0, 0.0)
    before = max(abs(y) for _, y in WOBBLY[1:-1])
    after = max(abs(y) for _, y in out[1:-1])
    assert after < before * 0.5


def test_straighten_preserves_corners():
    pts = [(0, 0), (20, 1), (40, 0), (40, 20), (41, 40), (40, 60)]
    out = straighten_runs(pts, closed=False)
    assert out[2] == (40.0, 0.0)
    assert out[0] == (0.0, 0.0) and out[-1] == (40.0, 60.0)


def test_flatten_snaps_nearly_level_edges():
    pts = [(0, 0), (100, 3), (100, 60), (0, 60)]
    out = flatten_horizontal(pts, closed=True)
    assert out == [(0.0, 1.5), (100.0, 1.5), (100.0, 60.0), (0.0, 60.0)]
    assert flatten_horizontal(out, closed=True) == out


def test_flatten_levels_larger_tilt_and_is_idempotent():
    once = flatten_horizontal([(0, 0), (100, 20)], closed=False)
    assert once == [(0.0, 10.0), (100.0, 10.0)]
    assert flatten_horizontal(once, closed=False) == once

    ring = [(0, 0), (100, 20), (100, 80), (0, 80)]
    once = flatten_horizontal(ring, closed=True)
    assert once == [(0.0, 10.0), (100.0, 10.0), (100.0, 80.0), (0.0, 80.0)]
    assert flatten_horizontal(once, closed=True) == once


def test_flatten_absorbs_edges_levelled_under_tolerance():
    # Levelling the first edge brings the second one under 14 degrees
    out = flatten_horizontal([(0, 20), (100, 0), (130, 14)], closed=False)
    assert [p[0] for p in out] == [0.0, 100.0, 130.0]
    assert [p[1] for p in out] == pytest.approx([34 / 3] * 3)
    assert len({p[1] for p in out}) == 1
    assert flatten_horizontal(out, closed=False) == out


def test_flatten_leaves_steep_edges():
    pts = [(0, 0), (50, 50), (100, 0)]
    assert flatten_horizontal(pts, closed=False) == [(0.0, 0.0), (50.0, 50.0), (100.0, 0.0)]


def test_merge_peaks_keeps_higher_vertex():
    pts = [(0, 100), (40, 10), (50, 20), (60, 12), (100, 100)]
    assert merge_peaks(pts, 30) == [(0.0, 100.0), (40.0, 10.0), (50.0, 20.0), (100.0, 100.0)]
    assert merge_peaks(pts, 10) == [(float(x), float(y)) for x, y in pts]


def test_cluster_points_moves_to_centroid():
    out = cluster_points([(0, 0), (1, 0), (50, 50)], 2.0)
    assert out == [(0.5, 0.0), (0.5, 0.0), (50.0, 50.0)]


def test_cluster_points_is_transitive():
    out = cluster_points([(0, 0), (1.5, 0), (3, 0)], 2.0)
    assert out == [(1.5, 0.0)] * 3


def test_cluster_points_zero_radius_is_identity():
    pts = [(0, 0), (0.1, 0), (5, 5)]
    assert cluster_points(pts, 0) == [(0.0, 0.0), (0.1, 0.0), (5.0, 5.0)]


def test_dedupe_consecutive():
    pts = [(0, 0), (0.2, 0.2), (10, 0), (10, 0), (0, 0)]
    assert dedupe_consecutive(pts, 0.5) == [(0.0, 0.0), (10.0, 0.0), (0.0, 0.0)]


def test_snap_angles_to_eight_directions():
    out = snap_angles([(0, 0), (10, 1), (10, 11)])
    assert out[0] == (0.0, 0.0)
    assert out[1][0] == pytest.approx(math.hypot(10, 1))
    assert out[1][1] == pytest.approx(0.0, abs=1e-9)
    # Second segment is anchored at the snapped first one
    assert out[2][0] == pytest.approx(out[1][0], abs=1e-9)
    assert out[2][1] == pytest.approx(11.0, abs=0.01)


def test_snap_angles_diagonal():
    out = snap_angles([(0, 0), (10, 9)])
    assert out[1][0] == pytest.approx(out[1][1])


def test_auto_close_near_miss():
    pts = [(0, 0), (100, 0), (100, 100), (0, 100), (1, 2)]
    out, closed = auto_close(pts, False, 5)
    assert closed
    assert out == [(0.0, 0.0), (100.0, 0.0), (100.0, 100.0), (0.0, 100.0)]


def test_auto_close_leaves_open_shapes():
    pts = [(0, 0), (100, 0), (100, 100)]
    out, closed = auto_close(pts, False, 5)
    assert not closed and len(out) == 3
    # Dropping the end would leave fewer than three vertices
    out, closed = auto_close([(0, 0), (10, 0), (2, 0)], False, 5)
    assert not closed and len(out) == 3
    out, closed = auto_close(pts, True, 500)
    assert closed and len(out) == 3


def test_auto_close_ignores_ends_that_already_coincide():
    pts = [(0, 0), (100, 0), (100, 100), (0, 100), (0.2, 0.1)]
    out, closed = auto_close(pts, False, 20)
    assert not closed
    assert out == [(float(x), float(y)) for x, y in pts]
    # Without a lower bound the repeated end is dropped
    out, closed = auto_close(pts, False, 20, min_gap=None)
    assert closed and len(out) == 4


def test_straighten_ring_with_one_corner_is_untouched():
    # Arc vertices turn by 30 degrees, only the tip is a breakpoint
    arc = [(100 * math.cos(math.radians(a)), 100 * math.sin(math.radians(a))) for a in range(-150, 151, 30)]
    ring = arc + [(-200.0, 0.0)]
    assert straighten_runs(ring, closed=True) == ring
