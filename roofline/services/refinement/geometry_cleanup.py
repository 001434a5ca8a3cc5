from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

from roofline.models.geometry import Point, Polyline, RoofGeometry
from .primitives import auto_close, cluster_points, dedupe_consecutive, snap_angles, straighten_runs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupOptions:
    snap_radius: float = 20.0  # px
    straighten: bool = True
    straighten_amount: float = 0.65  # 0 = untouched, 1 = fully on the fit line
    breakpoint_deg: float = 35.0
    snap_angles: bool = True
    auto_close: bool = True
    locked_line_ids: FrozenSet[str] = frozenset()
    dedupe_tolerance: float = 0.5


def strength_to_options(strength: float, locked_line_ids: FrozenSet[str] = frozenset()) -> CleanupOptions:
    """Map a single 0..1 slider to cleanup options."""
    s = max(0.0, min(1.0, float(strength)))
    return CleanupOptions(
        snap_radius=8.0 + s * 40.0,
        straighten=True,
        straighten_amount=0.35 + s * 0.65,
        snap_angles=True,
        auto_close=True,
        locked_line_ids=frozenset(locked_line_ids),
    )


def _snap_endpoints(
    outline: List[Point],
    lines: List[Polyline],
    opts: CleanupOptions,
) -> Tuple[List[Point], List[Polyline]]:
    # Candidates: every outline vertex plus both ends of each unlocked line
    candidates: List[Point] = list(outline)
    owners: List[Tuple[int, int]] = []  # (line index, point index) for line ends
    for li, line in enumerate(lines):
        if line.id in opts.locked_line_ids or len(line.points) < 2:
            continue
        for pi in (0, len(line.points) - 1):
            candidates.append(line.points[pi])
            owners.append((li, pi))
    snapped = cluster_points(candidates, opts.snap_radius)

    new_outline = dedupe_consecutive(snapped[:len(outline)], opts.dedupe_tolerance)
    if len(new_outline) < 3 <= len(outline):
        new_outline = list(outline)
    line_points = [list(line.points) for line in lines]
    for (li, pi), p in zip(owners, snapped[len(outline):]):
        line_points[li][pi] = p
    new_lines = []
    for line, pts in zip(lines, line_points):
        if line.id in opts.locked_line_ids:
            new_lines.append(line)
            continue
        deduped = dedupe_consecutive(pts, opts.dedupe_tolerance)
        if len(deduped) < 2:
            # Both ends fell into one cluster; keep the line as drawn
            new_lines.append(line)
        else:
            new_lines.append(line.with_points(deduped))
    return new_outline, new_lines


def cleanup_geometry(geometry: RoofGeometry, options: Optional[CleanupOptions] = None) -> RoofGeometry:
    """
    General cleanup for hand-drawn outlines and lines.

    Order: straighten lines, snap endpoints, snap line angles, close the
    outline. Locked lines and holes pass through untouched; the input is
    never modified.
    """
    opts = options or CleanupOptions()
    outline = list(geometry.outline)
    lines = list(geometry.lines)
    locked = opts.locked_line_ids

    if opts.straighten:
        lines = [
            line if line.id in locked or len(line.points) < 3
            else line.with_points(straighten_runs(line.points, closed=False,
                                                  breakpoint_deg=opts.breakpoint_deg,
                                                  amount=opts.straighten_amount))
            for line in lines
        ]

    if opts.snap_radius > 0:
        outline, lines = _snap_endpoints(outline, lines, opts)

    if opts.snap_angles:
        lines = [line if line.id in locked or len(line.points) < 2 else line.with_points(snap_angles(line.points))
                 for line in lines]

    closed = geometry.closed
    if opts.auto_close:
        # Snapping may already have merged the ends, so no lower bound
        outline, closed = auto_close(outline, closed, opts.snap_radius, min_gap=None)

    logger.debug(f"Geometry cleanup: outline {len(geometry.outline)} -> {len(outline)} pts, {len(lines)} lines")
    return geometry.with_outline(outline, closed=closed).with_lines(lines)


__all__ = ["CleanupOptions", "strength_to_options", "cleanup_geometry"]
