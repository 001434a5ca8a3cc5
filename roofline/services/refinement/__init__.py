"""
Polygon and polyline refinement.

Two pipelines share the primitives in ``primitives``:

- ``OutlineCleanupService``: closed outlines from an automated tracer
  (simplify, gradient snap, straighten, flatten, close)
- ``cleanup_geometry``: hand-drawn outlines and lines from the editor
  (straighten, endpoint snap, angle snap, close), honouring locked lines
"""

from .geometry_cleanup import CleanupOptions, cleanup_geometry, strength_to_options
from .outline_cleanup import OutlineCleanupOptions, OutlineCleanupService

__all__ = [
    "CleanupOptions",
    "cleanup_geometry",
    "strength_to_options",
    "OutlineCleanupOptions",
    "OutlineCleanupService",
]
