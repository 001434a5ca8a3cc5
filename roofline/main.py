from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool
from typing import List, Literal, Optional, Tuple
import os

from roofline.middleware.request_id import add_request_id_middleware
from roofline.models.geometry import Polyline, RoofGeometry, Segment
from roofline.settings import get_settings
from roofline.services.edge_detection import DetectionOptions, EdgeDetectionService
from roofline.services.image_io import decode_image_base64, encode_png_base64, render_overlay
from roofline.services.plane_suggestion import suggest_planes
from roofline.services.refinement import (
    CleanupOptions,
    OutlineCleanupOptions,
    OutlineCleanupService,
    cleanup_geometry,
    strength_to_options,
)
from roofline.services.suggestion_client import (
    RemoteSuggestionClient,
    SuggestionError,
    denormalize_points,
    lines_to_segments,
    normalize_points,
)


SETTINGS = get_settings()

app = FastAPI(
    title="Roofline Service",
    description="Roof line detection and outline refinement for roof photographs",
    version="1.0.0"
)

if SETTINGS.enable_request_id_logging:
    add_request_id_middleware(app)

# CORS middleware (configurable via CORS_ALLOW_ORIGINS)
# Accept comma-separated list of origins, e.g.:
#   CORS_ALLOW_ORIGINS=http://localhost:3000,http://127.0.0.1:3000
cors_env = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
if cors_env:
    allow_origins = [o.strip() for o in cors_env.split(",") if o.strip()]
else:
    allow_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services
detector = EdgeDetectionService(DetectionOptions(max_process_width=SETTINGS.max_process_width))
outline_cleaner = OutlineCleanupService(OutlineCleanupOptions(process_width=SETTINGS.outline_process_width))
suggestion_client = RemoteSuggestionClient(
    api_url=SETTINGS.suggest_api_url,
    api_key=SETTINGS.suggest_api_key,
    model=SETTINGS.suggest_model,
    timeout_s=SETTINGS.suggest_timeout_s,
)


def _decode(image_base64: str):
    try:
        return decode_image_base64(image_base64, SETTINGS.max_image_pixels)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "roofline"}


# === Detection ===
class DetectOptionsModel(BaseModel):
    sensitivity: float = Field(0.5, ge=0, le=1)
    detail_suppression: float = Field(0.5, ge=0, le=1)
    min_line_fraction: float = Field(0.06, ge=0, le=1)
    dominant_only: bool = True
    num_directions: int = Field(3, ge=0, le=12)
    direction_tol_deg: float = Field(10, ge=0, le=90)
    max_process_width: Optional[int] = Field(None, ge=64, le=4096)
    roof_region_fraction: float = Field(0.5, gt=0, le=1)
    ignore_vertical: bool = True
    max_vertical_angle_deg: float = Field(75, ge=0, le=90)
    sky_boundary_bias: bool = True
    edge_contrast_threshold: float = Field(0.06, ge=0, le=1)
    per_direction_cap: int = Field(2, ge=0, le=20)
    mode: Optional[Literal["facade", "top-down"]] = None

    def to_options(self) -> DetectionOptions:
        data = self.model_dump()
        if data["max_process_width"] is None:
            data["max_process_width"] = SETTINGS.max_process_width
        return DetectionOptions(**data)


class DetectRequest(BaseModel):
    image_base64: str
    options: DetectOptionsModel = Field(default_factory=DetectOptionsModel)
    include_planes: bool = False
    return_overlay: bool = False


@app.post("/detect")
async def detect(req: DetectRequest):
    """Detect labeled roof lines in a photograph."""
    try:
        image = _decode(req.image_base64)
        result = await run_in_threadpool(detector.detect, image, req.options.to_options())
        h, w = image.shape[:2]
        body = {
            "mode": result.mode,
            "sky_score": result.sky_score,
            "sky_boundary_y": result.sky_boundary_y,
            "thresholds": [result.low_threshold, result.high_threshold],
            "image_size": [w, h],
            "segments": [s.to_dict() for s in result.segments],
        }
        if req.include_planes:
            planes = await run_in_threadpool(suggest_planes, result.segments, w, h)
            body["planes"] = [p.to_dict() for p in planes]
        if req.return_overlay:
            body["overlay"] = encode_png_base64(render_overlay(image, result.segments))
        return body
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Detection failed: {str(e)}")


# === Refinement ===
class OutlineCleanupRequest(BaseModel):
    points: List[Tuple[float, float]]
    image_width: Optional[float] = Field(None, gt=0)
    image_height: Optional[float] = Field(None, gt=0)
    image_base64: Optional[str] = None
    adaptive_snap: bool = True
    consolidate_peaks: bool = True


@app.post("/cleanup/outline")
async def cleanup_outline(req: OutlineCleanupRequest):
    """Refine a closed outline from an automated tracer; the image enables edge snapping."""
    try:
        image = _decode(req.image_base64) if req.image_base64 else None
        if image is not None:
            img_h, img_w = image.shape[:2]
        elif req.image_width and req.image_height:
            img_w, img_h = req.image_width, req.image_height
        else:
            raise HTTPException(status_code=400, detail="Provide image_base64 or image_width/image_height")
        opts = OutlineCleanupOptions(
            process_width=SETTINGS.outline_process_width,
            adaptive_snap=req.adaptive_snap,
            consolidate_peaks=req.consolidate_peaks,
        )
        points = await run_in_threadpool(outline_cleaner.clean, req.points, img_w, img_h, image, opts)
        return {"points": [[x, y] for x, y in points], "closed": len(points) >= 3}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Outline cleanup failed: {str(e)}")


class LineModel(BaseModel):
    id: str
    kind: str = "unknown"
    points: List[Tuple[float, float]] = Field(default_factory=list)


class GeometryCleanupRequest(BaseModel):
    outline: List[Tuple[float, float]] = Field(default_factory=list)
    closed: bool = False
    holes: List[List[Tuple[float, float]]] = Field(default_factory=list)
    lines: List[LineModel] = Field(default_factory=list)
    strength: Optional[float] = Field(None, ge=0, le=1)  # overrides the explicit knobs below
    snap_radius: float = Field(20, ge=0, le=500)
    straighten: bool = True
    straighten_amount: float = Field(0.65, ge=0, le=1)
    snap_angles: bool = True
    auto_close: bool = True
    locked_line_ids: List[str] = Field(default_factory=list)


@app.post("/cleanup/geometry")
async def cleanup_geometry_endpoint(req: GeometryCleanupRequest):
    """Clean hand-drawn outline and lines; locked lines are returned untouched."""
    try:
        locked = frozenset(req.locked_line_ids)
        if req.strength is not None:
            opts = strength_to_options(req.strength, locked)
        else:
            opts = CleanupOptions(
                snap_radius=req.snap_radius,
                straighten=req.straighten,
                straighten_amount=req.straighten_amount,
                snap_angles=req.snap_angles,
                auto_close=req.auto_close,
                locked_line_ids=locked,
            )
        geometry = RoofGeometry(
            outline=tuple(req.outline),
            closed=req.closed,
            holes=tuple(tuple(h) for h in req.holes),
            lines=tuple(Polyline(id=l.id, kind=l.kind, points=tuple(l.points)) for l in req.lines),
        )
        cleaned = cleanup_geometry(geometry, opts)
        return {
            "outline": [[x, y] for x, y in cleaned.outline],
            "closed": cleaned.closed,
            "holes": [[[x, y] for x, y in h] for h in cleaned.holes],
            "lines": [{"id": l.id, "kind": l.kind, "points": [[x, y] for x, y in l.points]} for l in cleaned.lines],
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Geometry cleanup failed: {str(e)}")


# === Suggestions ===
class SegmentModel(BaseModel):
    x1: float
    y1: float
    x2: float
    y2: float
    id: Optional[str] = None


class PlanesRequest(BaseModel):
    segments: List[SegmentModel]
    image_width: float = Field(..., gt=0)
    image_height: float = Field(..., gt=0)
    max_planes: int = Field(8, ge=1, le=50)
    min_area: float = Field(2000, ge=0)


@app.post("/suggest/planes")
async def suggest_planes_endpoint(req: PlanesRequest):
    """Suggest roof-plane polygons from line segments."""
    try:
        segs = [Segment.from_endpoints(s.id or f"seg-{i}", s.x1, s.y1, s.x2, s.y2) for i, s in enumerate(req.segments)]
        planes = await run_in_threadpool(suggest_planes, segs, req.image_width, req.image_height,
                                         req.max_planes, req.min_area)
        return {"planes": [p.to_dict() for p in planes]}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Plane suggestion failed: {str(e)}")


class SuggestOutlineRequest(BaseModel):
    image_base64: str
    mime_type: str = "image/jpeg"


class SuggestLinesRequest(BaseModel):
    image_base64: str
    mime_type: str = "image/jpeg"
    outline: List[Tuple[float, float]]  # image pixels


def _require_suggestions():
    if not suggestion_client.enabled:
        raise HTTPException(status_code=503, detail="Remote suggestion service is not configured")


@app.post("/suggest/outline")
async def suggest_outline(req: SuggestOutlineRequest):
    """Ask the remote service for an outline, then refine it locally against the image."""
    _require_suggestions()
    try:
        image = _decode(req.image_base64)
        h, w = image.shape[:2]
        suggestion = await run_in_threadpool(suggestion_client.suggest_outline, req.image_base64, req.mime_type)
        pixels = denormalize_points(suggestion.points, w, h)
        cleaned = await run_in_threadpool(outline_cleaner.clean, pixels, w, h, image)
        return {
            "points": [[x, y] for x, y in cleaned],
            "raw_points": [[x, y] for x, y in pixels],
            "confidence": suggestion.confidence,
            "origin": "remote-suggestion",
        }
    except HTTPException:
        raise
    except SuggestionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Outline suggestion failed: {str(e)}")


@app.post("/suggest/lines")
async def suggest_lines(req: SuggestLinesRequest):
    """Ask the remote service for ridge/valley lines inside a traced outline."""
    _require_suggestions()
    try:
        image = _decode(req.image_base64)
        h, w = image.shape[:2]
        suggestions = await run_in_threadpool(
            suggestion_client.suggest_lines, req.image_base64, normalize_points(req.outline, w, h), req.mime_type
        )
        return {"segments": [s.to_dict() for s in lines_to_segments(suggestions, w, h)]}
    except HTTPException:
        raise
    except SuggestionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Line suggestion failed: {str(e)}")


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": "Roofline Service",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "detect": "/detect",
            "cleanup_outline": "/cleanup/outline",
            "cleanup_geometry": "/cleanup/geometry",
            "suggest_planes": "/suggest/planes",
            "suggest_outline": "/suggest/outline",
            "suggest_lines": "/suggest/lines",
            "docs": "/docs"
        }
    }
