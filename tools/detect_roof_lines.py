import os
import json
import argparse
import logging
import cv2

from roofline.services.edge_detection import DetectionOptions, EdgeDetectionService
from roofline.services.image_io import render_overlay
from roofline.services.plane_suggestion import suggest_planes


def load_rgb(path: str):
    img = cv2.imread(path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(path)
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


def run(image_path: str, options: DetectionOptions, with_planes: bool = False):
    rgb = load_rgb(image_path)
    result = EdgeDetectionService().detect(rgb, options)
    h, w = rgb.shape[:2]
    out = {
        "image": os.path.basename(image_path),
        "image_size": [w, h],
        "mode": result.mode,
        "sky_score": result.sky_score,
        "sky_boundary_y": result.sky_boundary_y,
        "labels": result.label_counts(),
        "segments": [s.to_dict() for s in result.segments],
    }
    if with_planes:
        out["planes"] = [p.to_dict() for p in suggest_planes(result.segments, w, h)]
    return out, rgb, result


def main():
    ap = argparse.ArgumentParser(description="Detect labeled roof lines in a photo")
    ap.add_argument("image", type=str)
    ap.add_argument("--out", type=str, default=None, help="write JSON here instead of stdout")
    ap.add_argument("--overlay", type=str, default=None, help="write an overlay PNG")
    ap.add_argument("--sensitivity", type=float, default=0.5)
    ap.add_argument("--detail-suppression", type=float, default=0.5)
    ap.add_argument("--roof-region", type=float, default=0.5, help="facade roof-region fraction of height")
    ap.add_argument("--max-width", type=int, default=800)
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument("--facade", action="store_const", const="facade", dest="mode")
    mode.add_argument("--top-down", action="store_const", const="top-down", dest="mode")
    ap.add_argument("--planes", action="store_true", help="also suggest roof planes")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    opts = DetectionOptions(
        sensitivity=args.sensitivity,
        detail_suppression=args.detail_suppression,
        roof_region_fraction=args.roof_region,
        max_process_width=args.max_width,
        mode=args.mode,
    )
    out, rgb, result = run(args.image, opts, with_planes=args.planes)

    if args.overlay:
        os.makedirs(os.path.dirname(os.path.abspath(args.overlay)), exist_ok=True)
        cv2.imwrite(args.overlay, cv2.cvtColor(render_overlay(rgb, result.segments), cv2.COLOR_RGB2BGR))
    text = json.dumps(out, indent=2)
    if args.out:
        with open(args.out, "w") as f:
            f.write(text)
        print(f"Wrote {len(result.segments)} segments to {args.out}")
    else:
        print(text)


if __name__ == "__main__":
    main()
