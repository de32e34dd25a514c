"""Match the faces in a probe photo against a directory of criminal record photos.

Examples:
    python detect_criminal.py probe.jpg --gallery data/uploads
    python detect_criminal.py probe.jpg -g data/uploads -o annotated.jpg -j result.json
    python detect_criminal.py new_photo.jpg --check-quality
"""

from __future__ import annotations

import argparse
import json
import sys
import time

from pathlib import Path
from typing import List, Optional

import cv2

from criminal_detector.config import CANONICAL_SIZE, MIN_FACE_SIZE, MIN_NEIGHBORS, SCALE_FACTOR, SIMILARITY_THRESHOLD
from criminal_detector.face.canonical import CanonicalConfig
from criminal_detector.face.engine import EngineConfig, FaceMatchEngine
from criminal_detector.face.gallery import DirectoryGallery
from criminal_detector.face.locator import LocatorConfig
from criminal_detector.face.quality import QualityConfig
from criminal_detector.face.scorer import ScorerConfig
from criminal_detector.utils.draw import annotate_matches
from criminal_detector.utils.image import ImageLoadError, load_image
from criminal_detector.utils.log import get_logger
from criminal_detector.utils.serializer import serialize_match_result

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_BAD_INPUT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Classical face matching against a criminal record gallery")
    parser.add_argument("probe", help="Probe image path")
    parser.add_argument("--gallery", "-g", default="data/uploads", help="Directory of record photos (one per record)")
    parser.add_argument("--threshold", "-t", type=float, default=SIMILARITY_THRESHOLD, help="Match threshold (strict >)")
    parser.add_argument("--scale-factor", type=float, default=SCALE_FACTOR, help="Cascade window growth per scale")
    parser.add_argument("--min-neighbors", type=int, default=MIN_NEIGHBORS, help="Cascade neighbor agreement")
    parser.add_argument("--min-face-size", type=int, default=MIN_FACE_SIZE, help="Minimum face side in pixels")
    parser.add_argument("--canonical-size", type=int, default=CANONICAL_SIZE, help="Canonical face side in pixels")
    parser.add_argument("--no-smoothing", action="store_true", help="Skip the bilateral smoothing pass")
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        choices=["auto", "cpu", "gpu"],
        help="Batched scoring device: auto/cpu/gpu (auto uses CUDA when available)",
    )
    parser.add_argument("--output", "-o", default=None, help="Write an annotated copy of the probe here")
    parser.add_argument("--output-json", "-j", default=None, help="Write the match result as JSON here")
    parser.add_argument(
        "--check-quality",
        action="store_true",
        help="Only report which faces in the image pass the enrollment quality gate",
    )
    return parser


def build_engine(args: argparse.Namespace) -> FaceMatchEngine:
    config = EngineConfig(
        threshold=float(args.threshold),
        locator=LocatorConfig(
            scale_factor=float(args.scale_factor),
            min_neighbors=int(args.min_neighbors),
            min_face_size=int(args.min_face_size),
        ),
        canonical=CanonicalConfig(size=int(args.canonical_size), smoothing=not bool(args.no_smoothing)),
        quality=QualityConfig(min_face_size=int(args.min_face_size)),
        scorer=ScorerConfig(device=args.device),
    )
    return FaceMatchEngine(DirectoryGallery(args.gallery), config=config)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    engine = build_engine(args)

    try:
        if args.check_quality:
            accepted = engine.check_enrollable(args.probe)
            for rect, metrics in accepted:
                logger.info(f"acceptable face {rect.as_xyxy()}: {metrics}")
            if not accepted:
                logger.warning("No face passes the quality gate")
            return EXIT_OK

        result = engine.find_matches(args.probe)
    except ImageLoadError as e:
        logger.error(f"Bad input image: {e}")
        return EXIT_BAD_INPUT

    if len(result) == 0:
        logger.info("No match found")
    for rank, m in enumerate(result.matches, start=1):
        logger.info(f"#{rank} {m.record.label} (id={m.record.record_id}) score={m.score:.4f}")

    if args.output or args.output_json:
        image = load_image(args.probe)
        if args.output:
            Path(args.output).parent.mkdir(parents=True, exist_ok=True)
            cv2.imwrite(str(args.output), annotate_matches(image, result))
            logger.info(f"Annotated image saved to: {args.output}")
        if args.output_json:
            payload = serialize_match_result(result, args.probe, image_shape=image.shape[:2])
            Path(args.output_json).parent.mkdir(parents=True, exist_ok=True)
            with open(args.output_json, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            logger.info(f"Result JSON saved to: {args.output_json}")

    return EXIT_OK


if __name__ == "__main__":
    st = time.time()
    code = main()
    logger.info(f"Total time: {time.time() - st:.2f}s")
    sys.exit(code)
