"""Heuristic accept/reject filter for detected face regions.

Used on the capture/enrollment path (is this region good enough to store or
alert on?), not when scoring a probe against the gallery.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import cv2
import numpy as np

from criminal_detector.config import MIN_FACE_SIZE
from criminal_detector.utils.image import Rectangle, crop, to_gray
from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)


@dataclass
class QualityConfig:
    min_face_size: int = MIN_FACE_SIZE
    # Both w/h and h/w must reach this, rejecting sliver-shaped boxes.
    min_aspect_ratio: float = 0.5
    min_brightness: float = 30.0
    max_brightness: float = 250.0
    # Std-dev of gray intensity.
    min_contrast: float = 20.0
    # Variance of the Laplacian; low values mean blur/defocus.
    min_sharpness: float = 50.0


def compute_sharpness(gray: np.ndarray) -> float:
    """Laplacian variance (higher is sharper)."""
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


class QualityGate:
    def __init__(self, config: QualityConfig = None):
        self.config = config or QualityConfig()

    def evaluate(self, image: np.ndarray, rect: Rectangle) -> Tuple[bool, Dict[str, float]]:
        """Return (acceptable, metrics). Checks short-circuit in order:
        size, aspect ratio, brightness, contrast, sharpness.

        `metrics` holds whatever was measured before the first failing check,
        plus a `reason` entry naming that check when the region is rejected.
        """
        cfg = self.config
        w, h = int(rect.width), int(rect.height)
        metrics: Dict[str, float] = {"width": float(w), "height": float(h)}

        if w < cfg.min_face_size or h < cfg.min_face_size:
            metrics["reason"] = "size"
            return False, metrics

        aspect = min(w / h, h / w)
        metrics["aspect"] = float(aspect)
        if aspect < cfg.min_aspect_ratio:
            metrics["reason"] = "aspect"
            return False, metrics

        region = crop(image, rect)
        if region is None:
            metrics["reason"] = "bounds"
            return False, metrics
        gray = to_gray(region)

        brightness = float(np.mean(gray))
        metrics["brightness"] = brightness
        if not (cfg.min_brightness <= brightness <= cfg.max_brightness):
            metrics["reason"] = "brightness"
            return False, metrics

        contrast = float(np.std(gray))
        metrics["contrast"] = contrast
        if contrast < cfg.min_contrast:
            metrics["reason"] = "contrast"
            return False, metrics

        sharpness = compute_sharpness(gray)
        metrics["sharpness"] = sharpness
        if sharpness < cfg.min_sharpness:
            metrics["reason"] = "sharpness"
            return False, metrics

        return True, metrics

    def is_acceptable(self, image: np.ndarray, rect: Rectangle) -> bool:
        ok, metrics = self.evaluate(image, rect)
        if not ok:
            logger.debug(f"quality gate rejected {rect}: {metrics}")
        return ok
