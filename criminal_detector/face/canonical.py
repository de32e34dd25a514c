from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from criminal_detector.config import CANONICAL_SIZE
from criminal_detector.utils.image import Rectangle, crop, to_gray
from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)


@dataclass
class CanonicalConfig:
    size: int = CANONICAL_SIZE
    interpolation: int = cv2.INTER_AREA
    # Edge-preserving bilateral pass, applied to probe and gallery faces alike.
    smoothing: bool = True
    bilateral_d: int = 9
    bilateral_sigma_color: float = 75.0
    bilateral_sigma_space: float = 75.0


@dataclass(frozen=True, eq=False)
class CanonicalFace:
    """Fixed-size, contrast-normalized single-channel face (read-only uint8)."""

    pixels: np.ndarray

    def __post_init__(self):
        arr = np.ascontiguousarray(self.pixels, dtype=np.uint8)
        if arr.ndim != 2:
            raise ValueError(f"CanonicalFace needs a 2D array, got ndim={arr.ndim}")
        if arr is self.pixels:
            arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def shape(self) -> Tuple[int, int]:
        return int(self.pixels.shape[0]), int(self.pixels.shape[1])


class FaceCanonicalizer:
    def __init__(self, config: CanonicalConfig = None):
        self.config = config or CanonicalConfig()

    def canonicalize(self, image: np.ndarray, rect: Rectangle) -> Optional[CanonicalFace]:
        """crop -> resize -> grayscale -> equalize -> (bilateral). None on failure."""
        cfg = self.config
        try:
            region = crop(image, rect)
            if region is None or region.size == 0:
                return None
            if region.dtype != np.uint8:
                region = np.clip(region, 0, 255).astype(np.uint8)

            size = (int(cfg.size), int(cfg.size))
            resized = cv2.resize(region, size, interpolation=int(cfg.interpolation))
            gray = to_gray(resized)
            gray = cv2.equalizeHist(gray)
            if cfg.smoothing:
                gray = cv2.bilateralFilter(
                    gray,
                    int(cfg.bilateral_d),
                    float(cfg.bilateral_sigma_color),
                    float(cfg.bilateral_sigma_space),
                )
            return CanonicalFace(gray)
        except (cv2.error, ValueError) as e:
            logger.error(f"Error preprocessing face {rect}: {e}")
            return None
