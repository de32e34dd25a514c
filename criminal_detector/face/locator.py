from __future__ import annotations

import threading

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from criminal_detector.config import CASCADE_FILE, MIN_FACE_SIZE, MIN_NEIGHBORS, SCALE_FACTOR
from criminal_detector.utils.image import Rectangle, to_gray
from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)

# Process-wide classifier cache: loading the cascade XML is slow and the
# pytest suite builds many engines. One lock per classifier since
# detectMultiScale on a shared CascadeClassifier is not documented as thread-safe.
_CASCADE_CACHE: Dict[str, Tuple[Any, threading.Lock]] = {}
_CASCADE_CACHE_LOCK = threading.Lock()


def default_cascade_path() -> str:
    data = getattr(cv2, "data", None)
    if data is None or not getattr(data, "haarcascades", None):
        raise IOError(f"This OpenCV build ({cv2.__version__}) ships no Haar cascades; install opencv-python<5")
    return str(Path(data.haarcascades) / CASCADE_FILE)


@dataclass
class LocatorConfig:
    # Growth of the search window between scales.
    scale_factor: float = SCALE_FACTOR
    # Overlapping hits required before a region is accepted.
    min_neighbors: int = MIN_NEIGHBORS
    min_face_size: int = MIN_FACE_SIZE
    cascade_path: Optional[str] = None


def _load_cascade(path: str) -> Tuple[Any, threading.Lock]:
    with _CASCADE_CACHE_LOCK:
        cached = _CASCADE_CACHE.get(path)
        if cached is not None:
            return cached
        # OpenCV 5 builds dropped the legacy cascade API.
        cascade_cls = getattr(cv2, "CascadeClassifier", None)
        if cascade_cls is None:
            raise IOError(f"This OpenCV build ({cv2.__version__}) has no CascadeClassifier; install opencv-python<5")
        try:
            classifier = cascade_cls(path)
        except cv2.error as e:
            raise IOError(f"Error loading face detection cascade classifier: {path}") from e
        if classifier.empty():
            raise IOError(f"Error loading face detection cascade classifier: {path}")
        logger.info(f"Loaded Haar cascade: {path}")
        entry = (classifier, threading.Lock())
        _CASCADE_CACHE[path] = entry
        return entry


class FaceLocator:
    """Multi-scale sliding-window face detection (Haar cascade).

    `detector` may be any object with an OpenCV-style
    `detectMultiScale(gray, scaleFactor=..., minNeighbors=..., minSize=...)`;
    by default OpenCV's bundled frontal-face cascade is used.
    """

    def __init__(self, config: LocatorConfig = None, detector: Any = None):
        self.config = config or LocatorConfig()
        if detector is not None:
            self._detector = detector
            self._lock = threading.Lock()
        else:
            path = self.config.cascade_path or default_cascade_path()
            self._detector, self._lock = _load_cascade(path)

    def locate(self, image: np.ndarray) -> List[Rectangle]:
        """Return candidate face boxes; possibly overlapping, possibly empty.

        Raises:
            ValueError: the image is None or empty.
        """
        if image is None or getattr(image, "size", 0) == 0:
            raise ValueError("Cannot locate faces in an empty image")

        gray = to_gray(image)
        m = int(self.config.min_face_size)
        with self._lock:
            found = self._detector.detectMultiScale(
                gray,
                scaleFactor=float(self.config.scale_factor),
                minNeighbors=int(self.config.min_neighbors),
                minSize=(m, m),
            )

        rects: List[Rectangle] = []
        if found is None or len(found) == 0:
            return rects
        for x, y, w, h in np.asarray(found).reshape(-1, 4):
            r = Rectangle(int(x), int(y), int(w), int(h)).clip(gray.shape)
            # The minimum applies to the box that survives clipping.
            if r is None or r.width < m or r.height < m:
                continue
            rects.append(r)
        return rects
