from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np


class ImageLoadError(ValueError):
    """Raised when an image file is missing or cannot be decoded."""


@dataclass(frozen=True)
class Rectangle:
    """Integer (x, y, width, height) box in image pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return int(self.width) * int(self.height)

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.width, self.y + self.height

    def clip(self, image_shape: Tuple[int, ...]) -> Optional["Rectangle"]:
        """Clamp to the image bounds; None if nothing of positive area remains."""
        h, w = int(image_shape[0]), int(image_shape[1])
        x1 = max(0, int(self.x))
        y1 = max(0, int(self.y))
        x2 = min(w, int(self.x) + int(self.width))
        y2 = min(h, int(self.y) + int(self.height))
        if x2 <= x1 or y2 <= y1:
            return None
        return Rectangle(x1, y1, x2 - x1, y2 - y1)


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Read an image as a BGR uint8 array.

    Raises:
        ImageLoadError: the file does not exist or OpenCV cannot decode it.
    """
    fp = Path(path)
    if not fp.is_file():
        raise ImageLoadError(f"Image not found: {fp}")
    image = cv2.imread(str(fp))
    if image is None or image.size == 0:
        raise ImageLoadError(f"Error loading image: {fp}")
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 1:
        return image[:, :, 0]
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def enhance_image(image: np.ndarray, blur_ksize: int = 3) -> np.ndarray:
    """Equalize luminance only (YCrCb) and apply a mild Gaussian blur.

    Returns a new array; the input is left untouched. Grayscale input is
    equalized directly.
    """
    if image.ndim == 2:
        enhanced = cv2.equalizeHist(image)
    else:
        ycrcb = cv2.cvtColor(image, cv2.COLOR_BGR2YCrCb)
        y, cr, cb = cv2.split(ycrcb)
        y = cv2.equalizeHist(y)
        enhanced = cv2.cvtColor(cv2.merge((y, cr, cb)), cv2.COLOR_YCrCb2BGR)

    k = int(blur_ksize)
    if k > 1:
        if k % 2 == 0:
            k += 1
        enhanced = cv2.GaussianBlur(enhanced, (k, k), 0)
    return enhanced


def crop(image: np.ndarray, rect: Rectangle) -> Optional[np.ndarray]:
    """Copy the region under `rect` (clipped to the image); None when degenerate."""
    r = rect.clip(image.shape)
    if r is None:
        return None
    return image[r.y : r.y + r.height, r.x : r.x + r.width].copy()
