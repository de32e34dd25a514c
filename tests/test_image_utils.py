from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest

from criminal_detector.utils.image import ImageLoadError, Rectangle, crop, enhance_image, load_image


def test_load_image_round_trip(tmp_path: Path):
    img = np.zeros((20, 30, 3), dtype=np.uint8)
    img[5:10, 5:10] = (10, 200, 30)
    p = tmp_path / "x.png"
    assert cv2.imwrite(str(p), img)
    loaded = load_image(p)
    assert loaded.shape == (20, 30, 3)
    assert np.array_equal(loaded, img)


def test_load_image_errors(tmp_path: Path):
    with pytest.raises(ImageLoadError):
        load_image(tmp_path / "missing.png")
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"\x00\x01garbage")
    with pytest.raises(ImageLoadError):
        load_image(bad)
    # Distinct from generic I/O errors but still a ValueError.
    assert issubclass(ImageLoadError, ValueError)


def test_enhance_keeps_shape_and_input_untouched():
    rng = np.random.default_rng(0)
    img = rng.integers(50, 120, size=(60, 80, 3), dtype=np.uint8)
    before = img.copy()

    out = enhance_image(img, blur_ksize=3)

    assert out.shape == img.shape
    assert out.dtype == np.uint8
    assert np.array_equal(img, before)
    # Luminance equalization widens a compressed intensity range.
    gray_in = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    gray_out = cv2.cvtColor(enhance_image(img, blur_ksize=0), cv2.COLOR_BGR2GRAY)
    assert float(gray_out.std()) > float(gray_in.std())


def test_enhance_grayscale_input():
    img = np.tile(np.arange(50, 110, dtype=np.uint8), (40, 1))
    out = enhance_image(img, blur_ksize=0)
    assert out.shape == img.shape
    assert int(out.max()) == 255


def test_rectangle_clip_and_crop():
    img = np.arange(100, dtype=np.uint8).reshape(10, 10)
    r = Rectangle(8, 8, 5, 5)
    assert r.clip(img.shape) == Rectangle(8, 8, 2, 2)
    assert Rectangle(20, 20, 5, 5).clip(img.shape) is None
    assert crop(img, r).shape == (2, 2)
    assert crop(img, Rectangle(-5, -5, 3, 3)) is None
    assert Rectangle(1, 2, 3, 4).as_xyxy() == (1, 2, 4, 6)
    assert Rectangle(1, 2, 3, 4).area == 12
