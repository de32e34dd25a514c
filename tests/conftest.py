from __future__ import annotations

from pathlib import Path

import sys

import cv2
import numpy as np
import pytest

# Ensure repo root is on sys.path so tests can import `criminal_detector` and `detect_criminal`.
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))


def _synthetic_face(size: int = 150, seed: int = 0) -> np.ndarray:
    """Face-like grayscale pattern: bright oval, dark eyes/mouth, smooth texture."""
    rng = np.random.default_rng(seed)
    img = np.full((size, size), 60, dtype=np.uint8)

    c = size // 2
    cv2.ellipse(img, (c, c), (int(size * 0.38), int(size * 0.46)), 0, 0, 360, 185, -1)
    eye_y = int(size * 0.40)
    eye_dx = int(size * 0.16) + int(rng.integers(-3, 4))
    eye_r = max(3, int(size * 0.06))
    cv2.circle(img, (c - eye_dx, eye_y), eye_r, 40, -1)
    cv2.circle(img, (c + eye_dx, eye_y), eye_r, 40, -1)
    cv2.line(img, (c, int(size * 0.45)), (c, int(size * 0.6)), 120, max(2, size // 50))
    cv2.ellipse(img, (c, int(size * 0.72)), (int(size * 0.14), int(size * 0.05)), 0, 0, 360, 70, -1)

    noise = rng.normal(0.0, 25.0, size=(size, size)).astype(np.float32)
    noise = cv2.GaussianBlur(noise, (0, 0), sigmaX=size / 30.0)
    img = img.astype(np.float32) + noise * 1.5
    return np.clip(img, 0, 255).astype(np.uint8)


def _embed(face: np.ndarray, canvas_hw=(240, 320), offset=(100, 60), background: int = 90) -> np.ndarray:
    """Place a gray face on a uniform BGR canvas at (x, y) = offset."""
    h, w = canvas_hw
    canvas = np.full((h, w), background, dtype=np.uint8)
    x, y = offset
    fh, fw = face.shape[:2]
    canvas[y : y + fh, x : x + fw] = face
    return cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def make_face():
    return _synthetic_face


@pytest.fixture
def embed_face():
    return _embed
