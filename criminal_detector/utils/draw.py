from __future__ import annotations

from functools import lru_cache
from typing import Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from criminal_detector.config import FONT_LIST

MATCH_COLOR = (0, 0, 255)  # BGR red: matched record
FACE_COLOR = (0, 200, 0)  # BGR green: located face without a match


@lru_cache(maxsize=128)
def _load_font(font_path: str, font_size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(font_path, font_size)


@lru_cache(maxsize=64)
def _get_best_font(font_size: int) -> ImageFont.ImageFont:
    """Return a font instance (cached) that can render CJK/Unicode names."""
    for p in FONT_LIST:
        try:
            return _load_font(p, int(font_size))
        except OSError:
            continue
    return ImageFont.load_default()


def draw_texts(
    img: np.ndarray,
    items: Sequence[Tuple[str, Tuple[int, int], int, Tuple[int, int, int]]],
) -> None:
    """Draw unicode texts onto a BGR image with a single PIL round-trip.

    Args:
        img: OpenCV BGR image, modified in-place.
        items: sequence of (text, (x, y), font_size_px, bgr_color)
    """
    if img is None or len(items) == 0:
        return

    try:
        pil_img = Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
        draw = ImageDraw.Draw(pil_img)
        for text, org, font_size, bgr in items:
            font = _get_best_font(int(font_size))
            # PIL uses RGB
            rgb_color = (int(bgr[2]), int(bgr[1]), int(bgr[0]))
            draw.text(tuple(org), str(text), font=font, fill=rgb_color)
        img[:] = cv2.cvtColor(np.array(pil_img), cv2.COLOR_RGB2BGR)
    except (OSError, UnicodeEncodeError, ValueError):
        # Bitmap fallback fonts cannot encode CJK; OpenCV draws what it can.
        for text, org, font_size, bgr in items:
            font_scale = max(0.3, int(font_size) / 24.0)
            cv2.putText(
                img,
                str(text),
                tuple(org),
                cv2.FONT_HERSHEY_SIMPLEX,
                font_scale,
                (int(bgr[0]), int(bgr[1]), int(bgr[2])),
                1,
                cv2.LINE_AA,
            )


def annotate_matches(image: np.ndarray, result, font_size: int = 16) -> np.ndarray:
    """Copy of `image` with every located face boxed and matches labelled.

    `result` is a `MatchResult`; faces that matched a record are drawn red
    with "<label> <score>", the rest green.
    """
    vis = image.copy()
    if vis.ndim == 2:
        vis = cv2.cvtColor(vis, cv2.COLOR_GRAY2BGR)

    matched = {m.face: m for m in result.matches}
    texts = []
    for rect in result.faces:
        x1, y1, x2, y2 = rect.as_xyxy()
        m = matched.get(rect)
        color = MATCH_COLOR if m is not None else FACE_COLOR
        cv2.rectangle(vis, (x1, y1), (x2, y2), color, 2)
        if m is not None:
            ty = max(0, y1 - font_size - 4)
            texts.append((f"{m.record.label} {m.score:.2f}", (x1, ty), font_size, color))

    draw_texts(vis, texts)
    return vis
