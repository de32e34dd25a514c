from typing import Dict, List, Optional, Tuple

SCHEMA_VERSION = "v1"


def serialize_rect(rect, image_shape: Optional[Tuple[int, int]] = None) -> Dict:
    """Serialize a Rectangle into JSON-safe form with xyxy bbox and center.

    image_shape: (h, w); when given, normalized coordinates are added.
    """
    x1, y1, x2, y2 = [int(v) for v in rect.as_xyxy()]
    out = {
        "bbox": [x1, y1, x2, y2],
        "center": [int((x1 + x2) / 2), int((y1 + y2) / 2)],
    }
    if image_shape is not None:
        h, w = int(image_shape[0]), int(image_shape[1])
        if h > 0 and w > 0:
            out["bbox_norm"] = [round(x1 / w, 4), round(y1 / h, 4), round(x2 / w, 4), round(y2 / h, 4)]
    return out


def serialize_match_result(
    result, probe_path: str, image_shape: Optional[Tuple[int, int]] = None
) -> Dict:
    """MatchResult -> dict ready for json.dump."""
    matches: List[Dict] = []
    for m in result.matches:
        matches.append(
            {
                "record_id": str(m.record.record_id),
                "name": m.record.name,
                "image_path": str(m.record.image_path),
                "score": round(float(m.score), 6),
                "face": serialize_rect(m.face, image_shape),
            }
        )
    return {
        "schema_version": SCHEMA_VERSION,
        "probe": str(probe_path),
        "faces": [serialize_rect(r, image_shape) for r in result.faces],
        "matches": matches,
    }
