from __future__ import annotations

import json

from pathlib import Path

import cv2
import numpy as np
import pytest

import detect_criminal
from criminal_detector.face import engine as engine_module
from criminal_detector.utils.image import Rectangle


class _DummyLocator:
    def __init__(self, config=None):
        self.config = config

    def locate(self, image):
        return [Rectangle(100, 60, 150, 150)]


def _write(path: Path, image: np.ndarray) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    assert cv2.imwrite(str(path), image)
    return path


def test_cli_match_writes_json_and_annotation(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, make_face, embed_face):
    monkeypatch.setattr(engine_module, "FaceLocator", _DummyLocator)
    img = embed_face(make_face(seed=4))
    _write(tmp_path / "gallery" / "张三.png", img)
    _write(tmp_path / "gallery" / "noise.png", np.random.default_rng(1).integers(0, 256, (240, 320, 3), dtype=np.uint8))
    probe = _write(tmp_path / "probe.png", img)
    out_img = tmp_path / "out" / "annotated.jpg"
    out_json = tmp_path / "out" / "result.json"

    code = detect_criminal.main(
        [str(probe), "-g", str(tmp_path / "gallery"), "--device", "cpu", "-o", str(out_img), "-j", str(out_json)]
    )

    assert code == detect_criminal.EXIT_OK
    assert out_img.exists()
    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["probe"] == str(probe)
    assert [m["record_id"] for m in data["matches"]] == ["张三.png"]
    assert data["matches"][0]["name"] == "张三"
    assert data["matches"][0]["score"] > 0.75
    assert data["faces"][0]["bbox"] == [100, 60, 250, 210]


def test_cli_blank_probe_is_success_without_matches(tmp_path: Path):
    (tmp_path / "gallery").mkdir()
    probe = _write(tmp_path / "blank.png", np.full((240, 320, 3), 30, dtype=np.uint8))
    out_json = tmp_path / "result.json"

    code = detect_criminal.main([str(probe), "-g", str(tmp_path / "gallery"), "-j", str(out_json)])

    assert code == detect_criminal.EXIT_OK
    data = json.loads(out_json.read_text(encoding="utf-8"))
    assert data["matches"] == []
    assert data["faces"] == []


def test_cli_bad_probe_is_distinct_failure(tmp_path: Path):
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"not an image")

    code = detect_criminal.main([str(bad), "-g", str(tmp_path)])

    assert code == detect_criminal.EXIT_BAD_INPUT


def test_cli_check_quality(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(engine_module, "FaceLocator", _DummyLocator)
    rng = np.random.default_rng(0)
    img = rng.integers(60, 200, size=(240, 320, 3), dtype=np.uint8)
    probe = _write(tmp_path / "capture.png", img)

    assert detect_criminal.main([str(probe), "--check-quality"]) == detect_criminal.EXIT_OK
    assert detect_criminal.main([str(tmp_path / "missing.png"), "--check-quality"]) == detect_criminal.EXIT_BAD_INPUT


@pytest.mark.parametrize("device", ["auto", "cpu", "gpu"])
def test_cli_device_choice_reaches_scorer(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, device: str):
    monkeypatch.setattr(engine_module, "FaceLocator", _DummyLocator)
    args = detect_criminal.build_parser().parse_args(["probe.png", "-g", str(tmp_path), "--device", device])

    engine = detect_criminal.build_engine(args)

    assert engine.scorer.config.device == device
