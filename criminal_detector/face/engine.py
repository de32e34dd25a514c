from __future__ import annotations

import time

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from criminal_detector.config import SIMILARITY_THRESHOLD
from criminal_detector.face.cache import RepresentationCache
from criminal_detector.face.canonical import CanonicalConfig, CanonicalFace, FaceCanonicalizer
from criminal_detector.face.gallery import GalleryProvider, GalleryRecord
from criminal_detector.face.locator import FaceLocator, LocatorConfig
from criminal_detector.face.quality import QualityConfig, QualityGate
from criminal_detector.face.scorer import ScorerConfig, SimilarityScorer
from criminal_detector.utils.image import ImageLoadError, Rectangle, enhance_image, load_image
from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)


@dataclass
class EngineConfig:
    # A record is a candidate only if its score is strictly above this.
    threshold: float = SIMILARITY_THRESHOLD
    # Gaussian kernel for the probe/gallery enhancement pass (<=1 disables).
    enhance_blur_ksize: int = 3
    locator: LocatorConfig = field(default_factory=LocatorConfig)
    canonical: CanonicalConfig = field(default_factory=CanonicalConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    scorer: ScorerConfig = field(default_factory=ScorerConfig)


@dataclass
class Match:
    record: GalleryRecord
    score: float
    face: Rectangle


@dataclass
class MatchResult:
    """Matches ranked best-first, plus every face box located in the probe."""

    matches: List[Match] = field(default_factory=list)
    faces: List[Rectangle] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.matches)

    @property
    def records(self) -> List[GalleryRecord]:
        return [m.record for m in self.matches]


class FaceMatchEngine:
    """Answer "which gallery records match the faces in this probe image".

    Pipeline per request: load -> enhance -> locate -> for each face:
    canonicalize, score against every gallery representation, keep the single
    best record above the threshold -> dedupe records across faces (highest
    score wins) -> rank descending, ties in gallery order.

    Gallery representations are memoized in `cache` keyed by resolved image
    path; call `clear_embeddings_cache()` after any gallery change.
    """

    def __init__(
        self,
        gallery: GalleryProvider,
        config: EngineConfig = None,
        locator: Optional[FaceLocator] = None,
        canonicalizer: Optional[FaceCanonicalizer] = None,
        scorer: Optional[SimilarityScorer] = None,
        quality_gate: Optional[QualityGate] = None,
        cache: Optional[RepresentationCache] = None,
    ):
        self.gallery = gallery
        self.config = config or EngineConfig()
        self.locator = locator or FaceLocator(self.config.locator)
        self.canonicalizer = canonicalizer or FaceCanonicalizer(self.config.canonical)
        self.scorer = scorer or SimilarityScorer(self.config.scorer)
        self.quality_gate = quality_gate or QualityGate(self.config.quality)
        self.cache: RepresentationCache[CanonicalFace] = cache if cache is not None else RepresentationCache()
        logger.info(f"FaceMatchEngine initialized (threshold={self.config.threshold})")

    def _enhance(self, image: np.ndarray) -> np.ndarray:
        return enhance_image(image, blur_ksize=int(self.config.enhance_blur_ksize))

    def _compute_representation(self, key) -> Optional[CanonicalFace]:
        path = Path(key)
        try:
            image = load_image(path)
        except ImageLoadError as e:
            logger.warning(f"Error loading criminal image: {e}")
            return None

        enhanced = self._enhance(image)
        try:
            faces = self.locator.locate(enhanced)
        except ValueError as e:
            logger.warning(f"Face location failed for {path}: {e}")
            return None
        if not faces:
            logger.warning(f"No face detected in criminal image: {path}")
            return None

        # Reference photos hold one person; the first box is used.
        rep = self.canonicalizer.canonicalize(enhanced, faces[0])
        if rep is None:
            logger.warning(f"Could not canonicalize face in criminal image: {path}")
        else:
            logger.info(f"Computed representation for {path.name}")
        return rep

    def representation_for(self, record: GalleryRecord) -> Optional[CanonicalFace]:
        key = str(self.gallery.resolve_image_path(record))
        return self.cache.get_or_compute(key, self._compute_representation)

    def _gallery_representations(self, records: List[GalleryRecord]) -> List[Tuple[int, GalleryRecord, CanonicalFace]]:
        out: List[Tuple[int, GalleryRecord, CanonicalFace]] = []
        for idx, record in enumerate(records):
            rep = self.representation_for(record)
            if rep is not None:
                out.append((idx, record, rep))
        return out

    def _best_for_face(
        self, probe_face: CanonicalFace, reps: List[Tuple[int, GalleryRecord, CanonicalFace]]
    ) -> Optional[Tuple[int, GalleryRecord, float]]:
        if not reps:
            return None
        scores = self.scorer.score_many(probe_face, [rep for _, _, rep in reps])
        threshold = float(self.config.threshold)
        best: Optional[Tuple[int, GalleryRecord, float]] = None
        for (idx, record, _), s in zip(reps, scores):
            s = float(s)
            # Strict comparisons keep the earliest record on ties.
            if s > threshold and (best is None or s > best[2]):
                best = (idx, record, s)
        return best

    def find_matches(self, probe_image_path) -> MatchResult:
        """Match every face in the probe against the gallery.

        Raises:
            ImageLoadError: the probe image cannot be read or decoded.
        """
        st = time.time()
        logger.info(f"Starting face detection for image: {probe_image_path}")

        image = load_image(probe_image_path)
        records = list(self.gallery.list_all())
        logger.info(f"Total criminals in gallery: {len(records)}")

        enhanced = self._enhance(image)
        faces = self.locator.locate(enhanced)
        if not faces:
            logger.warning("No faces detected in the image")
            return MatchResult(matches=[], faces=[])
        logger.info(f"Located {len(faces)} face(s)")

        if not records:
            return MatchResult(matches=[], faces=faces)

        reps = self._gallery_representations(records)

        # record_id -> (gallery index, Match)
        best_by_id: Dict[str, Tuple[int, Match]] = {}
        for rect in faces:
            probe_face = self.canonicalizer.canonicalize(enhanced, rect)
            if probe_face is None:
                continue
            best = self._best_for_face(probe_face, reps)
            if best is None:
                continue
            idx, record, s = best
            prev = best_by_id.get(record.record_id)
            if prev is None or s > prev[1].score:
                best_by_id[record.record_id] = (idx, Match(record=record, score=s, face=rect))

        ranked = sorted(best_by_id.values(), key=lambda item: (-item[1].score, item[0]))
        matches = [m for _, m in ranked]

        for m in matches:
            logger.info(f"Matched {m.record.label} (id={m.record.record_id}, score={m.score:.4f})")
        logger.info(f"Detection finished: {len(matches)} match(es) in {time.time() - st:.2f}s")
        return MatchResult(matches=matches, faces=faces)

    def detect_criminal(self, probe_image_path) -> List[GalleryRecord]:
        """Matched records, best first. Raises ImageLoadError on a bad probe."""
        return self.find_matches(probe_image_path).records

    def clear_embeddings_cache(self) -> None:
        self.cache.invalidate()

    def check_enrollable(self, image_path) -> List[Tuple[Rectangle, Dict[str, float]]]:
        """Faces in an image that pass the quality gate, with their metrics.

        Location runs on the enhanced image; quality is measured on the
        original pixels.
        """
        image = load_image(image_path)
        faces = self.locator.locate(self._enhance(image))
        accepted: List[Tuple[Rectangle, Dict[str, float]]] = []
        for rect in faces:
            ok, metrics = self.quality_gate.evaluate(image, rect)
            if ok:
                accepted.append((rect, metrics))
            else:
                logger.info(f"Rejected face {rect.as_xyxy()}: {metrics.get('reason')}")
        logger.info(f"{len(accepted)}/{len(faces)} face(s) acceptable in {image_path}")
        return accepted
