"""Face matching building blocks (locator/canonicalizer/scorer/cache/engine).

`FaceMatchEngine` wires them together; the pieces stay importable on their
own so callers and tests can swap the detector or the cache.
"""
from __future__ import annotations

from criminal_detector.face.cache import RepresentationCache
from criminal_detector.face.canonical import CanonicalConfig, CanonicalFace, FaceCanonicalizer
from criminal_detector.face.engine import EngineConfig, FaceMatchEngine, Match, MatchResult
from criminal_detector.face.gallery import DirectoryGallery, GalleryRecord, InMemoryGallery
from criminal_detector.face.locator import FaceLocator, LocatorConfig
from criminal_detector.face.quality import QualityConfig, QualityGate
from criminal_detector.face.scorer import ScorerConfig, SimilarityScorer

__all__ = [
    "CanonicalConfig",
    "CanonicalFace",
    "DirectoryGallery",
    "EngineConfig",
    "FaceCanonicalizer",
    "FaceLocator",
    "FaceMatchEngine",
    "GalleryRecord",
    "InMemoryGallery",
    "LocatorConfig",
    "Match",
    "MatchResult",
    "QualityConfig",
    "QualityGate",
    "RepresentationCache",
    "ScorerConfig",
    "SimilarityScorer",
]
