from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Union

import cv2
import numpy as np
import torch

from criminal_detector.face.canonical import CanonicalFace
from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)

FaceLike = Union[CanonicalFace, np.ndarray]

# Below this std-dev a face is treated as flat: zero-mean correlation is undefined
# there. Two flat faces of the same level correlate perfectly, otherwise not at all.
_FLAT_EPS = 1e-6
_FLAT_LEVEL_EPS = 1e-3


@dataclass
class ScorerConfig:
    dynamic_range: float = 255.0
    k1: float = 0.01
    k2: float = 0.03
    # "auto" uses torch/CUDA for batched scoring when a GPU is present.
    # "gpu" does the same but warns when CUDA is missing.
    device: str = "auto"

    @property
    def c1(self) -> float:
        return (self.k1 * self.dynamic_range) ** 2

    @property
    def c2(self) -> float:
        return (self.k2 * self.dynamic_range) ** 2


def _pixels(face: FaceLike) -> np.ndarray:
    if isinstance(face, CanonicalFace):
        return face.pixels
    return np.asarray(face)


class SimilarityScorer:
    """Global SSIM + zero-mean normalized cross-correlation, averaged into [0, 1].

    Both terms are computed over the whole canonical face (a single window,
    a single template position), which makes the score symmetric in its
    arguments. The correlation term is clamped at 0 so anti-correlated faces
    do not pull the average below 0.
    """

    def __init__(self, config: ScorerConfig = None):
        self.config = config or ScorerConfig()

    def ssim(self, a: np.ndarray, b: np.ndarray) -> float:
        x = a.astype(np.float64)
        y = b.astype(np.float64)
        mu1 = float(x.mean())
        mu2 = float(y.mean())
        xc = x - mu1
        yc = y - mu2
        var1 = float(np.mean(xc * xc))
        var2 = float(np.mean(yc * yc))
        cov = float(np.mean(xc * yc))
        c1, c2 = self.config.c1, self.config.c2
        value = ((2 * mu1 * mu2 + c1) * (2 * cov + c2)) / ((mu1 * mu1 + mu2 * mu2 + c1) * (var1 + var2 + c2))
        return max(0.0, min(1.0, value))

    def correlation(self, a: np.ndarray, b: np.ndarray) -> float:
        fa = a.astype(np.float32)
        fb = b.astype(np.float32)
        flat_a = float(fa.std()) < _FLAT_EPS
        flat_b = float(fb.std()) < _FLAT_EPS
        if flat_a and flat_b:
            same = abs(float(a.mean(dtype=np.float64)) - float(b.mean(dtype=np.float64))) < _FLAT_LEVEL_EPS
            return 1.0 if same else 0.0
        if flat_a or flat_b:
            return 0.0
        result = cv2.matchTemplate(fa, fb, cv2.TM_CCOEFF_NORMED)
        _, max_val, _, _ = cv2.minMaxLoc(result)
        return max(0.0, min(1.0, float(max_val)))

    def score(self, a: FaceLike, b: FaceLike) -> float:
        """Similarity in [0, 1]; 0.0 on any numerical failure.

        When shapes differ, `b` is resized to `a` (lossy).
        """
        try:
            pa = _pixels(a)
            pb = _pixels(b)
            if pa.ndim != 2 or pb.ndim != 2:
                raise ValueError(f"expected single-channel faces, got {pa.shape} and {pb.shape}")
            if pa.shape != pb.shape:
                pb = cv2.resize(pb, (pa.shape[1], pa.shape[0]), interpolation=cv2.INTER_LINEAR)

            value = (self.ssim(pa, pb) + self.correlation(pa, pb)) / 2.0
            if not np.isfinite(value):
                return 0.0
            return max(0.0, min(1.0, float(value)))
        except (cv2.error, ValueError, TypeError, FloatingPointError) as e:
            logger.warning(f"Error calculating similarity: {e}")
            return 0.0

    def _auto_device(self) -> str:
        if self.config.device == "cpu":
            return "cpu"
        try:
            has_cuda = torch.cuda.is_available()
        except Exception:
            has_cuda = False
        if has_cuda:
            return "cuda"
        if self.config.device == "gpu":
            logger.warning("GPU scoring requested but CUDA is not available, using CPU")
        return "cpu"

    def _score_matrix_numpy(self, probe: np.ndarray, stack: np.ndarray) -> np.ndarray:
        p = probe.astype(np.float64).reshape(-1)
        g = stack.astype(np.float64).reshape(stack.shape[0], -1)
        d = float(p.shape[0])

        mu_p = p.mean()
        mu_g = g.mean(axis=1)
        pc = p - mu_p
        gc = g - mu_g[:, None]
        var_p = float(pc @ pc) / d
        var_g = np.einsum("ij,ij->i", gc, gc) / d
        cov = (gc @ pc) / d

        c1, c2 = self.config.c1, self.config.c2
        ssim = ((2 * mu_p * mu_g + c1) * (2 * cov + c2)) / ((mu_p**2 + mu_g**2 + c1) * (var_p + var_g + c2))
        ssim = np.clip(ssim, 0.0, 1.0)

        denom = np.sqrt(var_p * var_g)
        flat_p = np.sqrt(var_p) < _FLAT_EPS
        flat_g = np.sqrt(var_g) < _FLAT_EPS
        flat = flat_g | flat_p
        same_flat = flat_g & flat_p & (np.abs(mu_g - mu_p) < _FLAT_LEVEL_EPS)
        corr = np.where(flat, 0.0, cov / np.where(flat, 1.0, denom))
        corr = np.where(same_flat, 1.0, corr)
        corr = np.clip(corr, 0.0, 1.0)

        out = (ssim + corr) / 2.0
        return np.where(np.isfinite(out), out, 0.0)

    def _score_matrix_torch(self, probe: np.ndarray, stack: np.ndarray, device: str) -> np.ndarray:
        p = torch.from_numpy(probe.astype(np.float64).reshape(-1)).to(device, non_blocking=True)
        g = torch.from_numpy(stack.astype(np.float64).reshape(stack.shape[0], -1)).to(device, non_blocking=True)
        d = float(p.shape[0])

        mu_p = p.mean()
        mu_g = g.mean(dim=1)
        pc = p - mu_p
        gc = g - mu_g[:, None]
        var_p = (pc @ pc) / d
        var_g = (gc * gc).sum(dim=1) / d
        cov = (gc @ pc) / d

        c1, c2 = self.config.c1, self.config.c2
        ssim = ((2 * mu_p * mu_g + c1) * (2 * cov + c2)) / ((mu_p**2 + mu_g**2 + c1) * (var_p + var_g + c2))
        ssim = ssim.clamp(0.0, 1.0)

        std_g = var_g.sqrt()
        flat_g = std_g < _FLAT_EPS
        flat = flat_g | (var_p.sqrt() < _FLAT_EPS)
        same_flat = flat_g & (var_p.sqrt() < _FLAT_EPS) & ((mu_g - mu_p).abs() < _FLAT_LEVEL_EPS)
        denom = torch.where(flat, torch.ones_like(std_g), std_g * var_p.sqrt())
        corr = torch.where(flat, torch.zeros_like(cov), cov / denom)
        corr = torch.where(same_flat, torch.ones_like(corr), corr)
        corr = corr.clamp(0.0, 1.0)

        out = (ssim + corr) / 2.0
        out = torch.nan_to_num(out, nan=0.0, posinf=0.0, neginf=0.0)
        return out.detach().cpu().numpy()

    def score_many(self, face: FaceLike, others: Sequence[FaceLike]) -> np.ndarray:
        """Score `face` against every entry of `others` in one pass.

        Same-shaped entries are scored as a stack (torch/CUDA when available,
        numpy otherwise); differently sized entries and any batch failure go
        through `score` one pair at a time.
        """
        n = len(others)
        scores = np.zeros((n,), dtype=np.float64)
        if n == 0:
            return scores

        probe = _pixels(face)
        same: List[int] = []
        for i, other in enumerate(others):
            if _pixels(other).shape == probe.shape and probe.ndim == 2:
                same.append(i)
            else:
                scores[i] = self.score(face, other)

        if not same:
            return scores

        stack = np.stack([_pixels(others[i]) for i in same], axis=0)
        batch = None
        device = self._auto_device()
        if device == "cuda":
            try:
                batch = self._score_matrix_torch(probe, stack, device)
            except Exception as e:
                logger.warning(f"torch scoring failed, falling back to numpy: {e}")
        if batch is None:
            try:
                batch = self._score_matrix_numpy(probe, stack)
            except (ValueError, FloatingPointError) as e:
                logger.warning(f"batched scoring failed, scoring pairwise: {e}")

        if batch is None:
            for i in same:
                scores[i] = self.score(face, others[i])
        else:
            scores[np.asarray(same, dtype=np.int64)] = batch
        return scores
