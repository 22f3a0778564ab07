"""
Similarity Kernel

Turns the distance between the original instance (row 0 of the recoded
matrix) and each permutation into a weight in (0, 1]:

    w_i = exp(-d_i^2 / kernel_width^2)

The default width is 0.75 * sqrt(F), F being the total number of features
before selection.
"""

import logging
from typing import Optional

import numpy as np
from scipy.spatial.distance import cdist

from local_surrogate.config import SUPPORTED_DISTANCES

logger = logging.getLogger(__name__)

_SCIPY_ALIASES = {"manhattan": "cityblock"}

# Smallest weight handed out, so every permutation keeps a positive weight
MIN_WEIGHT = np.finfo(float).tiny


def default_kernel_width(n_features: int) -> float:
    """0.75 * sqrt(n_features)."""
    if n_features < 1:
        raise ValueError(f"n_features must be positive, got {n_features}")
    return 0.75 * float(np.sqrt(n_features))


def gower_distance(recoded: np.ndarray) -> np.ndarray:
    """
    Gower distance from row 0 to every row.

    Each column contributes its absolute difference scaled by the column's
    range; constant columns contribute nothing. The result is the mean over
    all columns, so it lies in [0, 1].
    """
    recoded = np.asarray(recoded, dtype=float)
    spread = recoded.max(axis=0) - recoded.min(axis=0)
    scale = np.where(spread > 0, spread, 1.0)
    contributions = np.abs(recoded - recoded[0]) / scale
    return contributions.mean(axis=1)


def pairwise_distance(recoded: np.ndarray, metric: str) -> np.ndarray:
    """Distance from row 0 to every row using a scipy metric."""
    recoded = np.asarray(recoded, dtype=float)
    metric = _SCIPY_ALIASES.get(metric, metric)
    with np.errstate(invalid="ignore", divide="ignore"):
        distances = cdist(recoded[:1], recoded, metric=metric)[0]
    if np.isnan(distances).any():
        # Zero vectors under cosine/correlation-type metrics
        distances = np.where(np.isnan(distances), 1.0, distances)
    return distances


class SimilarityKernel:
    """
    Exponential kernel over distances on the recoded permutation matrix.

    Args:
        dist_fun: ``"gower"`` or a scipy pairwise metric name
        kernel_width: Kernel width; None means ``0.75 * sqrt(F)`` at call time
    """

    def __init__(self, dist_fun: str = "gower", kernel_width: Optional[float] = None):
        dist_fun = dist_fun.lower()
        if dist_fun not in SUPPORTED_DISTANCES:
            raise ValueError(
                f"Unsupported distance '{dist_fun}'. Choose one of: {', '.join(SUPPORTED_DISTANCES)}"
            )
        if kernel_width is not None and not kernel_width > 0:
            raise ValueError(f"kernel_width must be positive, got {kernel_width}")
        self.dist_fun = dist_fun
        self.kernel_width = kernel_width

    def width_for(self, n_features: int) -> float:
        return self.kernel_width if self.kernel_width is not None else default_kernel_width(n_features)

    def distances(self, recoded: np.ndarray) -> np.ndarray:
        if self.dist_fun == "gower":
            return gower_distance(recoded)
        return pairwise_distance(recoded, self.dist_fun)

    def similarity(self, distances: np.ndarray, n_features: int) -> np.ndarray:
        """Map distances to weights; the zero-distance anchor always gets 1."""
        width = self.width_for(n_features)
        distances = np.asarray(distances, dtype=float)
        weights = np.exp(-(distances ** 2) / (width ** 2))
        weights = np.clip(weights, MIN_WEIGHT, 1.0)
        weights[0] = 1.0
        return weights

    def __call__(self, recoded: np.ndarray) -> np.ndarray:
        """Weights for every row of the recoded matrix relative to row 0."""
        recoded = np.asarray(recoded, dtype=float)
        weights = self.similarity(self.distances(recoded), recoded.shape[1])
        logger.debug(
            f"Kernel ({self.dist_fun}, width={self.width_for(recoded.shape[1]):.3f}): "
            f"{int((weights > 0.01).sum())}/{len(weights)} rows above 0.01"
        )
        return weights


__all__ = [
    "SimilarityKernel", "default_kernel_width", "gower_distance",
    "pairwise_distance", "MIN_WEIGHT",
]
