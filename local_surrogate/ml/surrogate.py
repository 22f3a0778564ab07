"""
Surrogate Fitter

Fits the local, interpretable model: a weighted ridge regression on the
recoded permutation matrix restricted to the selected features, with the
kernel similarities as sample weights. The target is always continuous
(class probability or regression output), so the surrogate is a regressor
even when the explained model is a classifier.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
from sklearn.linear_model import Ridge
from sklearn.metrics import r2_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SurrogateFit:
    """Coefficients and fit diagnostics of one local surrogate."""
    feature_indices: Tuple[int, ...]
    coefficients: np.ndarray
    intercept: float
    r2: float
    local_prediction: float

    @property
    def trustworthy(self) -> bool:
        """Whether the fit quality is within the usual [0, 1] reporting range."""
        return 0.0 <= self.r2 <= 1.0


def fit_weighted_ridge(X: np.ndarray, y: np.ndarray, weights: np.ndarray, alpha: float) -> Ridge:
    """Weighted ridge regression with an intercept."""
    model = Ridge(alpha=alpha, fit_intercept=True)
    model.fit(X, y, sample_weight=weights)
    return model


def weighted_r2(y: np.ndarray, y_hat: np.ndarray, weights: np.ndarray) -> float:
    """Weighted coefficient of determination; 1.0 for a perfect fit of a constant target."""
    if np.ptp(y) == 0:
        # r2_score is undefined here and would report rounding noise as 0.0
        return 1.0 if np.allclose(y_hat, y) else 0.0
    return float(r2_score(y, y_hat, sample_weight=weights))


class SurrogateFitter:
    """
    Weighted ridge surrogate.

    Args:
        alpha: Ridge penalty; small values approach weighted least squares
    """

    def __init__(self, alpha: float = 0.001):
        if alpha < 0:
            raise ValueError(f"alpha must be non-negative, got {alpha}")
        self.alpha = alpha

    def fit(
        self,
        recoded: np.ndarray,
        target: np.ndarray,
        weights: np.ndarray,
        feature_indices: Sequence[int],
    ) -> SurrogateFit:
        """
        Fit the surrogate on the selected columns.

        Args:
            recoded: N x F permutation matrix; row 0 is the original instance
            target: Model output for the explained label, one value per row
            weights: Kernel similarity per row
            feature_indices: Selected columns of ``recoded``

        Returns:
            SurrogateFit with one coefficient per selected feature
        """
        indices = tuple(int(i) for i in feature_indices)
        if not indices:
            raise ValueError("At least one feature is needed to fit a surrogate")

        X = np.asarray(recoded, dtype=float)[:, indices]
        y = np.asarray(target, dtype=float)
        weights = np.asarray(weights, dtype=float)

        model = fit_weighted_ridge(X, y, weights, self.alpha)
        fitted = model.predict(X)
        r2 = weighted_r2(y, fitted, weights)

        if r2 < 0.1:
            logger.warning(f"Poor local surrogate fit (R2={r2:.3f}); explanation may be unreliable")

        return SurrogateFit(
            feature_indices=indices,
            coefficients=np.asarray(model.coef_, dtype=float).ravel(),
            intercept=float(model.intercept_),
            r2=r2,
            local_prediction=float(fitted[0]),
        )


__all__ = ["SurrogateFit", "SurrogateFitter", "fit_weighted_ridge", "weighted_r2"]
