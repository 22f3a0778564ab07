"""
Feature Selection

Chooses which features enter the local surrogate. Every strategy works on
the weighted, recoded permutation matrix and the model's output for the
explained label, and returns ``min(n_features, available)`` distinct column
indices, most important first.

Strategies:
- forward_selection: greedy, adds the feature that most improves weighted R2
- highest_weights: largest absolute coefficients of a weighted ridge fit
- lasso_path: features entering a weighted lasso path first as the penalty relaxes
- tree: impurity-reduction importance of a weighted regression tree
- auto: forward_selection for up to 6 features, highest_weights beyond
"""

import logging
from typing import Callable, Dict, Optional, Sequence

import numpy as np
from sklearn.linear_model import lasso_path
from sklearn.tree import DecisionTreeRegressor

from local_surrogate.config import FeatureSelectMethod
from local_surrogate.ml.surrogate import fit_weighted_ridge, weighted_r2

logger = logging.getLogger(__name__)

# Largest n_features for which "auto" uses forward selection
AUTO_FORWARD_LIMIT = 6


def forward_selection(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    n_features: int,
    rng: np.random.Generator,
    alpha: float = 0.001,
) -> np.ndarray:
    """Greedy forward selection on weighted R2; ties go to the lower column index."""
    selected = []
    remaining = list(range(X.shape[1]))

    while len(selected) < n_features and remaining:
        best_score, best_feature = -np.inf, None
        for j in remaining:
            columns = selected + [j]
            model = fit_weighted_ridge(X[:, columns], y, weights, alpha)
            score = weighted_r2(y, model.predict(X[:, columns]), weights)
            if score > best_score:
                best_score, best_feature = score, j
        selected.append(best_feature)
        remaining.remove(best_feature)

    return np.array(selected, dtype=int)


def highest_weights(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    n_features: int,
    rng: np.random.Generator,
    alpha: float = 0.001,
) -> np.ndarray:
    """Features with the largest absolute weighted-ridge coefficients."""
    model = fit_weighted_ridge(X, y, weights, alpha)
    order = np.argsort(-np.abs(model.coef_), kind="stable")
    return order[:n_features].astype(int)


def lasso_path_selection(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    n_features: int,
    rng: np.random.Generator,
    alpha: float = 0.001,
) -> np.ndarray:
    """
    Features that stay non-zero under the heaviest lasso penalty.

    Walks the weighted lasso path from the largest penalty down and ranks
    features by the point at which their coefficient first becomes non-zero.
    Features that never enter are ranked after, by ridge coefficient size.
    """
    sqrt_w = np.sqrt(weights / weights.sum())
    X_centered = X - np.average(X, axis=0, weights=weights)
    y_centered = y - np.average(y, weights=weights)
    X_weighted = X_centered * sqrt_w[:, None]
    y_weighted = y_centered * sqrt_w

    entered: Dict[int, int] = {}
    if np.any(X_weighted) and np.any(y_weighted):
        _, coefs, _ = lasso_path(X_weighted, y_weighted)
        # alphas run from largest to smallest; coefs is (n_features, n_alphas)
        for step in range(coefs.shape[1]):
            active = np.flatnonzero(coefs[:, step])
            newcomers = [j for j in active if j not in entered]
            newcomers.sort(key=lambda j: -abs(coefs[j, step]))
            for j in newcomers:
                entered[int(j)] = len(entered)
            if len(entered) >= n_features:
                break

    order = sorted(entered, key=entered.get)
    if len(order) < n_features:
        fallback = highest_weights(X, y, weights, X.shape[1], rng, alpha)
        order.extend(int(j) for j in fallback if j not in entered)

    return np.array(order[:n_features], dtype=int)


def tree_selection(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    n_features: int,
    rng: np.random.Generator,
    alpha: float = 0.001,
) -> np.ndarray:
    """Highest impurity-reduction importance of a weighted regression tree; ties broken at random."""
    seed = int(rng.integers(0, 2**31 - 1))
    tree = DecisionTreeRegressor(max_depth=max(n_features, 1), random_state=seed)
    tree.fit(X, y, sample_weight=weights)

    importance = tree.feature_importances_
    tie_breaker = rng.permutation(X.shape[1])
    order = np.lexsort((tie_breaker, -importance))
    return order[:n_features].astype(int)


SelectionStrategy = Callable[..., np.ndarray]

STRATEGIES: Dict[str, SelectionStrategy] = {
    FeatureSelectMethod.FORWARD_SELECTION.value: forward_selection,
    FeatureSelectMethod.HIGHEST_WEIGHTS.value: highest_weights,
    FeatureSelectMethod.LASSO_PATH.value: lasso_path_selection,
    FeatureSelectMethod.TREE.value: tree_selection,
}


def resolve_method(method: str, n_features: int) -> str:
    """Concrete strategy name for ``method``, resolving ``auto``."""
    method = FeatureSelectMethod(method).value
    if method == FeatureSelectMethod.AUTO.value:
        if n_features <= AUTO_FORWARD_LIMIT:
            return FeatureSelectMethod.FORWARD_SELECTION.value
        return FeatureSelectMethod.HIGHEST_WEIGHTS.value
    return method


class FeatureSelector:
    """
    Picks the features for the surrogate using a named strategy.

    Args:
        method: One of ``auto``, ``forward_selection``, ``highest_weights``,
            ``lasso_path``, ``tree``
        alpha: Ridge penalty used by the regression-based strategies
    """

    def __init__(self, method: str = "auto", alpha: float = 0.001):
        try:
            self.method = FeatureSelectMethod(method).value
        except ValueError:
            valid = ", ".join(m.value for m in FeatureSelectMethod)
            raise ValueError(f"Unknown feature selection method '{method}'. Choose one of: {valid}") from None
        self.alpha = alpha

    def select(
        self,
        X: np.ndarray,
        y: np.ndarray,
        weights: np.ndarray,
        n_features: int,
        candidates: Optional[Sequence[int]] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> np.ndarray:
        """
        Select feature columns.

        Args:
            X: N x F recoded permutation matrix
            y: Model output per row for the explained label
            weights: Kernel similarity per row
            n_features: Number of features wanted
            candidates: Columns allowed to be selected (defaults to all)
            rng: Generator for strategies that break ties at random

        Returns:
            Column indices into ``X``, ``min(n_features, len(candidates))`` of them
        """
        if n_features < 1:
            raise ValueError(f"n_features must be at least 1, got {n_features}")

        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        weights = np.asarray(weights, dtype=float)
        candidates = np.arange(X.shape[1]) if candidates is None else np.asarray(candidates, dtype=int)
        rng = rng if rng is not None else np.random.default_rng()

        n_select = min(int(n_features), len(candidates))
        if n_select == 0:
            return np.array([], dtype=int)

        method = resolve_method(self.method, n_select)
        strategy = STRATEGIES[method]
        local = strategy(X[:, candidates], y, weights, n_select, rng, alpha=self.alpha)
        selected = candidates[local]

        logger.debug(f"{method} selected columns {selected.tolist()}")
        return selected


__all__ = [
    "FeatureSelector", "STRATEGIES", "resolve_method",
    "forward_selection", "highest_weights", "lasso_path_selection", "tree_selection",
]
