"""
Perturbation Sampler

Draws synthetic neighbours of one instance from the training profile.

For every feature the sampler produces two parallel columns:
- the model-ready value handed to the model adapter
- a 0/1 recoding (1 when the drawn value lands in the instance's bin or
  equals the instance's level) used for distances and for the surrogate

Continuous values are redrawn from a Normal fitted to the instance's bin.
Categorical levels are drawn from the population frequencies, not
conditioned on the instance's own level.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from local_surrogate.ml.profiler import FeatureKind, FeatureProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerturbedSample:
    """
    Permutations generated for one instance during one ``explain`` call.

    ``rows`` holds the model-ready features (row 0 is the original instance),
    ``recoded`` the parallel N x F similarity matrix, and ``weights`` the
    kernel similarities once they have been computed.
    """
    instance_id: Any
    rows: pd.DataFrame
    recoded: np.ndarray
    feature_names: List[str]
    descriptions: List[str]
    degenerate: np.ndarray
    weights: Optional[np.ndarray] = None

    @property
    def n_permutations(self) -> int:
        return len(self.rows)

    @property
    def usable_features(self) -> np.ndarray:
        """Indices of features that can enter the surrogate."""
        return np.flatnonzero(~self.degenerate)

    def with_weights(self, weights: np.ndarray) -> "PerturbedSample":
        weights = np.asarray(weights, dtype=float)
        if weights.shape != (self.n_permutations,):
            raise ValueError(
                f"Expected {self.n_permutations} weights, got shape {weights.shape}"
            )
        return replace(self, weights=weights)


class PerturbationSampler:
    """
    Generates permutations around instances using a fixed set of profiles.

    Args:
        profiles: Feature profiles keyed by name
        feature_names: Column order of the model-ready rows
    """

    def __init__(self, profiles: Mapping[str, FeatureProfile], feature_names: Sequence[str]):
        missing = [name for name in feature_names if name not in profiles]
        if missing:
            raise ValueError(f"No profile for features: {missing}")
        self.profiles = profiles
        self.feature_names = list(feature_names)

    def sample(
        self,
        instance: pd.Series,
        n_permutations: int = 5000,
        rng: Optional[np.random.Generator] = None,
        instance_id: Any = None,
    ) -> PerturbedSample:
        """
        Draw ``n_permutations`` rows around ``instance``.

        Args:
            instance: One row with every profiled feature
            n_permutations: Total rows including the original instance
            rng: Source of randomness; pass a seeded generator for reproducible draws
            instance_id: Identifier carried on the sample

        Returns:
            PerturbedSample whose first row is the instance itself

        Raises:
            ValueError: The instance has a missing value for a continuous feature
        """
        if n_permutations < 2:
            raise ValueError(f"n_permutations must be at least 2, got {n_permutations}")
        rng = rng if rng is not None else np.random.default_rng()

        columns: Dict[str, pd.Series] = {}
        recoded = np.ones((n_permutations, len(self.feature_names)), dtype=float)
        descriptions: List[str] = []
        degenerate = np.zeros(len(self.feature_names), dtype=bool)

        for j, name in enumerate(self.feature_names):
            profile = self.profiles[name]
            value = instance[name]
            if profile.kind == FeatureKind.CONTINUOUS and not profile.degenerate and pd.isna(value):
                raise ValueError(f"Instance {instance_id!r} has no value for continuous feature '{name}'")
            descriptions.append(profile.describe(value))

            if profile.degenerate:
                degenerate[j] = True
                drawn = np.full(n_permutations - 1, profile.constant_value, dtype=object)
                same = np.ones(n_permutations - 1, dtype=bool)
            elif profile.kind == FeatureKind.CATEGORICAL:
                drawn, same = self._sample_categorical(profile, value, n_permutations - 1, rng)
            else:
                drawn, same = self._sample_continuous(profile, value, n_permutations - 1, rng)

            columns[name] = self._column(profile, value, drawn)
            recoded[1:, j] = same.astype(float)

        rows = pd.DataFrame(columns, columns=self.feature_names)
        logger.debug(
            f"Drew {n_permutations} permutations for instance {instance_id!r}; "
            f"mean recoded similarity {recoded[1:].mean():.3f}"
        )

        return PerturbedSample(
            instance_id=instance_id,
            rows=rows,
            recoded=recoded,
            feature_names=list(self.feature_names),
            descriptions=descriptions,
            degenerate=degenerate,
        )

    @staticmethod
    def _sample_continuous(profile: FeatureProfile, value: Any, n: int, rng: np.random.Generator):
        value = float(value)
        home_bin = profile.bin_index(value)
        summary = profile.bins[home_bin]

        if summary.degenerate:
            drawn = np.full(n, value, dtype=float)
        else:
            drawn = rng.normal(summary.mean, summary.std, size=n)

        same = profile.bin_indices(drawn) == home_bin
        return drawn, same

    @staticmethod
    def _sample_categorical(profile: FeatureProfile, value: Any, n: int, rng: np.random.Generator):
        reference = profile.known_level(value)
        levels = np.empty(len(profile.levels), dtype=object)
        levels[:] = list(profile.levels)

        probabilities = np.asarray(profile.frequencies, dtype=float)
        drawn = levels[rng.choice(len(levels), size=n, p=probabilities / probabilities.sum())]
        same = np.array([level == reference for level in drawn], dtype=bool)
        return drawn, same

    @staticmethod
    def _column(profile: FeatureProfile, value: Any, drawn: np.ndarray) -> pd.Series:
        if profile.kind == FeatureKind.CONTINUOUS:
            values = np.concatenate([[float(value)], np.asarray(drawn, dtype=float)])
            return pd.Series(values)

        values = np.empty(len(drawn) + 1, dtype=object)
        values[0] = value
        values[1:] = drawn
        column = pd.Series(values)
        if isinstance(profile.dtype, pd.CategoricalDtype) or pd.api.types.is_bool_dtype(profile.dtype):
            column = column.astype(profile.dtype)
        return column


__all__ = ["PerturbedSample", "PerturbationSampler"]
