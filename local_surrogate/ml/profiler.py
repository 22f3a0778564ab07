"""
Feature Profiler

Scans training data once and records, per feature, what the perturbation
sampler needs to draw plausible neighbours:
- continuous features: ordered bin edges (quantile or equal-width) with the
  mean/std/frequency of the training values in each bin
- categorical features: observed levels and their empirical frequencies
- constant features: kept, but flagged degenerate so perturbation always
  reproduces the single observed value

Bins are half-open ``(lower, upper]`` and the outer edges are -inf/+inf so
values outside the training range still land in a bin.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from local_surrogate.exceptions import InvalidFeatureError
from local_surrogate.utils.validation import (
    finite_values,
    is_categorical_feature,
    is_numeric_feature,
)

logger = logging.getLogger(__name__)


class FeatureKind(str, Enum):
    """How a feature is profiled and perturbed."""
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class BinSummary:
    """Training values falling in one ``(lower, upper]`` bin."""
    lower: float
    upper: float
    mean: float
    std: float
    count: int
    frequency: float

    @property
    def degenerate(self) -> bool:
        return self.count < 2 or not self.std > 0


def _format_number(value: float) -> str:
    return f"{value:.4g}"


@dataclass(frozen=True)
class FeatureProfile:
    """Distribution summary for a single training feature."""
    name: str
    kind: FeatureKind
    dtype: Any = None
    degenerate: bool = False
    constant_value: Any = None
    edges: Tuple[float, ...] = ()
    bins: Tuple[BinSummary, ...] = ()
    observed_range: Tuple[float, float] = (np.nan, np.nan)
    levels: Tuple[Any, ...] = ()
    frequencies: Tuple[float, ...] = ()

    @property
    def n_bins(self) -> int:
        return len(self.bins)

    @property
    def cut_points(self) -> np.ndarray:
        """Interior edges, used to locate a value's bin."""
        return np.asarray(self.edges[1:-1], dtype=float)

    @property
    def bin_frequencies(self) -> np.ndarray:
        return np.array([b.frequency for b in self.bins], dtype=float)

    @property
    def most_frequent_level(self) -> Any:
        return self.levels[0] if self.levels else self.constant_value

    def bin_indices(self, values: Iterable[float]) -> np.ndarray:
        """Index of the bin each value falls in."""
        values = np.asarray(values, dtype=float)
        return np.searchsorted(self.cut_points, values, side="left")

    def bin_index(self, value: float) -> int:
        return int(self.bin_indices([value])[0])

    def known_level(self, value: Any) -> Any:
        """The level itself when observed in training, else the most frequent level."""
        if value in self.levels:
            return value
        logger.debug(
            f"Level {value!r} of '{self.name}' unseen in training; "
            f"using most frequent level {self.most_frequent_level!r}"
        )
        return self.most_frequent_level

    def describe(self, value: Any) -> str:
        """Human-readable description of the region the value falls in."""
        if self.degenerate:
            return f"{self.name} = {self.constant_value}"

        if self.kind == FeatureKind.CATEGORICAL:
            return f"{self.name} = {self.known_level(value)}"

        if pd.isna(value):
            raise ValueError(f"Missing value of '{self.name}' falls in no bin")
        index = self.bin_index(value)
        lower, upper = self.edges[index], self.edges[index + 1]
        if np.isinf(lower):
            return f"{self.name} <= {_format_number(upper)}"
        if np.isinf(upper):
            return f"{self.name} > {_format_number(lower)}"
        return f"{_format_number(lower)} < {self.name} <= {_format_number(upper)}"


class FeatureProfiler:
    """
    Builds ``FeatureProfile`` objects from training data.

    Args:
        n_bins: Number of bins for continuous features (at least 2)
        quantile_bins: Quantile bins when True, equal-width bins otherwise
        categorical_features: Columns to treat as categorical regardless of dtype
    """

    def __init__(
        self,
        n_bins: int = 4,
        quantile_bins: bool = True,
        categorical_features: Optional[Sequence[str]] = None,
    ):
        if isinstance(n_bins, bool) or not isinstance(n_bins, (int, np.integer)) or n_bins < 2:
            raise ValueError(f"n_bins must be an integer >= 2, got {n_bins!r}")
        self.n_bins = int(n_bins)
        self.quantile_bins = quantile_bins
        self.categorical_features = set(categorical_features or ())

    def fit(self, data: pd.DataFrame) -> Dict[str, FeatureProfile]:
        """
        Profile every column of ``data``.

        Constant features are kept as degenerate profiles. Any other
        ``InvalidFeatureError`` (unsupported dtype) propagates.

        Returns:
            Profiles keyed by feature name, in column order
        """
        unknown = self.categorical_features - set(data.columns)
        if unknown:
            raise ValueError(f"Categorical features not in training data: {sorted(unknown)}")

        profiles: Dict[str, FeatureProfile] = {}
        for name in data.columns:
            series = data[name]
            try:
                profiles[name] = self.profile_feature(series)
            except InvalidFeatureError as e:
                if e.reason != "constant":
                    raise
                logger.warning(f"{e}; marking as degenerate")
                profiles[name] = self._degenerate_profile(series)

        n_degenerate = sum(p.degenerate for p in profiles.values())
        logger.info(
            f"Profiled {len(profiles)} features "
            f"({n_degenerate} degenerate, n_bins={self.n_bins}, "
            f"{'quantile' if self.quantile_bins else 'equal-width'} bins)"
        )
        return profiles

    def profile_feature(self, series: pd.Series) -> FeatureProfile:
        """Profile one column; raises ``InvalidFeatureError`` if it cannot be binned."""
        name = str(series.name)
        kind = self._feature_kind(series)

        if series.dropna().nunique() <= 1:
            raise InvalidFeatureError(name, "constant")

        if kind == FeatureKind.CATEGORICAL:
            return self._categorical_profile(series)
        return self._continuous_profile(series)

    def _feature_kind(self, series: pd.Series) -> FeatureKind:
        name = str(series.name)
        if series.name in self.categorical_features or is_categorical_feature(series):
            return FeatureKind.CATEGORICAL
        if is_numeric_feature(series):
            if pd.api.types.is_complex_dtype(series):
                raise InvalidFeatureError(name, f"unsupported dtype {series.dtype}")
            return FeatureKind.CONTINUOUS
        raise InvalidFeatureError(name, f"unsupported dtype {series.dtype}")

    def _categorical_profile(self, series: pd.Series) -> FeatureProfile:
        counts = series.value_counts(normalize=True, dropna=True, sort=True)
        counts = counts[counts > 0]
        return FeatureProfile(
            name=str(series.name),
            kind=FeatureKind.CATEGORICAL,
            dtype=series.dtype,
            levels=tuple(counts.index.tolist()),
            frequencies=tuple(float(f) for f in counts.to_numpy()),
        )

    def _continuous_profile(self, series: pd.Series) -> FeatureProfile:
        name = str(series.name)
        values = finite_values(series)
        cut_points = self._cut_points(values)

        if len(cut_points) < self.n_bins - 1:
            logger.warning(
                f"Feature '{name}' has tied quantiles; using {len(cut_points) + 1} bins "
                f"instead of {self.n_bins}"
            )

        edges = np.concatenate([[-np.inf], cut_points, [np.inf]])
        indices = np.searchsorted(cut_points, values, side="left")

        bins: List[BinSummary] = []
        for k in range(len(edges) - 1):
            in_bin = values[indices == k]
            if len(in_bin):
                mean = float(in_bin.mean())
                std = float(in_bin.std(ddof=1)) if len(in_bin) > 1 else 0.0
            else:
                lower = max(edges[k], values.min())
                upper = min(edges[k + 1], values.max())
                mean, std = float((lower + upper) / 2), 0.0
            bins.append(BinSummary(
                lower=float(edges[k]),
                upper=float(edges[k + 1]),
                mean=mean,
                std=std,
                count=int(len(in_bin)),
                frequency=float(len(in_bin) / len(values)),
            ))

        return FeatureProfile(
            name=name,
            kind=FeatureKind.CONTINUOUS,
            dtype=series.dtype,
            edges=tuple(float(e) for e in edges),
            bins=tuple(bins),
            observed_range=(float(values.min()), float(values.max())),
        )

    def _cut_points(self, values: np.ndarray) -> np.ndarray:
        if self.quantile_bins:
            probs = np.linspace(0, 1, self.n_bins + 1)[1:-1]
            cuts = np.quantile(values, probs)
        else:
            cuts = np.linspace(values.min(), values.max(), self.n_bins + 1)[1:-1]
        return np.unique(cuts)

    def _degenerate_profile(self, series: pd.Series) -> FeatureProfile:
        observed = series.dropna()
        value = observed.iloc[0] if len(observed) else np.nan
        kind = FeatureKind.CATEGORICAL if (
            series.name in self.categorical_features or not is_numeric_feature(series)
        ) else FeatureKind.CONTINUOUS
        return FeatureProfile(
            name=str(series.name),
            kind=kind,
            dtype=series.dtype,
            degenerate=True,
            constant_value=value,
            levels=(value,) if kind == FeatureKind.CATEGORICAL else (),
            frequencies=(1.0,) if kind == FeatureKind.CATEGORICAL else (),
        )


__all__ = ["FeatureKind", "BinSummary", "FeatureProfile", "FeatureProfiler"]
