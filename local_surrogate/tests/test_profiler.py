import logging

import numpy as np
import pandas as pd
import pytest

from local_surrogate.exceptions import InvalidFeatureError
from local_surrogate.ml.profiler import FeatureKind, FeatureProfiler


@pytest.fixture
def income_frame():
    rng = np.random.default_rng(0)
    income = rng.uniform(1000, 20000, 1000)
    income[0], income[1] = 1000.0, 20000.0
    return pd.DataFrame({"Income": income})


class TestContinuousProfiles:
    """Quantile and equal-width binning of continuous features."""

    def test_income_five_bins(self, income_frame):
        """Five quantile bins cover the whole Income range."""
        profile = FeatureProfiler(n_bins=5).fit(income_frame)["Income"]

        assert profile.kind == FeatureKind.CONTINUOUS
        assert profile.n_bins == 5
        assert len(profile.edges) == 6
        assert np.all(np.diff(profile.edges) > 0)
        assert profile.edges[0] == -np.inf and profile.edges[-1] == np.inf
        assert all(1000 < cut < 20000 for cut in profile.cut_points)
        assert profile.observed_range == (1000.0, 20000.0)

    def test_every_value_in_exactly_one_bin(self, income_frame):
        """Each training value satisfies lower < value <= upper for its bin only."""
        profile = FeatureProfiler(n_bins=5).fit(income_frame)["Income"]
        values = income_frame["Income"].to_numpy()
        edges = np.asarray(profile.edges)

        membership = (values[:, None] > edges[:-1]) & (values[:, None] <= edges[1:])
        assert np.all(membership.sum(axis=1) == 1)
        assert np.array_equal(membership.argmax(axis=1), profile.bin_indices(values))
        assert sum(b.count for b in profile.bins) == len(values)
        assert pytest.approx(sum(b.frequency for b in profile.bins)) == 1.0

    def test_bin_statistics(self, income_frame):
        profile = FeatureProfiler(n_bins=4).fit(income_frame)["Income"]
        values = income_frame["Income"].to_numpy()
        indices = profile.bin_indices(values)

        for k, summary in enumerate(profile.bins):
            in_bin = values[indices == k]
            assert summary.mean == pytest.approx(in_bin.mean())
            assert summary.std == pytest.approx(in_bin.std(ddof=1))
            assert not summary.degenerate

    def test_missing_value_has_no_bin(self, income_frame):
        profile = FeatureProfiler(n_bins=4).fit(income_frame)["Income"]
        with pytest.raises(ValueError, match="falls in no bin"):
            profile.describe(np.nan)

    def test_equal_width_bins(self, income_frame):
        profile = FeatureProfiler(n_bins=4, quantile_bins=False).fit(income_frame)["Income"]
        expected = np.linspace(1000, 20000, 5)[1:-1]
        assert np.allclose(profile.cut_points, expected)

    def test_tied_quantiles_reduce_bins(self, caplog):
        """Heavily tied data keeps strictly increasing edges with fewer bins."""
        data = pd.DataFrame({"visits": [0.0] * 90 + list(range(1, 11))})
        with caplog.at_level(logging.WARNING):
            profile = FeatureProfiler(n_bins=4).fit(data)["visits"]

        assert profile.n_bins < 4
        assert np.all(np.diff(profile.edges) > 0)
        assert "tied quantiles" in caplog.text

    def test_describe_bins(self, income_frame):
        profile = FeatureProfiler(n_bins=4).fit(income_frame)["Income"]
        first, second, _, last = profile.cut_points.tolist() + [None]

        assert profile.describe(500.0).startswith("Income <= ")
        assert profile.describe(25000.0).startswith("Income > ")
        middle = profile.describe((first + second) / 2)
        assert middle.startswith(f"{first:.4g} < Income <= ")


class TestCategoricalProfiles:
    """Level frequencies of categorical features."""

    def test_levels_and_frequencies(self):
        data = pd.DataFrame({"Color": ["red"] * 5 + ["blue"] * 3 + ["green"] * 2})
        profile = FeatureProfiler().fit(data)["Color"]

        assert profile.kind == FeatureKind.CATEGORICAL
        assert profile.levels == ("red", "blue", "green")
        assert profile.frequencies == pytest.approx((0.5, 0.3, 0.2))
        assert profile.most_frequent_level == "red"

    def test_unseen_level_falls_back_to_most_frequent(self):
        data = pd.DataFrame({"Color": ["red"] * 5 + ["blue"] * 3})
        profile = FeatureProfiler().fit(data)["Color"]

        assert profile.known_level("blue") == "blue"
        assert profile.known_level("purple") == "red"
        assert profile.describe("purple") == "Color = red"

    def test_bool_and_category_dtypes(self):
        data = pd.DataFrame({
            "member": [True, False, True, True],
            "tier": pd.Categorical(["gold", "silver", "gold", "bronze"]),
        })
        profiles = FeatureProfiler().fit(data)

        assert profiles["member"].kind == FeatureKind.CATEGORICAL
        assert profiles["tier"].kind == FeatureKind.CATEGORICAL
        assert set(profiles["tier"].levels) == {"gold", "silver", "bronze"}

    def test_forced_categorical_numeric_column(self):
        data = pd.DataFrame({"zip": [10001, 10002, 10001, 10003]})
        profile = FeatureProfiler(categorical_features=["zip"]).fit(data)["zip"]

        assert profile.kind == FeatureKind.CATEGORICAL
        assert profile.levels[0] == 10001


class TestDegenerateFeatures:
    """Constant and unsupported features."""

    def test_constant_feature_raises_when_profiled_directly(self):
        with pytest.raises(InvalidFeatureError, match="constant"):
            FeatureProfiler().profile_feature(pd.Series([3.0] * 10, name="flat"))

    def test_constant_feature_is_kept_as_degenerate(self, caplog):
        data = pd.DataFrame({"flat": [3.0] * 10, "country": ["NL"] * 10, "x": np.arange(10.0)})
        with caplog.at_level(logging.WARNING):
            profiles = FeatureProfiler().fit(data)

        assert profiles["flat"].degenerate
        assert profiles["flat"].constant_value == 3.0
        assert profiles["country"].degenerate
        assert profiles["country"].kind == FeatureKind.CATEGORICAL
        assert not profiles["x"].degenerate
        assert "marking as degenerate" in caplog.text

    def test_unsupported_dtype_aborts(self):
        data = pd.DataFrame({"when": pd.date_range("2024-01-01", periods=10)})
        with pytest.raises(InvalidFeatureError, match="unsupported dtype"):
            FeatureProfiler().fit(data)

    @pytest.mark.parametrize("n_bins", [1, 0, 2.5, True])
    def test_invalid_n_bins(self, n_bins):
        with pytest.raises(ValueError, match="n_bins"):
            FeatureProfiler(n_bins=n_bins)

    def test_unknown_categorical_feature(self):
        with pytest.raises(ValueError, match="not in training data"):
            FeatureProfiler(categorical_features=["missing"]).fit(pd.DataFrame({"x": [1.0, 2.0]}))
