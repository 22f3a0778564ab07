import numpy as np
import pandas as pd
import pytest

from local_surrogate.ml.profiler import FeatureProfiler
from local_surrogate.ml.sampler import PerturbationSampler


@pytest.fixture
def profiled(credit_data):
    features = credit_data.drop(columns=["target"])
    profiles = FeatureProfiler(n_bins=4).fit(features)
    return features, profiles, PerturbationSampler(profiles, list(features.columns))


class TestPerturbationSampler:
    """Permutation drawing around one instance."""

    def test_anchor_row_is_the_instance(self, profiled):
        features, _, sampler = profiled
        instance = features.iloc[3]
        sample = sampler.sample(instance, n_permutations=100, rng=np.random.default_rng(1), instance_id=3)

        assert sample.n_permutations == 100
        assert sample.recoded.shape == (100, 4)
        assert sample.instance_id == 3
        assert np.all(sample.recoded[0] == 1.0)
        for name in features.columns:
            assert sample.rows.loc[0, name] == instance[name]

    def test_categorical_recoding_matches_instance_level(self, profiled):
        features, profiles, sampler = profiled
        instance = features.iloc[0]
        sample = sampler.sample(instance, n_permutations=500, rng=np.random.default_rng(2))

        column = list(features.columns).index("Color")
        drawn = sample.rows["Color"].to_numpy()
        assert set(drawn[1:]) <= set(profiles["Color"].levels)
        expected = (drawn[1:] == instance["Color"]).astype(float)
        assert np.array_equal(sample.recoded[1:, column], expected)

    def test_categorical_draws_follow_population_frequencies(self, profiled):
        """Levels are drawn from the population, not conditioned on the instance."""
        features, profiles, sampler = profiled
        instance = features.iloc[0]
        sample = sampler.sample(instance, n_permutations=5000, rng=np.random.default_rng(3))

        drawn = sample.rows["Region"].iloc[1:]
        observed = drawn.value_counts(normalize=True)
        for level, frequency in zip(profiles["Region"].levels, profiles["Region"].frequencies):
            assert observed[level] == pytest.approx(frequency, abs=0.03)
        assert drawn.nunique() == len(profiles["Region"].levels)

    def test_continuous_recoding_matches_instance_bin(self, profiled):
        features, profiles, sampler = profiled
        instance = features.iloc[5]
        sample = sampler.sample(instance, n_permutations=500, rng=np.random.default_rng(4))

        profile = profiles["Income"]
        column = list(features.columns).index("Income")
        home_bin = profile.bin_index(instance["Income"])
        same_bin = profile.bin_indices(sample.rows["Income"].to_numpy()) == home_bin

        assert np.array_equal(sample.recoded[:, column], same_bin.astype(float))
        # Draws come from a Normal fitted to the instance's bin
        summary = profile.bins[home_bin]
        assert sample.rows["Income"].iloc[1:].mean() == pytest.approx(summary.mean, rel=0.05)

    def test_degenerate_bin_reproduces_instance_value(self):
        data = pd.DataFrame({"visits": [0.0] * 50 + [float(v) for v in range(1, 51)]})
        profiles = FeatureProfiler(n_bins=4).fit(data)
        sampler = PerturbationSampler(profiles, ["visits"])

        assert profiles["visits"].bins[0].degenerate
        sample = sampler.sample(pd.Series({"visits": 0.0}), n_permutations=50, rng=np.random.default_rng(0))
        assert np.all(sample.rows["visits"] == 0.0)
        assert np.all(sample.recoded == 1.0)

    def test_degenerate_feature_is_constant(self):
        data = pd.DataFrame({"flat": [2.0] * 20, "x": np.linspace(0, 1, 20)})
        profiles = FeatureProfiler().fit(data)
        sampler = PerturbationSampler(profiles, ["flat", "x"])
        sample = sampler.sample(data.iloc[4], n_permutations=30, rng=np.random.default_rng(0))

        assert np.all(sample.rows["flat"] == 2.0)
        assert np.all(sample.recoded[:, 0] == 1.0)
        assert sample.degenerate.tolist() == [True, False]
        assert sample.usable_features.tolist() == [1]

    def test_same_seed_same_sample(self, profiled):
        features, _, sampler = profiled
        instance = features.iloc[8]
        first = sampler.sample(instance, n_permutations=200, rng=np.random.default_rng(11))
        second = sampler.sample(instance, n_permutations=200, rng=np.random.default_rng(11))

        pd.testing.assert_frame_equal(first.rows, second.rows)
        assert np.array_equal(first.recoded, second.recoded)

    def test_categorical_dtype_preserved(self):
        data = pd.DataFrame({
            "tier": pd.Categorical(["gold", "silver", "gold", "bronze"] * 5),
            "x": np.arange(20.0),
        })
        profiles = FeatureProfiler().fit(data)
        sample = PerturbationSampler(profiles, ["tier", "x"]).sample(
            data.iloc[0], n_permutations=25, rng=np.random.default_rng(0)
        )
        assert isinstance(sample.rows["tier"].dtype, pd.CategoricalDtype)

    def test_with_weights(self, profiled):
        features, _, sampler = profiled
        sample = sampler.sample(features.iloc[0], n_permutations=10, rng=np.random.default_rng(0))

        weighted = sample.with_weights(np.ones(10))
        assert weighted.weights.shape == (10,)
        assert sample.weights is None
        with pytest.raises(ValueError, match="Expected 10 weights"):
            sample.with_weights(np.ones(3))

    def test_requires_two_permutations(self, profiled):
        features, _, sampler = profiled
        with pytest.raises(ValueError, match="at least 2"):
            sampler.sample(features.iloc[0], n_permutations=1)

    def test_missing_continuous_value_is_rejected(self, profiled):
        features, _, sampler = profiled
        instance = features.iloc[0].copy()
        instance["Income"] = np.nan

        with pytest.raises(ValueError, match="no value for continuous feature 'Income'"):
            sampler.sample(instance, n_permutations=20, rng=np.random.default_rng(0), instance_id=0)

    def test_missing_profile(self, profiled):
        _, profiles, _ = profiled
        with pytest.raises(ValueError, match="No profile"):
            PerturbationSampler(profiles, ["Income", "Height"])
