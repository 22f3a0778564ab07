import logging

import numpy as np
import pytest

from local_surrogate.ml.surrogate import SurrogateFitter, weighted_r2


@pytest.fixture
def design():
    rng = np.random.default_rng(1)
    X = (rng.uniform(size=(300, 4)) < 0.5).astype(float)
    X[0] = 1.0
    weights = rng.uniform(0.1, 1.0, 300)
    weights[0] = 1.0
    return X, weights, rng


class TestSurrogateFitter:
    """Weighted ridge surrogate."""

    def test_exact_linear_target(self, design):
        X, weights, _ = design
        y = 0.2 + 0.5 * X[:, 0] - 0.3 * X[:, 2]
        fit = SurrogateFitter(alpha=1e-6).fit(X, y, weights, [0, 2])

        assert fit.feature_indices == (0, 2)
        assert fit.coefficients == pytest.approx([0.5, -0.3], abs=1e-4)
        assert fit.intercept == pytest.approx(0.2, abs=1e-4)
        assert fit.r2 == pytest.approx(1.0, abs=1e-6)
        assert fit.local_prediction == pytest.approx(y[0], abs=1e-4)
        assert fit.trustworthy

    def test_one_coefficient_per_selected_feature(self, design):
        X, weights, rng = design
        y = rng.uniform(size=300)
        for selected in ([1], [0, 3], [0, 1, 2, 3]):
            fit = SurrogateFitter().fit(X, y, weights, selected)
            assert len(fit.coefficients) == len(selected)

    def test_fit_quality_is_at_most_one(self, design):
        X, weights, rng = design
        y = rng.normal(size=300)
        fit = SurrogateFitter().fit(X, y, weights, [1])

        assert np.isfinite(fit.r2)
        assert fit.r2 <= 1.0

    def test_poor_fit_is_reported(self, design, caplog):
        X, weights, rng = design
        y = rng.normal(size=300)
        with caplog.at_level(logging.WARNING, logger="local_surrogate"):
            fit = SurrogateFitter().fit(X, y, weights, [1])

        assert fit.r2 < 0.1
        assert "Poor local surrogate fit" in caplog.text

    def test_constant_target(self, design):
        X, weights, _ = design
        fit = SurrogateFitter().fit(X, np.full(300, 0.7), weights, [0, 1])

        assert fit.r2 == 1.0
        assert fit.local_prediction == pytest.approx(0.7)

    def test_weights_change_the_fit(self, design):
        X, _, rng = design
        y = np.where(X[:, 0] == 1, 1.0, 0.0) + rng.normal(0, 0.3, 300)
        near = np.where(X[:, 1] == 1, 1.0, 1e-3)

        uniform_fit = SurrogateFitter().fit(X, y, np.ones(300), [0])
        local_fit = SurrogateFitter().fit(X, y, near, [0])
        assert uniform_fit.coefficients[0] != pytest.approx(local_fit.coefficients[0], abs=1e-6)

    def test_weighted_r2(self):
        y = np.array([0.0, 1.0, 2.0, 3.0])
        assert weighted_r2(y, y, np.ones(4)) == 1.0
        assert weighted_r2(y, np.full(4, y.mean()), np.ones(4)) == pytest.approx(0.0)

    def test_invalid_arguments(self, design):
        X, weights, _ = design
        with pytest.raises(ValueError, match="non-negative"):
            SurrogateFitter(alpha=-1)
        with pytest.raises(ValueError, match="At least one feature"):
            SurrogateFitter().fit(X, np.zeros(300), weights, [])
