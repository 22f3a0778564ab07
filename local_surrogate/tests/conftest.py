"""
Shared pytest fixtures for the explanation engine tests.

Fixtures Provided:
- credit_data / classifier: mixed-type classification data and a trained pipeline
- housing_data / regressor: mixed-type regression data and a trained pipeline
- survey_data: one continuous and four categorical features for locality checks
- fast_settings: settings with few permutations and a fixed seed
"""

import os
import warnings

import numpy as np
import pandas as pd
import pytest
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LinearRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder

from local_surrogate.config import ExplainerSettings

warnings.filterwarnings('ignore', category=UserWarning, module='sklearn')


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "ml: mark test as explanation pipeline test")
    config.addinivalue_line("markers", "integration: mark test as end-to-end explainer test")
    config.addinivalue_line("markers", "slow: mark test as slow running test")

    os.environ.setdefault("LOCAL_SURROGATE_LOG_LEVEL", "WARNING")


def _preprocessor(categorical):
    return ColumnTransformer(
        [("categorical", OneHotEncoder(handle_unknown="ignore"), categorical)],
        remainder="passthrough",
    )


@pytest.fixture(scope="session")
def credit_data() -> pd.DataFrame:
    """1000 loan applications with an approved/declined outcome."""
    rng = np.random.default_rng(42)
    n = 1000
    income = rng.uniform(1000, 20000, n)
    age = rng.integers(18, 80, n).astype(float)
    color = rng.choice(["red", "green", "blue"], n)
    region = rng.choice(["north", "south", "east", "west"], n)

    logit = (income - 10000) / 3000 + 1.5 * (color == "red") - 0.5
    probability = 1 / (1 + np.exp(-logit))
    target = np.where(rng.uniform(size=n) < probability, "approved", "declined")

    return pd.DataFrame({
        "Income": income,
        "Age": age,
        "Color": color,
        "Region": region,
        "target": target,
    })


@pytest.fixture(scope="session")
def classifier(credit_data):
    X = credit_data.drop(columns=["target"])
    model = Pipeline([
        ("prep", _preprocessor(["Color", "Region"])),
        ("model", RandomForestClassifier(n_estimators=25, max_depth=6, random_state=0)),
    ])
    return model.fit(X, credit_data["target"])


@pytest.fixture(scope="session")
def housing_data() -> pd.DataFrame:
    """House prices driven linearly by size and neighbourhood."""
    rng = np.random.default_rng(7)
    n = 600
    size = rng.uniform(40, 250, n)
    rooms = rng.integers(1, 7, n).astype(float)
    neighbourhood = rng.choice(["centre", "suburb", "rural"], n)

    price = (
        2.0 * size
        + 10.0 * rooms
        + np.select([neighbourhood == "centre", neighbourhood == "suburb"], [80.0, 30.0], 0.0)
        + rng.normal(0, 5, n)
    )
    return pd.DataFrame({
        "size": size,
        "rooms": rooms,
        "neighbourhood": neighbourhood,
        "price": price,
    })


@pytest.fixture(scope="session")
def regressor(housing_data):
    X = housing_data.drop(columns=["price"])
    model = Pipeline([
        ("prep", _preprocessor(["neighbourhood"])),
        ("model", LinearRegression()),
    ])
    return model.fit(X, housing_data["price"])


@pytest.fixture(scope="session")
def survey_data() -> pd.DataFrame:
    """One continuous and four five-level categorical answers."""
    rng = np.random.default_rng(3)
    n = 800
    levels = ["a", "b", "c", "d", "e"]
    return pd.DataFrame({
        "score": rng.normal(50, 10, n),
        "q1": rng.choice(levels, n),
        "q2": rng.choice(levels, n),
        "q3": rng.choice(levels, n),
        "q4": rng.choice(levels, n),
    })


@pytest.fixture
def fast_settings() -> ExplainerSettings:
    return ExplainerSettings(n_permutations=300, random_state=0, log_level="WARNING")
