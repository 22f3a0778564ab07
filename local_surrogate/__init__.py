"""
Local Surrogate

Model-agnostic explanations of individual predictions. For each queried
instance the engine samples synthetic neighbours from the training data's
feature distributions, weights them by similarity to the instance, selects
the most relevant features and fits a weighted ridge regression that
approximates the model locally.

Usage:
    from local_surrogate import Explainer

    explainer = Explainer(train_df, model, response="target")
    result = explainer.explain(test_df.head(5), n_labels=1, n_features=4, random_state=0)
    table = result.to_frame()
"""

__version__ = "1.0.0"

# Initialize package-level logging
import logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

from local_surrogate.config import ExplainerSettings, get_settings
from local_surrogate.exceptions import (
    AmbiguousTargetError,
    InvalidFeatureError,
    LocalSurrogateError,
    PredictionTimeoutError,
    SelectionError,
    UnsupportedModelError,
)
from local_surrogate.ml import (
    Explainer,
    Explanation,
    ExplanationResult,
    ModelAdapter,
    ModelKind,
    PredictionFunction,
    create_explainer,
    quick_explain,
    register_adapter,
    resolve_adapter,
)

__all__ = [
    "Explainer",
    "Explanation",
    "ExplanationResult",
    "ModelAdapter",
    "ModelKind",
    "PredictionFunction",
    "create_explainer",
    "quick_explain",
    "register_adapter",
    "resolve_adapter",
    "ExplainerSettings",
    "get_settings",
    "LocalSurrogateError",
    "InvalidFeatureError",
    "UnsupportedModelError",
    "AmbiguousTargetError",
    "SelectionError",
    "PredictionTimeoutError",
    "__version__",
]
