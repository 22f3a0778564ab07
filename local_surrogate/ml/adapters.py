"""
Model Adapters

The explanation engine never calls a model directly. It resolves a
``ModelAdapter`` for the model's runtime type and uses two capabilities:

- ``model_kind(model)``: classification or regression
- ``predict_as_frame(model, rows)``: one column per class probability
  (rows sum to 1) or a single prediction column

Adapters live in a process-wide, append-only registry keyed by model type.
Resolution walks the type's MRO, so registering a base class covers its
subclasses. Built-in entries cover scikit-learn classifiers, regressors and
pipelines (and libraries following the scikit-learn estimator API, such as
XGBoost and LightGBM), plus ``PredictionFunction`` for plain callables.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.base import ClassifierMixin, RegressorMixin, is_classifier, is_regressor
from sklearn.pipeline import Pipeline

from local_surrogate.exceptions import UnsupportedModelError

logger = logging.getLogger(__name__)

REQUIRED_CAPABILITIES = ("model_kind", "predict_as_frame")

REGRESSION_COLUMN = "prediction"


class ModelKind(str, Enum):
    """Kind of output a model produces."""
    CLASSIFICATION = "classification"
    REGRESSION = "regression"


class ModelAdapter(ABC):
    """Capabilities the engine needs from a model implementation."""

    @abstractmethod
    def model_kind(self, model: Any) -> ModelKind:
        """Whether ``model`` is a classifier or a regressor."""

    @abstractmethod
    def predict_as_frame(self, model: Any, rows: pd.DataFrame) -> pd.DataFrame:
        """Predictions for ``rows``, one column per class or a single column."""


def probabilities_frame(probabilities: Any, labels: Optional[Sequence[Any]] = None) -> pd.DataFrame:
    """Class probability frame with every row clipped to [0, 1] and summing to 1."""
    probabilities = np.asarray(probabilities, dtype=float)
    if probabilities.ndim == 1:
        probabilities = np.column_stack([1.0 - probabilities, probabilities])

    probabilities = np.clip(probabilities, 0.0, 1.0)
    totals = probabilities.sum(axis=1, keepdims=True)
    probabilities = np.divide(
        probabilities, totals,
        out=np.full_like(probabilities, 1.0 / probabilities.shape[1]),
        where=totals > 0,
    )

    columns = list(labels) if labels is not None else list(range(probabilities.shape[1]))
    if len(columns) != probabilities.shape[1]:
        raise ValueError(
            f"Model returned {probabilities.shape[1]} probability columns for {len(columns)} labels"
        )
    return pd.DataFrame(probabilities, columns=columns)


def regression_frame(predictions: Any) -> pd.DataFrame:
    predictions = np.asarray(predictions, dtype=float).reshape(-1)
    return pd.DataFrame({REGRESSION_COLUMN: predictions})


# =============================================================================
# BUILT-IN ADAPTERS
# =============================================================================

class SklearnClassifierAdapter(ModelAdapter):
    """Estimators exposing ``predict_proba`` and ``classes_``."""

    def model_kind(self, model: Any) -> ModelKind:
        return ModelKind.CLASSIFICATION

    def predict_as_frame(self, model: Any, rows: pd.DataFrame) -> pd.DataFrame:
        if not hasattr(model, "predict_proba"):
            raise TypeError(f"{type(model).__name__} does not provide predict_proba")
        labels = getattr(model, "classes_", None)
        return probabilities_frame(model.predict_proba(rows), labels)


class SklearnRegressorAdapter(ModelAdapter):
    """Estimators exposing ``predict``."""

    def model_kind(self, model: Any) -> ModelKind:
        return ModelKind.REGRESSION

    def predict_as_frame(self, model: Any, rows: pd.DataFrame) -> pd.DataFrame:
        return regression_frame(model.predict(rows))


class PipelineAdapter(ModelAdapter):
    """scikit-learn pipelines; the kind follows the final step."""

    def model_kind(self, model: Pipeline) -> ModelKind:
        if is_classifier(model):
            return ModelKind.CLASSIFICATION
        if is_regressor(model):
            return ModelKind.REGRESSION
        final_step = model.steps[-1][1]
        raise UnsupportedModelError(type(final_step), REQUIRED_CAPABILITIES)

    def predict_as_frame(self, model: Pipeline, rows: pd.DataFrame) -> pd.DataFrame:
        if self.model_kind(model) == ModelKind.CLASSIFICATION:
            return SklearnClassifierAdapter().predict_as_frame(model, rows)
        return SklearnRegressorAdapter().predict_as_frame(model, rows)


@dataclass(frozen=True)
class PredictionFunction:
    """
    A plain prediction callable with a declared kind.

    ``func`` receives a DataFrame of feature rows and returns either a
    DataFrame or an array: N x C probabilities for classification (``labels``
    names the columns) or N predictions for regression. Use it to wrap
    remote scoring endpoints or models from frameworks without an adapter.
    """
    func: Callable[[pd.DataFrame], Any]
    kind: ModelKind = ModelKind.REGRESSION
    labels: Optional[Sequence[Any]] = None

    def __call__(self, rows: pd.DataFrame) -> Any:
        return self.func(rows)


class PredictionFunctionAdapter(ModelAdapter):

    def model_kind(self, model: PredictionFunction) -> ModelKind:
        return ModelKind(model.kind)

    def predict_as_frame(self, model: PredictionFunction, rows: pd.DataFrame) -> pd.DataFrame:
        output = model(rows)
        if self.model_kind(model) == ModelKind.CLASSIFICATION:
            if isinstance(output, pd.DataFrame):
                return probabilities_frame(output.to_numpy(), model.labels or list(output.columns))
            return probabilities_frame(output, model.labels)

        if isinstance(output, pd.DataFrame):
            if output.shape[1] != 1:
                raise ValueError(f"Regression function returned {output.shape[1]} columns, expected 1")
            output = output.iloc[:, 0]
        return regression_frame(output)


# =============================================================================
# REGISTRY
# =============================================================================

_ADAPTER_REGISTRY: Dict[type, ModelAdapter] = {}
_registry_lock = threading.Lock()


def missing_capabilities(adapter: Any) -> List[str]:
    """Capability methods ``adapter`` does not provide."""
    return [name for name in REQUIRED_CAPABILITIES if not callable(getattr(adapter, name, None))]


def register_adapter(model_type: type, adapter: Any) -> None:
    """
    Register the adapter used for ``model_type`` and its subclasses.

    The registry is append-only: a type can be registered once.

    Args:
        model_type: Model class the adapter handles
        adapter: Object providing ``model_kind`` and ``predict_as_frame``
    """
    if not isinstance(model_type, type):
        raise TypeError(f"model_type must be a class, got {model_type!r}")

    missing = missing_capabilities(adapter)
    if missing:
        raise TypeError(
            f"Adapter for {model_type.__name__} is missing capability methods: {', '.join(missing)}"
        )

    with _registry_lock:
        if model_type in _ADAPTER_REGISTRY:
            raise ValueError(f"An adapter is already registered for {model_type.__name__}")
        _ADAPTER_REGISTRY[model_type] = adapter

    logger.debug(f"Registered {type(adapter).__name__} for {model_type.__name__}")


def resolve_adapter(model: Any) -> ModelAdapter:
    """
    Adapter for ``model``'s runtime type, searching its MRO.

    Raises:
        UnsupportedModelError: No registered type matches; the error names
            the capability methods a custom adapter must implement.
    """
    with _registry_lock:
        registry = dict(_ADAPTER_REGISTRY)

    for cls in type(model).__mro__:
        adapter = registry.get(cls)
        if adapter is not None:
            return adapter

    raise UnsupportedModelError(type(model), REQUIRED_CAPABILITIES)


def registered_adapters() -> Dict[type, ModelAdapter]:
    """Snapshot of the registry."""
    with _registry_lock:
        return dict(_ADAPTER_REGISTRY)


def _register_builtin_adapters() -> None:
    register_adapter(ClassifierMixin, SklearnClassifierAdapter())
    register_adapter(RegressorMixin, SklearnRegressorAdapter())
    register_adapter(Pipeline, PipelineAdapter())
    register_adapter(PredictionFunction, PredictionFunctionAdapter())


_register_builtin_adapters()


__all__ = [
    "ModelKind", "ModelAdapter", "PredictionFunction",
    "SklearnClassifierAdapter", "SklearnRegressorAdapter", "PipelineAdapter",
    "PredictionFunctionAdapter", "REQUIRED_CAPABILITIES", "REGRESSION_COLUMN",
    "register_adapter", "resolve_adapter", "registered_adapters",
    "missing_capabilities", "probabilities_frame", "regression_frame",
]
