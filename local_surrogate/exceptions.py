"""
Exception hierarchy for the local surrogate explanation engine.

Construction-time errors (profiling, adapter resolution) abort explainer
creation. Per-instance errors raised while explaining a batch are collected
on the result object instead of aborting the batch.
"""

from typing import Any, Optional, Sequence


class LocalSurrogateError(Exception):
    """Base class for all explanation engine errors."""


class InvalidFeatureError(LocalSurrogateError):
    """A training feature cannot be profiled (constant or unsupported dtype)."""

    def __init__(self, feature: str, reason: str):
        self.feature = feature
        self.reason = reason
        super().__init__(f"Feature '{feature}' cannot be profiled: {reason}")


class UnsupportedModelError(LocalSurrogateError):
    """No model adapter could be resolved for the model's runtime type."""

    def __init__(self, model_type: type, missing: Sequence[str]):
        self.model_type = model_type
        self.missing = list(missing)
        super().__init__(
            f"No model adapter registered for type '{model_type.__module__}.{model_type.__qualname__}'. "
            f"Register an adapter implementing: {', '.join(self.missing)}"
        )


class AmbiguousTargetError(LocalSurrogateError):
    """A classification explanation was requested without exactly one of labels/n_labels."""


class SelectionError(LocalSurrogateError):
    """The requested number of features cannot be selected."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot select {requested} features: only {available} non-degenerate features available"
        )


class PredictionTimeoutError(LocalSurrogateError):
    """The model adapter did not return predictions within the allotted time."""

    def __init__(self, instance_id: Any, timeout: Optional[float]):
        self.instance_id = instance_id
        self.timeout = timeout
        super().__init__(f"Prediction for instance '{instance_id}' exceeded timeout of {timeout}s")


__all__ = [
    "LocalSurrogateError",
    "InvalidFeatureError",
    "UnsupportedModelError",
    "AmbiguousTargetError",
    "SelectionError",
    "PredictionTimeoutError",
]
