"""
Local Surrogate Explainer

Orchestrates the per-instance explanation pipeline:

    sample permutations -> model predictions -> kernel weights
        -> feature selection -> weighted ridge surrogate -> Explanation

An ``Explainer`` is built once per trained model from its training data.
It profiles the features, resolves the model adapter and then never
changes; each ``explain`` call is independent and may run concurrently
with others.

Features:
- Classification (per-label probabilities) and regression targets
- Explicit labels or the top ``n_labels`` classes of each instance
- Interchangeable feature selection strategies
- Instances explained in parallel on a thread pool
- Permutations sent to the model in batches on a per-instance executor,
  so a slow instance only exhausts its own timeout
- Stage timings (sample, predict, select, fit) reported per call
- Per-instance failures reported next to successful explanations
- Reproducible results through an explicit random seed
"""

import asyncio
import functools
import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, CancelledError, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from local_surrogate.config import ExplainerSettings, get_settings
from local_surrogate.exceptions import (
    AmbiguousTargetError,
    PredictionTimeoutError,
    SelectionError,
)
from local_surrogate.ml.adapters import REGRESSION_COLUMN, ModelAdapter, ModelKind, resolve_adapter
from local_surrogate.ml.kernel import SimilarityKernel
from local_surrogate.ml.profiler import FeatureProfile, FeatureProfiler
from local_surrogate.ml.sampler import PerturbationSampler, PerturbedSample
from local_surrogate.ml.selection import FeatureSelector
from local_surrogate.ml.surrogate import SurrogateFit, SurrogateFitter
from local_surrogate.utils.monitoring import PerformanceProfiler
from local_surrogate.utils.validation import InstancesLike, coerce_instances, validate_training_data

logger = logging.getLogger(__name__)

# Columns of the explanation table consumed by reporting code
OUTPUT_COLUMNS = [
    "instance_id", "label", "feature_description", "feature_weight",
    "model_fit", "model_prediction",
]
EXTRA_COLUMNS = ["model_kind", "feature", "feature_value", "model_intercept", "local_prediction"]

LabelsLike = Union[Any, Sequence[Any]]


class ExplainerState(str, Enum):
    """Lifecycle states of an explainer."""
    CONSTRUCTED = "constructed"
    EXPLAINING = "explaining"


@dataclass(frozen=True)
class Explanation:
    """
    Local explanation of one (instance, label) pair.

    Positive feature weights support the label's prediction, negative ones
    contradict it. ``model_fit`` is the weighted R2 of the surrogate against
    the model's own outputs on the permutations; low or negative values mean
    the explanation should not be trusted.
    """
    instance_id: Any
    label: Any
    model_kind: ModelKind
    features: Tuple[str, ...]
    feature_values: Tuple[Any, ...]
    feature_descriptions: Tuple[str, ...]
    feature_weights: Tuple[float, ...]
    model_fit: float
    model_prediction: float
    model_intercept: float
    local_prediction: float

    @property
    def supports(self) -> Dict[str, float]:
        return {d: w for d, w in zip(self.feature_descriptions, self.feature_weights) if w > 0}

    @property
    def contradicts(self) -> Dict[str, float]:
        return {d: w for d, w in zip(self.feature_descriptions, self.feature_weights) if w < 0}

    def to_records(self) -> List[Dict[str, Any]]:
        """One record per selected feature, using the explanation table columns."""
        return [
            {
                "instance_id": self.instance_id,
                "label": self.label,
                "feature_description": description,
                "feature_weight": weight,
                "model_fit": self.model_fit,
                "model_prediction": self.model_prediction,
                "model_kind": self.model_kind.value,
                "feature": feature,
                "feature_value": value,
                "model_intercept": self.model_intercept,
                "local_prediction": self.local_prediction,
            }
            for feature, value, description, weight in zip(
                self.features, self.feature_values, self.feature_descriptions, self.feature_weights
            )
        ]


@dataclass
class ExplanationResult:
    """Explanations of a batch, in instance order, plus failures keyed by instance id."""
    explanations: List[Explanation] = field(default_factory=list)
    failures: Dict[Any, Exception] = field(default_factory=dict)
    # Per-stage timing statistics of the call, in milliseconds
    timings: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def for_instance(self, instance_id: Any) -> List[Explanation]:
        return [e for e in self.explanations if e.instance_id == instance_id]

    def to_frame(self) -> pd.DataFrame:
        """The explanation table, one row per (instance, label, feature)."""
        records = [record for explanation in self.explanations for record in explanation.to_records()]
        return pd.DataFrame.from_records(records, columns=OUTPUT_COLUMNS + EXTRA_COLUMNS)


class Explainer:
    """
    Reusable explainer for one trained model.

    Args:
        training_data: Training observations used to profile the features
        model: Trained model; its type must have a registered adapter
        response: Name of the response column in ``training_data`` to exclude
        n_bins: Bins per continuous feature (defaults to settings)
        quantile_bins: Quantile bins (default) or equal-width bins
        categorical_features: Columns to treat as categorical regardless of dtype
        settings: Settings providing defaults; the cached settings when omitted

    Raises:
        UnsupportedModelError: No adapter is registered for the model type
        InvalidFeatureError: A feature has an unsupported dtype
    """

    def __init__(
        self,
        training_data: pd.DataFrame,
        model: Any,
        response: Optional[str] = None,
        n_bins: Optional[int] = None,
        quantile_bins: Optional[bool] = None,
        categorical_features: Optional[Sequence[str]] = None,
        settings: Optional[ExplainerSettings] = None,
    ):
        settings = settings or get_settings()

        adapter = resolve_adapter(model)
        model_kind = ModelKind(adapter.model_kind(model))

        data = validate_training_data(training_data, response).rename(columns=str)
        profiler = FeatureProfiler(
            n_bins=n_bins if n_bins is not None else settings.n_bins,
            quantile_bins=quantile_bins if quantile_bins is not None else settings.quantile_bins,
            categorical_features=[str(name) for name in categorical_features or ()],
        )
        profiles = profiler.fit(data)
        feature_names = list(data.columns)

        self._settings = settings
        self._model = model
        self._adapter = adapter
        self._model_kind = model_kind
        self._response = response
        self._feature_names = tuple(feature_names)
        self._profiles = MappingProxyType(profiles)
        self._sampler = PerturbationSampler(self._profiles, self._feature_names)
        self._active_calls = 0
        self._calls_lock = threading.Lock()

        logger.info(
            f"Explainer ready for {type(model).__name__} ({model_kind.value}) "
            f"with {len(feature_names)} features"
        )

    # ------------------------------------------------------------------ state

    @property
    def model(self) -> Any:
        return self._model

    @property
    def adapter(self) -> ModelAdapter:
        return self._adapter

    @property
    def model_kind(self) -> ModelKind:
        return self._model_kind

    @property
    def response(self) -> Optional[str]:
        return self._response

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return self._feature_names

    @property
    def profiles(self) -> Mapping[str, FeatureProfile]:
        return self._profiles

    @property
    def usable_features(self) -> List[str]:
        """Features that are not degenerate and can be selected."""
        return [name for name in self._feature_names if not self._profiles[name].degenerate]

    @property
    def state(self) -> ExplainerState:
        with self._calls_lock:
            active = self._active_calls
        return ExplainerState.EXPLAINING if active else ExplainerState.CONSTRUCTED

    def __repr__(self) -> str:
        return (
            f"Explainer(model={type(self._model).__name__}, kind={self._model_kind.value}, "
            f"features={len(self._feature_names)})"
        )

    # ---------------------------------------------------------------- explain

    def explain(
        self,
        instances: InstancesLike,
        labels: Optional[LabelsLike] = None,
        n_labels: Optional[int] = None,
        n_features: Optional[int] = None,
        n_permutations: Optional[int] = None,
        dist_fun: Optional[str] = None,
        kernel_width: Optional[float] = None,
        feature_select: Optional[str] = None,
        random_state: Optional[int] = None,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
        batch_size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExplanationResult:
        """
        Explain the model's predictions for ``instances``.

        Args:
            instances: Rows to explain (DataFrame, Series, mapping or list of mappings);
                the index provides instance identifiers
            labels: Class label(s) to explain (classification only)
            n_labels: Explain the ``n_labels`` most probable classes of each instance
            n_features: Features per explanation; all usable features when omitted
            n_permutations: Permutations per instance, including the instance itself
            dist_fun: ``"gower"`` or a scipy pairwise metric
            kernel_width: Kernel width; 0.75 * sqrt(number of features) when omitted
            feature_select: ``auto``, ``forward_selection``, ``highest_weights``,
                ``lasso_path`` or ``tree``
            random_state: Seed for permutations and tie-breaking
            timeout: Seconds allowed for one instance's model predictions
            max_workers: Threads explaining instances concurrently
            batch_size: Rows per prediction call; one call per instance when omitted
            cancel_event: When set, instances not yet started are skipped

        Returns:
            ExplanationResult with one Explanation per (instance, label), ordered by
            instance then label, the per-instance failures and per-stage timings

        Raises:
            AmbiguousTargetError: Classification call without exactly one of labels/n_labels
            SelectionError: ``n_features`` exceeds the non-degenerate feature count
        """
        settings = self._settings
        frame = coerce_instances(instances, list(self._feature_names))
        labels = self._check_target(labels, n_labels)
        n_features = self._check_n_features(n_features)

        n_permutations = n_permutations if n_permutations is not None else settings.n_permutations
        if n_permutations < 2:
            raise ValueError(f"n_permutations must be at least 2, got {n_permutations}")

        kernel = SimilarityKernel(
            dist_fun=dist_fun or settings.dist_fun,
            kernel_width=kernel_width if kernel_width is not None else settings.kernel_width,
        )
        selector = FeatureSelector(
            method=feature_select or settings.feature_select.value,
            alpha=settings.ridge_alpha,
        )
        fitter = SurrogateFitter(alpha=settings.ridge_alpha)

        timeout = timeout if timeout is not None else settings.prediction_timeout
        batch_size = batch_size if batch_size is not None else settings.batch_size
        max_workers = max_workers if max_workers is not None else settings.max_workers
        prediction_workers = settings.prediction_workers
        random_state = random_state if random_state is not None else settings.random_state

        seeds = np.random.SeedSequence(random_state).spawn(len(frame))
        instance_ids = list(frame.index)

        logger.info(
            f"Explaining {len(frame)} instance(s) with {n_permutations} permutations, "
            f"n_features={n_features}, feature_select={selector.method}"
        )
        start_time = time.perf_counter()

        profiler = PerformanceProfiler()
        self._enter()
        try:
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="surrogate-explain") as pool:
                futures = [
                    pool.submit(
                        self._explain_guarded,
                        instance_id, frame.iloc[position], cancel_event,
                        labels=labels,
                        n_labels=n_labels,
                        n_features=n_features,
                        n_permutations=n_permutations,
                        kernel=kernel,
                        selector=selector,
                        fitter=fitter,
                        rng=np.random.default_rng(seeds[position]),
                        timeout=timeout,
                        batch_size=batch_size,
                        prediction_workers=prediction_workers,
                        profiler=profiler,
                    )
                    for position, instance_id in enumerate(instance_ids)
                ]
                outcomes = [future.result() for future in futures]
        finally:
            self._exit()

        result = ExplanationResult(timings=profiler.get_all_profiles())
        for instance_id, outcome in zip(instance_ids, outcomes):
            if isinstance(outcome, Exception):
                result.failures[instance_id] = outcome
            else:
                result.explanations.extend(outcome)

        logger.info(
            f"Explained {len(instance_ids) - len(result.failures)}/{len(instance_ids)} instance(s) "
            f"in {time.perf_counter() - start_time:.2f}s"
        )
        return result

    async def aexplain(self, instances: InstancesLike, **kwargs) -> ExplanationResult:
        """Run ``explain`` in the event loop's default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.explain, instances, **kwargs))

    # ---------------------------------------------------------------- helpers

    def _enter(self) -> None:
        with self._calls_lock:
            self._active_calls += 1

    def _exit(self) -> None:
        with self._calls_lock:
            self._active_calls -= 1

    def _check_target(self, labels: Optional[LabelsLike], n_labels: Optional[int]) -> Optional[List[Any]]:
        if self._model_kind == ModelKind.REGRESSION:
            if labels is not None or n_labels is not None:
                logger.debug("labels/n_labels are ignored when explaining a regression model")
            return None

        if (labels is None) == (n_labels is None):
            raise AmbiguousTargetError(
                "Classification explanations need exactly one of 'labels' or 'n_labels'"
            )
        if n_labels is not None:
            if isinstance(n_labels, bool) or not isinstance(n_labels, (int, np.integer)) or n_labels < 1:
                raise ValueError(f"n_labels must be a positive integer, got {n_labels!r}")
            return None

        if isinstance(labels, (list, tuple, np.ndarray, pd.Index)):
            labels = list(labels)
        else:
            labels = [labels]
        if not labels:
            raise AmbiguousTargetError("'labels' must name at least one class")
        return labels

    def _check_n_features(self, n_features: Optional[int]) -> int:
        available = len(self.usable_features)
        if n_features is None:
            n_features = available
        if n_features < 1 and available:
            raise ValueError(f"n_features must be at least 1, got {n_features}")
        if n_features > available or available == 0:
            raise SelectionError(n_features, available)
        return int(n_features)

    def _explain_guarded(
        self,
        instance_id: Any,
        instance: pd.Series,
        cancel_event: Optional[threading.Event],
        **kwargs,
    ) -> Union[List[Explanation], Exception]:
        if cancel_event is not None and cancel_event.is_set():
            return CancelledError(f"Explanation of instance {instance_id!r} cancelled")
        try:
            return self._explain_instance(instance_id, instance, **kwargs)
        except Exception as e:
            logger.warning(f"Explanation of instance {instance_id!r} failed: {e}")
            return e

    def _explain_instance(
        self,
        instance_id: Any,
        instance: pd.Series,
        labels: Optional[List[Any]],
        n_labels: Optional[int],
        n_features: int,
        n_permutations: int,
        kernel: SimilarityKernel,
        selector: FeatureSelector,
        fitter: SurrogateFitter,
        rng: np.random.Generator,
        timeout: Optional[float],
        batch_size: Optional[int],
        prediction_workers: int,
        profiler: PerformanceProfiler,
    ) -> List[Explanation]:
        with profiler.profile("sample"):
            sample = self._sampler.sample(instance, n_permutations, rng, instance_id)

        with profiler.profile("predict"):
            predictions = self._predict(sample, timeout, batch_size, prediction_workers)

        sample = sample.with_weights(kernel(sample.recoded))

        explanations = []
        for label in self._target_labels(predictions, labels, n_labels):
            target = predictions[label].to_numpy(dtype=float)

            with profiler.profile("select"):
                selected = selector.select(
                    sample.recoded, target, sample.weights, n_features,
                    candidates=sample.usable_features, rng=rng,
                )
            with profiler.profile("fit"):
                fit = fitter.fit(sample.recoded, target, sample.weights, selected)

            explanations.append(self._build_explanation(sample, instance, label, target[0], fit))

        return explanations

    def _predict(
        self,
        sample: PerturbedSample,
        timeout: Optional[float],
        batch_size: Optional[int],
        prediction_workers: int,
    ) -> pd.DataFrame:
        """
        Model output for every permutation of one instance.

        Each instance gets its own executor, so the timeout only ever counts
        this instance's calls. Calls still running at the timeout cannot be
        interrupted; they finish in the background while queued batches are
        dropped.
        """
        rows = sample.rows
        step = batch_size or len(rows)
        batches = [rows.iloc[start:start + step] for start in range(0, len(rows), step)]

        predict_pool = ThreadPoolExecutor(
            max_workers=min(len(batches), prediction_workers),
            thread_name_prefix=f"surrogate-predict-{sample.instance_id}",
        )
        try:
            futures = [
                predict_pool.submit(self._adapter.predict_as_frame, self._model, batch)
                for batch in batches
            ]

            done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
            if pending:
                failed = [f for f in done if f.exception() is not None]
                if failed:
                    raise failed[0].exception()
                raise PredictionTimeoutError(sample.instance_id, timeout)

            predictions = pd.concat([future.result() for future in futures], ignore_index=True)
        finally:
            predict_pool.shutdown(wait=False, cancel_futures=True)

        if len(predictions) != len(rows):
            raise ValueError(f"Model returned {len(predictions)} predictions for {len(rows)} rows")
        return predictions

    def _target_labels(
        self,
        predictions: pd.DataFrame,
        labels: Optional[List[Any]],
        n_labels: Optional[int],
    ) -> List[Any]:
        if self._model_kind == ModelKind.REGRESSION:
            return [REGRESSION_COLUMN]

        if n_labels is not None:
            ranked = predictions.iloc[0].sort_values(ascending=False, kind="stable")
            return list(ranked.index[:n_labels])

        unknown = [label for label in labels if label not in predictions.columns]
        if unknown:
            raise ValueError(f"Labels {unknown} not among model classes {list(predictions.columns)}")
        return labels

    def _build_explanation(
        self,
        sample: PerturbedSample,
        instance: pd.Series,
        label: Any,
        prediction: float,
        fit: SurrogateFit,
    ) -> Explanation:
        features = [sample.feature_names[i] for i in fit.feature_indices]
        output_label = label
        if self._model_kind == ModelKind.REGRESSION:
            output_label = self._response or REGRESSION_COLUMN

        return Explanation(
            instance_id=sample.instance_id,
            label=output_label,
            model_kind=self._model_kind,
            features=tuple(features),
            feature_values=tuple(instance[name] for name in features),
            feature_descriptions=tuple(sample.descriptions[i] for i in fit.feature_indices),
            feature_weights=tuple(float(w) for w in fit.coefficients),
            model_fit=fit.r2,
            model_prediction=float(prediction),
            model_intercept=fit.intercept,
            local_prediction=fit.local_prediction,
        )


# Utility functions

def create_explainer(
    training_data: pd.DataFrame,
    model: Any,
    response: Optional[str] = None,
    **kwargs,
) -> Explainer:
    """Factory function to create an Explainer."""
    return Explainer(training_data, model, response=response, **kwargs)


def quick_explain(
    training_data: pd.DataFrame,
    model: Any,
    instances: InstancesLike,
    response: Optional[str] = None,
    **explain_kwargs,
) -> pd.DataFrame:
    """Build an explainer and return the explanation table for ``instances``."""
    explainer = create_explainer(training_data, model, response=response)
    result = explainer.explain(instances, **explain_kwargs)
    for instance_id, error in result.failures.items():
        logger.warning(f"Instance {instance_id!r} not explained: {error}")
    return result.to_frame()


__all__ = [
    "Explainer", "ExplainerState", "Explanation", "ExplanationResult",
    "OUTPUT_COLUMNS", "EXTRA_COLUMNS", "create_explainer", "quick_explain",
]
