"""
Explanation engine components, leaves first:

- profiler: per-feature distribution summaries built from training data
- sampler: permutations drawn around one instance
- kernel: distance to similarity weights
- selection: feature selection strategies
- surrogate: weighted ridge surrogate and its fit quality
- adapters: model adapter interface and registry
- explainer: the orchestrating Explainer
"""

from local_surrogate.ml.adapters import (
    ModelAdapter,
    ModelKind,
    PredictionFunction,
    register_adapter,
    registered_adapters,
    resolve_adapter,
)
from local_surrogate.ml.explainer import (
    Explainer,
    ExplainerState,
    Explanation,
    ExplanationResult,
    create_explainer,
    quick_explain,
)
from local_surrogate.ml.kernel import SimilarityKernel, default_kernel_width
from local_surrogate.ml.profiler import BinSummary, FeatureKind, FeatureProfile, FeatureProfiler
from local_surrogate.ml.sampler import PerturbationSampler, PerturbedSample
from local_surrogate.ml.selection import FeatureSelector
from local_surrogate.ml.surrogate import SurrogateFit, SurrogateFitter

__all__ = [
    "ModelAdapter", "ModelKind", "PredictionFunction",
    "register_adapter", "registered_adapters", "resolve_adapter",
    "Explainer", "ExplainerState", "Explanation", "ExplanationResult",
    "create_explainer", "quick_explain",
    "SimilarityKernel", "default_kernel_width",
    "BinSummary", "FeatureKind", "FeatureProfile", "FeatureProfiler",
    "PerturbationSampler", "PerturbedSample",
    "FeatureSelector",
    "SurrogateFit", "SurrogateFitter",
]
