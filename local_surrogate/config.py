"""
Local Surrogate - Configuration
===============================

Settings for the explanation engine, loaded from environment variables
(prefix ``LOCAL_SURROGATE_``) and an optional ``.env`` file.

Every field has a default, so ``ExplainerSettings()`` is always usable.
Keyword arguments passed directly to ``Explainer`` or ``Explainer.explain``
take precedence over these values.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FeatureSelectMethod(str, Enum):
    """Feature selection strategies understood by the selector."""
    AUTO = "auto"
    FORWARD_SELECTION = "forward_selection"
    HIGHEST_WEIGHTS = "highest_weights"
    LASSO_PATH = "lasso_path"
    TREE = "tree"


# Pairwise metrics accepted besides gower, as named by scipy.spatial.distance.cdist
SUPPORTED_DISTANCES = (
    "gower", "euclidean", "manhattan", "cityblock", "chebyshev",
    "cosine", "hamming", "jaccard", "sqeuclidean", "canberra", "braycurtis",
)


# =============================================================================
# SETTINGS
# =============================================================================

class ExplainerSettings(BaseSettings):
    """Defaults for explainer construction and explanation calls."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_SURROGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
    )

    # Profiling
    n_bins: int = Field(default=4, ge=2, description="Bins per continuous feature")
    quantile_bins: bool = Field(default=True, description="Quantile (True) or equal-width (False) bins")

    # Sampling and weighting
    n_permutations: int = Field(default=5000, ge=2)
    dist_fun: str = "gower"
    kernel_width: Optional[float] = Field(default=None, gt=0, description="None means 0.75 * sqrt(F)")

    # Selection and fitting
    feature_select: FeatureSelectMethod = FeatureSelectMethod.AUTO
    ridge_alpha: float = Field(default=0.001, ge=0)

    # Execution
    max_workers: Optional[int] = Field(default=None, ge=1)
    batch_size: Optional[int] = Field(default=None, ge=1, description="Rows per prediction call")
    prediction_workers: int = Field(default=4, ge=1, description="Concurrent prediction calls per instance")
    prediction_timeout: Optional[float] = Field(default=None, gt=0, description="Seconds")
    random_state: Optional[int] = Field(default=None, ge=0)

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: str = Field(default="text", pattern="^(json|text)$")

    @field_validator("dist_fun")
    @classmethod
    def check_distance(cls, v: str) -> str:
        """Reject distance names the kernel cannot compute."""
        v = v.lower()
        if v not in SUPPORTED_DISTANCES:
            raise ValueError(f"Unsupported distance '{v}'. Choose one of: {', '.join(SUPPORTED_DISTANCES)}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> ExplainerSettings:
    """Get cached settings."""
    return ExplainerSettings()


__all__ = [
    "ExplainerSettings", "LogLevel", "FeatureSelectMethod",
    "SUPPORTED_DISTANCES", "get_settings",
]
