"""
Input Validation Utilities
==========================

Checks applied to training data before profiling and to the instances
passed to ``Explainer.explain``. Problems with the shape of the input
raise ``ValueError``/``TypeError``; feature-level problems are the
profiler's concern.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

InstancesLike = Union[pd.DataFrame, pd.Series, Mapping[str, Any], Sequence[Mapping[str, Any]]]


def check_missing_values(df: pd.DataFrame, threshold: float = 0.5) -> Dict[str, Any]:
    """
    Quick missing values check.

    Args:
        df: DataFrame to check
        threshold: Ratio of missing cells above which a column is concerning

    Returns:
        Missing value analysis
    """
    missing_counts = df.isnull().sum()
    missing_ratios = missing_counts / len(df) if len(df) else missing_counts.astype(float)

    total_missing = missing_counts.sum()
    total_cells = df.shape[0] * df.shape[1]
    overall_ratio = total_missing / total_cells if total_cells > 0 else 0

    concerning_columns = missing_ratios[missing_ratios > threshold]

    return {
        'total_missing_cells': int(total_missing),
        'overall_missing_ratio': float(overall_ratio),
        'columns_with_missing': missing_counts[missing_counts > 0].to_dict(),
        'concerning_columns': concerning_columns.to_dict(),
        'is_concerning': len(concerning_columns) > 0 or overall_ratio > threshold
    }


def validate_training_data(
    data: pd.DataFrame,
    response: Optional[str] = None,
) -> pd.DataFrame:
    """
    Validate training data and return the feature columns only.

    Args:
        data: Training observations, one column per feature
        response: Name of the response column to exclude, if present

    Returns:
        Copy of ``data`` without the response column
    """
    if not isinstance(data, pd.DataFrame):
        raise TypeError(f"Training data must be a pandas DataFrame, got {type(data).__name__}")

    if data.empty:
        raise ValueError("Training data is empty")

    if response is not None:
        if response not in data.columns:
            raise ValueError(f"Response column '{response}' not found in training data")
        data = data.drop(columns=[response])

    if data.shape[1] == 0:
        raise ValueError("Training data has no feature columns")

    if data.columns.duplicated().any():
        duplicated = data.columns[data.columns.duplicated()].tolist()
        raise ValueError(f"Duplicate feature columns: {duplicated}")

    missing = check_missing_values(data)
    if missing['total_missing_cells']:
        logger.warning(
            f"Training data has {missing['total_missing_cells']} missing cells; "
            f"they are ignored while profiling"
        )

    return data.copy()


def coerce_instances(instances: InstancesLike, feature_names: List[str]) -> pd.DataFrame:
    """
    Convert the instances to explain into a frame with the training columns.

    Accepts a DataFrame, a single row as a Series or mapping, or a list of
    mappings. Extra columns (such as the response) are dropped; missing
    feature columns are an error. The index is kept as instance identifiers.
    """
    if isinstance(instances, pd.DataFrame):
        frame = instances
    elif isinstance(instances, pd.Series):
        frame = instances.to_frame().T
        if instances.name is not None:
            frame.index = [instances.name]
    elif isinstance(instances, Mapping):
        frame = pd.DataFrame([instances])
    elif isinstance(instances, Sequence) and not isinstance(instances, (str, bytes)):
        frame = pd.DataFrame(list(instances))
    else:
        raise TypeError(f"Cannot explain instances of type {type(instances).__name__}")

    if frame.empty:
        raise ValueError("No instances to explain")

    frame = frame.rename(columns=str)
    missing = [name for name in feature_names if name not in frame.columns]
    if missing:
        raise ValueError(f"Instances are missing feature columns: {missing}")

    if frame.index.has_duplicates:
        logger.warning("Instance index has duplicates; falling back to positional identifiers")
        frame = frame.reset_index(drop=True)

    return frame.loc[:, feature_names]


def is_numeric_feature(series: pd.Series) -> bool:
    """True for real-valued columns; booleans count as categorical."""
    return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)


def is_categorical_feature(series: pd.Series) -> bool:
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(series)
        or pd.api.types.is_string_dtype(series)
        or pd.api.types.is_bool_dtype(series)
    )


def finite_values(series: pd.Series) -> np.ndarray:
    """Non-missing, finite values of a numeric column as float64."""
    values = series.to_numpy(dtype=float, na_value=np.nan)
    return values[np.isfinite(values)]


__all__ = [
    'check_missing_values', 'validate_training_data', 'coerce_instances',
    'is_numeric_feature', 'is_categorical_feature', 'finite_values',
]
