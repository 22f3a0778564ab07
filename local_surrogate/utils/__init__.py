"""
Utility functions shared by the explanation engine.

- validation.py: checks on training data and instances to explain
- monitoring.py: logging setup and pipeline stage timings
"""

from local_surrogate.utils.monitoring import (
    PerformanceProfiler,
    setup_logging,
)
from local_surrogate.utils.validation import (
    check_missing_values,
    coerce_instances,
    validate_training_data,
)

__all__ = [
    "PerformanceProfiler", "setup_logging",
    "check_missing_values", "coerce_instances", "validate_training_data",
]
