"""
Logging and Timing Utilities
============================

Logging setup for applications embedding the engine, plus a small
thread-safe profiler that records how long each pipeline stage takes
(sampling, prediction, selection, fitting).

Components:
- setup_logging: configure a stream handler with text or JSON records
- PerformanceProfiler: per-operation timing statistics, one per explain call
"""

import json
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from local_surrogate.config import LogLevel, get_settings

logger = logging.getLogger(__name__)

# Keep this many recent timings per operation
MAX_SAMPLES_PER_OPERATION = 1000


# =============================================================================
# LOGGING SETUP
# =============================================================================

class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    level: Optional[Union[str, LogLevel]] = None,
    fmt: Optional[str] = None,
) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Args:
        level: Log level; defaults to the configured ``log_level``
        fmt: ``"text"`` or ``"json"``; defaults to the configured ``log_format``

    Returns:
        The configured package logger
    """
    settings = get_settings()
    level = level or settings.log_level
    if isinstance(level, LogLevel):
        level = level.value
    fmt = fmt or settings.log_format

    package_logger = logging.getLogger("local_surrogate")
    for handler in list(package_logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())

    return package_logger


# =============================================================================
# PERFORMANCE PROFILER
# =============================================================================

class PerformanceProfiler:
    """Timing statistics for pipeline stages, safe to share across worker threads."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.profiles: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    @contextmanager
    def profile(self, operation_name: str):
        """Context manager for profiling code blocks."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            execution_time = (time.perf_counter() - start_time) * 1000
            self.record_execution_time(operation_name, execution_time)

    def record_execution_time(self, operation_name: str, time_ms: float) -> None:
        """Record execution time for an operation."""
        with self._lock:
            times = self.profiles.setdefault(operation_name, [])
            times.append(time_ms)

            if len(times) > MAX_SAMPLES_PER_OPERATION:
                self.profiles[operation_name] = times[-MAX_SAMPLES_PER_OPERATION // 2:]

        self.logger.debug(f"{operation_name} took {time_ms:.2f}ms")

    def get_profile_stats(self, operation_name: str) -> Dict[str, Any]:
        """Get performance statistics for an operation."""
        with self._lock:
            times = sorted(self.profiles.get(operation_name, []))

        if not times:
            return {}

        return {
            "operation": operation_name,
            "sample_count": len(times),
            "avg_time_ms": sum(times) / len(times),
            "min_time_ms": times[0],
            "max_time_ms": times[-1],
            "median_time_ms": times[len(times) // 2],
            "p95_time_ms": times[int(len(times) * 0.95)],
        }

    def get_all_profiles(self) -> Dict[str, Dict[str, Any]]:
        """Get performance statistics for all operations."""
        with self._lock:
            operations = list(self.profiles.keys())
        return {operation: self.get_profile_stats(operation) for operation in operations}


__all__ = [
    "JsonFormatter", "setup_logging",
    "PerformanceProfiler",
]
