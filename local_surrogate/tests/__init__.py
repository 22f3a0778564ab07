"""
Test package for the local surrogate explanation engine.

Usage:
    pytest
    pytest local_surrogate/tests/test_explainer.py
    pytest -m "not slow"

Shared fixtures (synthetic datasets, trained scikit-learn models and
settings tuned for fast runs) live in conftest.py.
"""
