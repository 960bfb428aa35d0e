"""Estimator Adapter Framework.

Provides a unified interface for the fixed-effects estimation backends.
"""

from fertility.engine.adapters.base import EstimationResult, EstimatorAdapter
from fertility.engine.adapters.registry import get_adapter, list_adapters

__all__ = [
    "EstimationResult",
    "EstimatorAdapter",
    "get_adapter",
    "list_adapters",
]
