"""
Estimation modules.
"""

from fertility.engine.adapters import EstimationResult, EstimatorAdapter, get_adapter
from fertility.engine.runner import BatchResult, EstimationFailure, EstimationRunner

__all__ = [
    "EstimationResult",
    "EstimatorAdapter",
    "get_adapter",
    "BatchResult",
    "EstimationFailure",
    "EstimationRunner",
]
