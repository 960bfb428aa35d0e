"""
Estimator Adapter Base Classes.

Defines the EstimationResult dataclass and the EstimatorAdapter ABC that
every estimation backend implements. Adapters receive the final table and a
validated RegressionSpec; they never modify the table.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from fertility.model.specification import RegressionSpec, SpecificationBuilder


@dataclass
class EstimationResult:
    """Standardized estimation result.

    One result per specification. ``point``/``se``/``pvalue`` refer to the
    coefficient of interest (``spec.treatment``); the full coefficient table
    is kept in ``coefficients``/``std_errors``/``pvalues``.
    """

    spec_name: str
    design: str
    treatment: str
    point: float
    se: float
    ci_lower: float
    ci_upper: float
    pvalue: float | None
    n_obs: int
    method_name: str
    library: str
    library_version: str
    coefficients: dict[str, float] = field(default_factory=dict)
    std_errors: dict[str, float] = field(default_factory=dict)
    pvalues: dict[str, float] = field(default_factory=dict)
    fe_levels: dict[str, int] = field(default_factory=dict)
    n_clusters: int = 0
    diagnostics: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EstimatorAdapter(ABC):
    """Abstract base class for estimation adapters.

    Each adapter wraps a specific estimation library and translates a
    RegressionSpec into the library's native API.
    """

    @abstractmethod
    def estimate(self, table: pd.DataFrame, spec: RegressionSpec) -> EstimationResult:
        """Run estimation and return a standardized result.

        Args:
            table: Final estimation table (read only)
            spec: Validated regression specification

        Returns:
            Standardized estimation result
        """
        ...

    @abstractmethod
    def supported_designs(self) -> list[str]:
        """Return the design IDs this adapter supports."""
        ...

    def validate_request(self, table: pd.DataFrame, spec: RegressionSpec) -> list[str]:
        """Validate a spec before estimation. Returns a list of error messages.

        An empty list means the request is valid.
        """
        errors = []
        if spec.design not in self.supported_designs():
            errors.append(
                f"{type(self).__name__} does not support design '{spec.design}'"
            )
        for c in spec.fields():
            if c not in table.columns:
                errors.append(f"Column '{c}' not in DataFrame")
        return errors

    def prepare_sample(self, table: pd.DataFrame, spec: RegressionSpec) -> pd.DataFrame:
        """Complete-case estimation sample with grouping columns as strings.

        Numeric columns are cast to float; fixed-effect and cluster columns
        become plain strings so every backend treats them as categories.
        """
        sample = SpecificationBuilder(table).estimation_sample(spec)
        groups = list(dict.fromkeys(list(spec.fixed_effects) + [spec.cluster]))
        for col in sample.columns:
            if col in groups:
                sample[col] = sample[col].astype(str)
            else:
                sample[col] = pd.to_numeric(sample[col], errors="coerce").astype(float)
        return sample.reset_index(drop=True)

    @staticmethod
    def fe_levels(sample: pd.DataFrame, spec: RegressionSpec) -> dict[str, int]:
        """Number of absorbed levels per fixed-effect variable."""
        return {fe: int(sample[fe].nunique()) for fe in spec.fixed_effects}

    @staticmethod
    def _to_float_dict(series: pd.Series) -> dict[str, float]:
        return {str(k): float(v) for k, v in series.items() if np.isfinite(v)}
