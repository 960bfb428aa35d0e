"""
Panel, derived variable, sample and specification modules.
"""

from fertility.model.derived import DerivedVariableEngine
from fertility.model.panel_data import PanelBuilder, PanelValidation
from fertility.model.sample import FilterReport, SampleFilter, get_sample_filter
from fertility.model.specification import (
    ALL_SPECS,
    RegressionSpec,
    SpecificationBuilder,
    ValidatedSpec,
    get_spec_set,
)

__all__ = [
    "DerivedVariableEngine",
    "PanelBuilder",
    "PanelValidation",
    "FilterReport",
    "SampleFilter",
    "get_sample_filter",
    "ALL_SPECS",
    "RegressionSpec",
    "SpecificationBuilder",
    "ValidatedSpec",
    "get_spec_set",
]
