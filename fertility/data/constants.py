"""
Scaling constants for city-level covariates and household values.

Every unit conversion used by the pipeline is declared here exactly once.
Stages look constants up by name and apply them through ``ScalingConstant.apply``
so two specifications that should share a scaling cannot drift apart.
"""

from dataclasses import dataclass
from typing import Literal

import pandas as pd


@dataclass(frozen=True)
class ScalingConstant:
    """A named unit conversion."""

    name: str
    value: float
    operation: Literal["multiply", "divide"]
    rationale: str

    def apply(self, series: pd.Series) -> pd.Series:
        if self.operation == "multiply":
            return series * self.value
        return series / self.value


WATER_NORMALIZER = ScalingConstant(
    name="water_normalizer",
    value=7635.0,
    operation="divide",
    rationale=(
        "Total water resources are reported in 10k m3; dividing by 7635 puts the "
        "series on the scale of the national city mean so the intensity ratio is O(1)"
    ),
)

LAND_AREA_MULTIPLIER = ScalingConstant(
    name="land_area_multiplier",
    value=25.0,
    operation="multiply",
    rationale=(
        "Urban residential land is reported in km2 in the yearbook tables; "
        "x25 harmonizes it with the water series before the ratio is formed"
    ),
)

FISCAL_PERCENT = ScalingConstant(
    name="fiscal_percent",
    value=100.0,
    operation="multiply",
    rationale="Family A fiscal capacity is first expressed in percent units",
)

FISCAL_DIVISOR_A = ScalingConstant(
    name="fiscal_divisor_a",
    value=100000.0,
    operation="divide",
    rationale=(
        "Family A: budget expenditure (10k yuan) per registered resident, "
        "x100 then /100000 so the per-capita figure is in 1k-yuan units"
    ),
)

FISCAL_DIVISOR_B = ScalingConstant(
    name="fiscal_divisor_b",
    value=10000.0,
    operation="divide",
    rationale="Family B: budget expenditure per registered resident divided by 10000",
)

SCHOOLS_PER_CAPITA = ScalingConstant(
    name="schools_per_capita",
    value=10000.0,
    operation="multiply",
    rationale="Schools per registered resident rescaled to schools per 10k residents",
)

GDP_PER_CAPITA = ScalingConstant(
    name="gdp_per_capita",
    value=10000.0,
    operation="divide",
    rationale="GDP (10k yuan) per registered resident expressed in 10k yuan per 10k residents",
)

PROPERTY_VALUE_UNIT = ScalingConstant(
    name="property_value_unit",
    value=10000.0,
    operation="multiply",
    rationale="Household property value is reported in 10k yuan; converted to yuan for price per m2",
)


SCALING_CONSTANTS: dict[str, ScalingConstant] = {
    c.name: c
    for c in (
        WATER_NORMALIZER,
        LAND_AREA_MULTIPLIER,
        FISCAL_PERCENT,
        FISCAL_DIVISOR_A,
        FISCAL_DIVISOR_B,
        SCHOOLS_PER_CAPITA,
        GDP_PER_CAPITA,
        PROPERTY_VALUE_UNIT,
    )
}


def scaling_table() -> pd.DataFrame:
    """Scaling constants as a documentation table."""
    return pd.DataFrame(
        [
            {
                "name": c.name,
                "value": c.value,
                "operation": c.operation,
                "rationale": c.rationale,
            }
            for c in SCALING_CONSTANTS.values()
        ]
    )
