"""
Derived variable engine.

Pure, panel-aware transformations of normalized household-year fields.
Each step appends columns to a copy of its input and never removes rows.
Invalid arithmetic (log of a non-positive value, division by zero or by a
missing denominator) produces a missing value rather than an error.
"""

import logging

import numpy as np
import pandas as pd

from fertility.data.constants import PROPERTY_VALUE_UNIT
from fertility.errors import ConfigurationError
from fertility.model.panel_data import PanelBuilder

logger = logging.getLogger(__name__)

STAGE = "derived_variables"


# ---------------------------------------------------------------------------
# Elementwise helpers
# ---------------------------------------------------------------------------

def safe_log(series: pd.Series) -> pd.Series:
    """Natural log; non-positive or missing inputs give missing."""
    values = pd.to_numeric(series, errors="coerce").astype(float)
    positive = values.where(values > 0)
    return np.log(positive)


def safe_log1p(series: pd.Series) -> pd.Series:
    """ln(1 + x); inputs at or below -1 give missing, so zero maps to 0."""
    values = pd.to_numeric(series, errors="coerce").astype(float)
    admissible = values.where(values > -1)
    return np.log1p(admissible)


def safe_divide(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Ratio; a zero or missing denominator gives missing."""
    num = pd.to_numeric(numerator, errors="coerce").astype(float)
    den = pd.to_numeric(denominator, errors="coerce").astype(float)
    den = den.where(den != 0)
    return num / den


def interaction(left: pd.Series, right: pd.Series) -> pd.Series:
    """Product of two already-scaled covariates."""
    return left.astype(float) * right.astype(float)


def fertility_indicator(birth_year: pd.Series, year: pd.Series) -> pd.Series:
    """1 if the child was born in the record's year, 0 otherwise, missing if either is missing."""
    by = pd.to_numeric(birth_year, errors="coerce").astype(float)
    yr = pd.to_numeric(year, errors="coerce").astype(float)
    out = (by == yr).astype(float)
    return out.where(by.notna() & yr.notna())


def age_at_birth(age: pd.Series, year: pd.Series, birth_year: pd.Series) -> pd.Series:
    """Current age minus years elapsed since the birth."""
    a = pd.to_numeric(age, errors="coerce").astype(float)
    yr = pd.to_numeric(year, errors="coerce").astype(float)
    by = pd.to_numeric(birth_year, errors="coerce").astype(float)
    return a - (yr - by)


def group_mean(df: pd.DataFrame, column: str, by: list[str]) -> pd.Series:
    """
    Within-group mean of ``column`` broadcast back to rows.

    Only non-missing inputs enter the mean. A group with no non-missing
    input, or a row whose group key is missing, gets missing.
    """
    return df.groupby(by, dropna=True)[column].transform("mean").reindex(df.index)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class DerivedVariableEngine:
    """Builds derived household-year variables on a declared panel."""

    HOUSEHOLD_INPUTS = ["age", "year", "birth_yc", "income", "asset", "house_value", "house_area"]

    def __init__(self, panel: PanelBuilder | None = None):
        self.panel = panel or PanelBuilder()

    def run(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Compute every derived variable.

        Args:
            df: Declared household-year panel

        Returns:
            New table with derived columns appended
        """
        self._require(df, self.HOUSEHOLD_INPUTS + ["cid"] + self.panel.keys)

        out = self.add_household_variables(df)
        out = self.add_community_prices(out)
        out = self.add_price_lags(out, "cm_price")

        logger.info(f"Derived variables appended: {len(out.columns) - len(df.columns)} columns")
        return out

    def add_household_variables(self, df: pd.DataFrame) -> pd.DataFrame:
        """Fertility outcome, age at birth, log transforms and own price per m2."""
        self._require(df, self.HOUSEHOLD_INPUTS)
        out = df.copy()

        out["fertility"] = fertility_indicator(out["birth_yc"], out["year"])
        out["birth_age"] = age_at_birth(out["age"], out["year"], out["birth_yc"])
        out["age_sq"] = out["age"] ** 2 / 100

        out["ln_income"] = safe_log1p(out["income"])
        out["ln_asset"] = safe_log1p(out["asset"])
        out["ln_property"] = safe_log1p(out["house_value"])

        out["price_sqm"] = safe_divide(
            PROPERTY_VALUE_UNIT.apply(out["house_value"]), out["house_area"]
        )
        return out

    def add_community_prices(
        self,
        df: pd.DataFrame,
        price: str = "price_sqm",
        community: str = "cid",
    ) -> pd.DataFrame:
        """Community-year mean price per m2 and its log."""
        self._require(df, [price, community, self.panel.time])
        out = df.copy()

        out["cm_price"] = group_mean(out, price, [community, self.panel.time])
        out["ln_cm_price"] = safe_log(out["cm_price"])

        n_groups = out.groupby([community, self.panel.time]).ngroups
        n_empty = int(out.groupby([community, self.panel.time])["cm_price"].first().isna().sum())
        logger.info(f"Community-year prices: {n_groups} groups, {n_empty} without any price input")
        return out

    def add_price_lags(self, df: pd.DataFrame, price: str, prefix: str = "") -> pd.DataFrame:
        """
        Lagged levels and lagged change of a price series.

        lag1 = P(t-1), lag2 = P(t-2), diff = lag1 - lag2; the log of the
        change is defined only for a strictly positive change.
        """
        out = df.copy()
        lag1 = self.panel.lag(out, price, 1)
        lag2 = self.panel.lag(out, price, 2)

        out[f"{prefix}lag1_price"] = lag1.astype(float)
        out[f"{prefix}lag2_price"] = lag2.astype(float)
        out[f"{prefix}diff_price"] = out[f"{prefix}lag1_price"] - out[f"{prefix}lag2_price"]
        out[f"{prefix}ln_diff_price"] = safe_log(out[f"{prefix}diff_price"])
        return out

    def _require(self, df: pd.DataFrame, columns: list[str]) -> None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ConfigurationError(
                f"Derived variables need missing field(s): {missing}",
                stage=STAGE,
                field=missing[0],
            )
