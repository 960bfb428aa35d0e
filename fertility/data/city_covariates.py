"""
City-level instruments and controls.

Builds one row per (city, year) from administrative statistics and merges
it onto the household panel. Instruments are created once per city-year and
are never recomputed per household. Scaling constants are applied to each
input exactly once, before any interaction is formed.
"""

import logging

import pandas as pd

from fertility.data.constants import (
    FISCAL_DIVISOR_A,
    FISCAL_DIVISOR_B,
    FISCAL_PERCENT,
    GDP_PER_CAPITA,
    LAND_AREA_MULTIPLIER,
    SCHOOLS_PER_CAPITA,
    WATER_NORMALIZER,
)
from fertility.errors import ConfigurationError, DuplicateKeyError
from fertility.model.derived import interaction, safe_divide, safe_log

logger = logging.getLogger(__name__)

STAGE = "instrument_constructor"

CITY_INPUTS = [
    "water_total",
    "hukou_pop",
    "budget_exp",
    "res_land",
    "primary_schools",
    "middle_schools",
    "gdp",
    "loans",
]

COVARIATE_COLUMNS = [
    "fiscal_pc_a",
    "fiscal_pc_b",
    "land_scaled",
    "water_norm",
    "water_land",
    "iv_fiscal_water_a",
    "iv_fiscal_water_b",
    "schools_pc",
    "gdp_pc",
    "ln_gdp",
    "ln_pop",
    "ln_gdp_pc",
    "loan_gdp",
]


class CityCovariateBuilder:
    """Constructs city-year instruments and controls."""

    def __init__(self, city: str = "city", year: str = "year"):
        self.city = city
        self.year = year

    @property
    def keys(self) -> list[str]:
        return [self.city, self.year]

    def build(self, city_stats: pd.DataFrame) -> pd.DataFrame:
        """
        Construct covariates from normalized city-year statistics.

        Args:
            city_stats: City-year table with the administrative inputs

        Returns:
            Table keyed by (city, year) with the constructed covariates
        """
        missing = [c for c in self.keys + CITY_INPUTS if c not in city_stats.columns]
        if missing:
            raise ConfigurationError(
                f"City statistics missing field(s): {missing}", stage=STAGE, field=missing[0]
            )

        df = city_stats[self.keys + CITY_INPUTS].copy()
        self._check_keys(df)
        df[self.year] = pd.to_numeric(df[self.year]).astype("int64")

        # Fiscal capacity: two independent scaling conventions
        fiscal_pc = safe_divide(df["budget_exp"], df["hukou_pop"])
        df["fiscal_pc_a"] = FISCAL_DIVISOR_A.apply(FISCAL_PERCENT.apply(fiscal_pc))
        df["fiscal_pc_b"] = FISCAL_DIVISOR_B.apply(fiscal_pc)

        # Water-to-land intensity
        df["land_scaled"] = LAND_AREA_MULTIPLIER.apply(df["res_land"])
        df["water_norm"] = WATER_NORMALIZER.apply(df["water_total"])
        df["water_land"] = safe_divide(df["water_norm"], df["land_scaled"])

        df["iv_fiscal_water_a"] = interaction(df["fiscal_pc_a"], df["water_land"])
        df["iv_fiscal_water_b"] = interaction(df["fiscal_pc_b"], df["water_land"])

        # Controls
        schools = df["primary_schools"] + df["middle_schools"]
        df["schools_pc"] = SCHOOLS_PER_CAPITA.apply(safe_divide(schools, df["hukou_pop"]))
        df["gdp_pc"] = GDP_PER_CAPITA.apply(safe_divide(df["gdp"], df["hukou_pop"]))
        df["ln_gdp"] = safe_log(df["gdp"])
        df["ln_pop"] = safe_log(df["hukou_pop"])
        df["ln_gdp_pc"] = safe_log(df["gdp_pc"])
        df["loan_gdp"] = safe_divide(df["loans"], df["gdp"])

        out = df[self.keys + COVARIATE_COLUMNS]
        logger.info(
            f"Built city covariates: {len(out)} city-years, "
            f"{out['iv_fiscal_water_a'].notna().sum()} with a defined instrument"
        )
        return out

    def merge(self, panel: pd.DataFrame, covariates: pd.DataFrame) -> pd.DataFrame:
        """
        Left-merge covariates onto the household panel by (city, year).

        Household rows without a matching city-year get missing covariates;
        the merge never adds or drops household rows.
        """
        missing = [c for c in self.keys if c not in panel.columns]
        if missing:
            raise ConfigurationError(
                f"Household panel missing merge key(s): {missing}", stage=STAGE, field=missing[0]
            )
        clash = [c for c in COVARIATE_COLUMNS if c in panel.columns]
        if clash:
            raise ConfigurationError(
                f"Household panel already has covariate column(s) {clash}",
                stage=STAGE,
                field=clash[0],
            )
        self._check_keys(covariates)

        right = covariates.copy()
        right[self.city] = right[self.city].astype(panel[self.city].dtype)
        right[self.year] = right[self.year].astype(panel[self.year].dtype)

        merged = panel.merge(
            right, on=self.keys, how="left", validate="many_to_one", indicator=True
        )
        if len(merged) != len(panel):
            raise RuntimeError(
                f"City merge changed row count: {len(panel)} -> {len(merged)}"
            )

        unmatched = merged["_merge"] == "left_only"
        if unmatched.any():
            cities = sorted(merged.loc[unmatched, self.city].dropna().astype(str).unique())
            logger.warning(
                f"{int(unmatched.sum())} household rows have no city-year covariates "
                f"(cities: {cities[:10]}{'...' if len(cities) > 10 else ''})"
            )
        merged = merged.drop(columns="_merge")
        merged.index = panel.index
        return merged

    def run(self, panel: pd.DataFrame, city_stats: pd.DataFrame) -> pd.DataFrame:
        """Build covariates and merge them onto the panel."""
        return self.merge(panel, self.build(city_stats))

    def _check_keys(self, df: pd.DataFrame) -> None:
        if df[self.keys].isna().any().any():
            raise ConfigurationError(
                "City statistics have rows with a missing (city, year) key",
                stage=STAGE,
                field=self.city,
            )
        dup = df.duplicated(subset=self.keys, keep=False)
        if dup.any():
            raise DuplicateKeyError(self.keys, df.loc[dup, self.keys], stage=STAGE)
