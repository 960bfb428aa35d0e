"""
Estimation sample construction.

Applies an ordered list of named predicates to the derived panel. All
predicates are checked against the table before any row is dropped, so a
misconfigured filter fails without partially mutating the sample. Lags were
materialized on the unfiltered panel and are never recomputed here.

Handles:
- Age-at-birth window and birth cohort restrictions
- Required-field completeness
- Outlier handling (winsorization, robustness price floor)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

import pandas as pd

from config.settings import Settings, get_settings
from fertility.errors import ConfigurationError

logger = logging.getLogger(__name__)

STAGE = "sample_filter"

# Fields that must be non-missing in the estimation sample
REQUIRED_FIELDS = [
    "fertility",
    "ln_cm_price",
    "age",
    "gender",
    "edu",
    "health",
    "hukou",
    "ln_income",
    "ln_asset",
    "city",
]

# Continuous fields capped at the winsorization percentiles
WINSOR_FIELDS = ["ln_income", "ln_asset", "ln_cm_price"]


# ---------------------------------------------------------------------------
# Winsorization
# ---------------------------------------------------------------------------

def winsorize_series(
    series: pd.Series, lower: float, upper: float
) -> tuple[pd.Series, tuple[float, float]]:
    """
    Cap a series at its own ``lower``/``upper`` quantiles.

    Returns:
        Tuple of (capped series, (low cut, high cut)); missing values stay missing
    """
    if not 0.0 <= lower < upper <= 1.0:
        raise ConfigurationError(
            f"Winsorization quantiles must satisfy 0 <= lower < upper <= 1, got ({lower}, {upper})",
            stage=STAGE,
        )
    lo = float(series.quantile(lower))
    hi = float(series.quantile(upper))
    return clip_to_bounds(series, (lo, hi)), (lo, hi)


def clip_to_bounds(series: pd.Series, bounds: tuple[float, float]) -> pd.Series:
    """Cap a series at fixed cut points."""
    lo, hi = bounds
    return series.clip(lower=lo, upper=hi)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

@dataclass
class FilterStep:
    """Outcome of one predicate."""

    name: str
    rows_before: int
    rows_after: int
    cut_points: dict[str, tuple[float, float]] = field(default_factory=dict)

    @property
    def dropped(self) -> int:
        return self.rows_before - self.rows_after


class Predicate(ABC):
    """A named row-membership test or bound."""

    name: str

    @abstractmethod
    def fields(self) -> list[str]:
        """Fields the predicate reads."""
        ...

    @abstractmethod
    def apply(self, df: pd.DataFrame, step: FilterStep) -> pd.DataFrame:
        """Return the filtered (or capped) table."""
        ...


@dataclass
class DropMissing(Predicate):
    """Drop rows missing any of ``columns``."""

    columns: list[str]
    name: str = "drop_missing"

    def fields(self) -> list[str]:
        return list(self.columns)

    def apply(self, df: pd.DataFrame, step: FilterStep) -> pd.DataFrame:
        return df.dropna(subset=self.columns)


@dataclass
class KeepBetween(Predicate):
    """Keep rows with ``lower <= column <= upper``."""

    column: str
    lower: float
    upper: float
    name: str = "keep_between"

    def fields(self) -> list[str]:
        return [self.column]

    def apply(self, df: pd.DataFrame, step: FilterStep) -> pd.DataFrame:
        return df[df[self.column].between(self.lower, self.upper, inclusive="both")]


@dataclass
class KeepAtLeast(Predicate):
    """Keep rows with ``column >= minimum``."""

    column: str
    minimum: float
    name: str = "keep_at_least"

    def fields(self) -> list[str]:
        return [self.column]

    def apply(self, df: pd.DataFrame, step: FilterStep) -> pd.DataFrame:
        return df[df[self.column] >= self.minimum]


@dataclass
class DropBelow(Predicate):
    """Drop rows with ``column < threshold``; missing values are kept."""

    column: str
    threshold: float
    name: str = "drop_below"

    def fields(self) -> list[str]:
        return [self.column]

    def apply(self, df: pd.DataFrame, step: FilterStep) -> pd.DataFrame:
        return df[~(df[self.column] < self.threshold)]


@dataclass
class Winsorize(Predicate):
    """
    Cap ``columns`` at quantiles of the current sample.

    Cut points are computed once, when the predicate runs, and recorded on
    the step. With ``by`` set, quantiles are computed within each group.
    """

    columns: list[str]
    lower: float = 0.01
    upper: float = 0.99
    by: str | None = None
    name: str = "winsorize"

    def fields(self) -> list[str]:
        return list(self.columns) + ([self.by] if self.by else [])

    def apply(self, df: pd.DataFrame, step: FilterStep) -> pd.DataFrame:
        out = df.copy()
        for column in self.columns:
            if self.by is None:
                out[column], bounds = winsorize_series(out[column], self.lower, self.upper)
                step.cut_points[column] = bounds
                continue

            for group, idx in out.groupby(self.by).groups.items():
                capped, bounds = winsorize_series(out.loc[idx, column], self.lower, self.upper)
                out.loc[idx, column] = capped
                step.cut_points[f"{column}@{group}"] = bounds
        return out


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------

@dataclass
class FilterReport:
    """Sample attrition by predicate."""

    config: str
    steps: list[FilterStep] = field(default_factory=list)

    @property
    def rows_in(self) -> int:
        return self.steps[0].rows_before if self.steps else 0

    @property
    def rows_out(self) -> int:
        return self.steps[-1].rows_after if self.steps else 0

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "step": i + 1,
                    "predicate": s.name,
                    "rows_before": s.rows_before,
                    "rows_after": s.rows_after,
                    "dropped": s.dropped,
                    "cut_points": "; ".join(
                        f"{k}=[{lo:.4g}, {hi:.4g}]" for k, (lo, hi) in s.cut_points.items()
                    ),
                }
                for i, s in enumerate(self.steps)
            ]
        )


class SampleFilter:
    """Applies named predicates in order."""

    def __init__(self, predicates: list[Predicate], config: str = "baseline"):
        self.predicates = list(predicates)
        self.config = config

    def check(self, df: pd.DataFrame) -> None:
        """Fail fast if any predicate reads a field the table lacks."""
        for predicate in self.predicates:
            missing = [c for c in predicate.fields() if c not in df.columns]
            if missing:
                raise ConfigurationError(
                    f"Predicate '{predicate.name}' references missing field(s) {missing}",
                    stage=STAGE,
                    field=missing[0],
                    predicate=predicate.name,
                )

    def run(self, df: pd.DataFrame) -> tuple[pd.DataFrame, FilterReport]:
        """
        Apply every predicate.

        Args:
            df: Derived household-year panel

        Returns:
            Tuple of (estimation sample, attrition report)
        """
        self.check(df)

        report = FilterReport(config=self.config)
        sample = df.copy()
        for predicate in self.predicates:
            step = FilterStep(name=predicate.name, rows_before=len(sample), rows_after=0)
            sample = predicate.apply(sample, step)
            step.rows_after = len(sample)
            report.steps.append(step)
            logger.info(
                f"[{self.config}] {predicate.name}: dropped {step.dropped}, {step.rows_after} remain"
            )

        logger.info(f"Sample '{self.config}': {report.rows_in} -> {report.rows_out} rows")
        return sample.reset_index(drop=True), report


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------

def _core_predicates(settings: Settings) -> list[Predicate]:
    return [
        DropMissing(["birth_age"], name="drop_missing_birth_age"),
        KeepBetween(
            "birth_age",
            settings.birth_age_min,
            settings.birth_age_max,
            name="birth_age_window",
        ),
        DropMissing(REQUIRED_FIELDS, name="drop_missing_required"),
        DropBelow("house_value", 0, name="drop_negative_property"),
        KeepAtLeast("birth_yc", settings.min_birth_year, name="births_from_min_year"),
    ]


def baseline_filter(settings: Settings | None = None) -> SampleFilter:
    """Baseline sample."""
    settings = settings or get_settings()
    predicates = _core_predicates(settings) + [
        Winsorize(WINSOR_FIELDS, settings.winsor_lower, settings.winsor_upper),
    ]
    return SampleFilter(predicates, config="baseline")


def price_floor_filter(settings: Settings | None = None) -> SampleFilter:
    """Robustness: drop households reporting implausibly low prices per m2."""
    settings = settings or get_settings()
    predicates = _core_predicates(settings) + [
        DropBelow("price_sqm", settings.price_floor, name="price_floor"),
        Winsorize(WINSOR_FIELDS, settings.winsor_lower, settings.winsor_upper),
    ]
    return SampleFilter(predicates, config="price_floor")


def winsor_by_year_filter(settings: Settings | None = None) -> SampleFilter:
    """Robustness: one-sided winsorization within survey year."""
    settings = settings or get_settings()
    predicates = _core_predicates(settings) + [
        Winsorize(
            WINSOR_FIELDS,
            settings.robust_winsor_lower,
            settings.robust_winsor_upper,
            by="year",
            name="winsorize_by_year",
        ),
    ]
    return SampleFilter(predicates, config="winsor_by_year")


SAMPLE_CONFIGS: dict[str, Callable[[Settings | None], SampleFilter]] = {
    "baseline": baseline_filter,
    "price_floor": price_floor_filter,
    "winsor_by_year": winsor_by_year_filter,
}


def get_sample_filter(name: str, settings: Settings | None = None) -> SampleFilter:
    """Look up a sample configuration by name."""
    if name not in SAMPLE_CONFIGS:
        raise ConfigurationError(
            f"Unknown sample configuration '{name}' (available: {sorted(SAMPLE_CONFIGS)})",
            stage=STAGE,
        )
    return SAMPLE_CONFIGS[name](settings)
