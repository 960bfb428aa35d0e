"""
Regression specifications.

Each estimation is a declarative ``RegressionSpec``: outcome, regressors,
fixed-effect groups, instruments, cluster variable and an optional sample
restriction. ``SpecificationBuilder`` validates specs against the final
estimation table; it never estimates anything.

Study design:
- FE-OLS: fertility on log community price with city and year effects
- FE-IV: log community price instrumented by fiscal capacity x water intensity
- Robustness: alternative instrument scaling, owners only, lagged price growth,
  household fixed effects
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import pandas as pd

from fertility.errors import ConfigurationError

logger = logging.getLogger(__name__)

STAGE = "specification_builder"

Design = Literal["FE_OLS", "FE_IV"]


@dataclass(frozen=True)
class RegressionSpec:
    """Declarative specification for one estimation."""

    name: str
    outcome: str
    regressors: tuple[str, ...] = ()
    fixed_effects: tuple[str, ...] = ()
    cluster: str = "city"
    endogenous: tuple[str, ...] = ()
    instruments: tuple[str, ...] = ()
    subset: tuple[tuple[str, Any], ...] = ()
    description: str = ""

    @property
    def design(self) -> Design:
        return "FE_IV" if self.instruments else "FE_OLS"

    @property
    def treatment(self) -> str:
        """Coefficient of interest: first endogenous variable, else first regressor."""
        if self.endogenous:
            return self.endogenous[0]
        return self.regressors[0]

    def fields(self) -> list[str]:
        """Every field the specification reads, without duplicates."""
        ordered = (
            [self.outcome]
            + list(self.regressors)
            + list(self.endogenous)
            + list(self.instruments)
            + list(self.fixed_effects)
            + [self.cluster]
            + [col for col, _ in self.subset]
        )
        return list(dict.fromkeys(ordered))

    def formula(self) -> str:
        """Human-readable formula (documentation only)."""
        rhs = " + ".join(self.regressors) or "1"
        parts = [f"{self.outcome} ~ {rhs}"]
        if self.fixed_effects:
            parts.append(" + ".join(self.fixed_effects))
        if self.instruments:
            parts.append(f"{' + '.join(self.endogenous)} ~ {' + '.join(self.instruments)}")
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["design"] = self.design
        d["subset"] = {col: value for col, value in self.subset}
        return d


@dataclass
class ValidatedSpec:
    """A specification checked against a table, with its sample dimensions."""

    spec: RegressionSpec
    n_obs: int
    fe_levels: dict[str, int] = field(default_factory=dict)
    n_clusters: int = 0


class SpecificationBuilder:
    """Validates specifications against the final estimation table."""

    def __init__(self, table: pd.DataFrame):
        self.table = table

    def estimation_sample(self, spec: RegressionSpec) -> pd.DataFrame:
        """Rows the estimator will see: subset restriction, then complete cases."""
        df = self.table
        for column, value in spec.subset:
            df = df[df[column] == value]
        return df.dropna(subset=spec.fields())[spec.fields()].copy()

    def validate(self, spec: RegressionSpec) -> ValidatedSpec:
        """
        Check a specification.

        Raises:
            ConfigurationError: If a referenced field is absent, the IV order
                condition fails, or a fixed-effect/cluster variable has fewer
                than two levels in the estimation sample
        """
        missing = [c for c in spec.fields() if c not in self.table.columns]
        if missing:
            raise ConfigurationError(
                f"Specification '{spec.name}' references missing field(s) {missing}",
                stage=STAGE,
                field=missing[0],
            )

        if spec.endogenous and len(spec.instruments) < len(spec.endogenous):
            raise ConfigurationError(
                f"Specification '{spec.name}' has {len(spec.endogenous)} endogenous "
                f"regressor(s) but only {len(spec.instruments)} instrument(s)",
                stage=STAGE,
                field=spec.endogenous[0],
            )
        if spec.instruments and not spec.endogenous:
            raise ConfigurationError(
                f"Specification '{spec.name}' lists instruments without an endogenous regressor",
                stage=STAGE,
                field=spec.instruments[0],
            )
        if not spec.regressors and not spec.endogenous:
            raise ConfigurationError(
                f"Specification '{spec.name}' has no regressors", stage=STAGE
            )

        sample = self.estimation_sample(spec)

        levels: dict[str, int] = {}
        for column in list(spec.fixed_effects) + [spec.cluster]:
            n = int(sample[column].nunique())
            if n < 2:
                raise ConfigurationError(
                    f"Specification '{spec.name}': '{column}' has {n} distinct value(s) "
                    f"in the estimation sample; at least 2 are needed",
                    stage=STAGE,
                    field=column,
                )
            levels[column] = n

        validated = ValidatedSpec(
            spec=spec,
            n_obs=len(sample),
            fe_levels={fe: levels[fe] for fe in spec.fixed_effects},
            n_clusters=levels[spec.cluster],
        )
        logger.debug(
            f"Validated '{spec.name}': N={validated.n_obs}, FE levels={validated.fe_levels}, "
            f"clusters={validated.n_clusters}"
        )
        return validated

    def validate_all(self, specs: list[RegressionSpec]) -> list[ValidatedSpec]:
        """Validate every specification before any is estimated."""
        names = [s.name for s in specs]
        dup = sorted({n for n in names if names.count(n) > 1})
        if dup:
            raise ConfigurationError(f"Duplicate specification names: {dup}", stage=STAGE)
        return [self.validate(s) for s in specs]


# =============================================================================
# Study specification catalog
# =============================================================================

HOUSEHOLD_CONTROLS = (
    "age",
    "age_sq",
    "gender",
    "edu",
    "health",
    "hukou",
    "ln_income",
    "ln_asset",
)

CITY_CONTROLS = ("ln_gdp_pc", "schools_pc", "loan_gdp")

CONTROLS = HOUSEHOLD_CONTROLS + CITY_CONTROLS

# Household FE absorb time-invariant traits; age is collinear with FE + year
TIME_VARYING_CONTROLS = ("age_sq", "ln_income", "ln_asset") + CITY_CONTROLS

FE_OLS_SPEC = RegressionSpec(
    name="fe_ols",
    outcome="fertility",
    regressors=("ln_cm_price",) + CONTROLS,
    fixed_effects=("city", "year"),
    cluster="city",
    description="Fertility on log community price, city and year FE",
)

IV_SPEC = RegressionSpec(
    name="iv_baseline",
    outcome="fertility",
    regressors=CONTROLS,
    fixed_effects=("city", "year"),
    cluster="city",
    endogenous=("ln_cm_price",),
    instruments=("iv_fiscal_water_a",),
    description="Log community price instrumented by fiscal capacity x water intensity",
)

IV_SCALING_B_SPEC = RegressionSpec(
    name="iv_scaling_b",
    outcome="fertility",
    regressors=CONTROLS,
    fixed_effects=("city", "year"),
    cluster="city",
    endogenous=("ln_cm_price",),
    instruments=("iv_fiscal_water_b",),
    description="Same as baseline IV with the alternative fiscal capacity scaling",
)

IV_OWNERS_SPEC = RegressionSpec(
    name="iv_owners",
    outcome="fertility",
    regressors=CONTROLS,
    fixed_effects=("city", "year"),
    cluster="city",
    endogenous=("ln_cm_price",),
    instruments=("iv_fiscal_water_a",),
    subset=(("owner", 1),),
    description="Baseline IV restricted to home owners",
)

IV_GROWTH_SPEC = RegressionSpec(
    name="iv_price_growth",
    outcome="fertility",
    regressors=CONTROLS,
    fixed_effects=("city", "year"),
    cluster="city",
    endogenous=("ln_diff_price",),
    instruments=("iv_fiscal_water_a",),
    description="Lagged community price growth instrumented",
)

FE_HOUSEHOLD_SPEC = RegressionSpec(
    name="fe_household",
    outcome="fertility",
    regressors=("ln_cm_price",) + TIME_VARYING_CONTROLS,
    fixed_effects=("hhid", "year"),
    cluster="city",
    description="Within-household variation, household and year FE",
)

MAIN_SPECS = [FE_OLS_SPEC, IV_SPEC]

ROBUSTNESS_SPECS = [IV_SCALING_B_SPEC, IV_OWNERS_SPEC, IV_GROWTH_SPEC, FE_HOUSEHOLD_SPEC]

ALL_SPECS = MAIN_SPECS + ROBUSTNESS_SPECS

SPEC_SETS: dict[str, list[RegressionSpec]] = {
    "main": MAIN_SPECS,
    "robustness": ROBUSTNESS_SPECS,
    "all": ALL_SPECS,
}


def get_spec_set(name: str) -> list[RegressionSpec]:
    """Look up a named set of specifications."""
    if name not in SPEC_SETS:
        raise ConfigurationError(
            f"Unknown specification set '{name}' (available: {sorted(SPEC_SETS)})",
            stage=STAGE,
        )
    return SPEC_SETS[name]
