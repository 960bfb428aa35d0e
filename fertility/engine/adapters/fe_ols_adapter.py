"""
Fixed-Effects OLS Adapter.

Uses linearmodels.AbsorbingLS to absorb any number of categorical fixed
effects (city, year, household) with standard errors clustered on the
spec's cluster variable.
"""

from __future__ import annotations

import logging

import pandas as pd
import statsmodels.api as sm

from fertility.engine.adapters.base import EstimationResult, EstimatorAdapter
from fertility.model.specification import RegressionSpec

logger = logging.getLogger(__name__)


class FixedEffectsOLSAdapter(EstimatorAdapter):
    """Adapter for OLS with absorbed fixed effects.

    Regressors that are collinear with the absorbed effects are dropped by
    the library and reported in ``diagnostics["absorbed_regressors"]``.
    """

    def supported_designs(self) -> list[str]:
        return ["FE_OLS"]

    def estimate(self, table: pd.DataFrame, spec: RegressionSpec) -> EstimationResult:
        """Run FE-OLS with clustered standard errors."""
        from linearmodels.iv.absorbing import AbsorbingLS

        errors = self.validate_request(table, spec)
        if errors:
            raise ValueError("; ".join(errors))

        sample = self.prepare_sample(table, spec)
        regressors = list(spec.regressors)

        y = sample[spec.outcome]
        X = sm.add_constant(sample[regressors], has_constant="add")
        absorb = pd.DataFrame(
            {fe: pd.Categorical(sample[fe]) for fe in spec.fixed_effects},
            index=sample.index,
        )
        clusters = pd.Categorical(sample[spec.cluster]).codes

        model = AbsorbingLS(y, X, absorb=absorb if spec.fixed_effects else None, drop_absorbed=True)
        result = model.fit(cov_type="clustered", clusters=clusters)

        if spec.treatment not in result.params.index:
            raise ValueError(
                f"Treatment '{spec.treatment}' was absorbed by fixed effects {list(spec.fixed_effects)}"
            )

        ci = result.conf_int().loc[spec.treatment]
        absorbed = [c for c in regressors if c not in result.params.index]
        if absorbed:
            logger.warning(f"[{spec.name}] regressors absorbed by fixed effects: {absorbed}")

        return EstimationResult(
            spec_name=spec.name,
            design=spec.design,
            treatment=spec.treatment,
            point=float(result.params[spec.treatment]),
            se=float(result.std_errors[spec.treatment]),
            ci_lower=float(ci.iloc[0]),
            ci_upper=float(ci.iloc[1]),
            pvalue=float(result.pvalues[spec.treatment]),
            n_obs=int(result.nobs),
            method_name="FE_OLS",
            library="linearmodels",
            library_version=self._get_linearmodels_version(),
            coefficients=self._to_float_dict(result.params.drop("const", errors="ignore")),
            std_errors=self._to_float_dict(result.std_errors.drop("const", errors="ignore")),
            pvalues=self._to_float_dict(result.pvalues.drop("const", errors="ignore")),
            fe_levels=self.fe_levels(sample, spec),
            n_clusters=int(sample[spec.cluster].nunique()),
            diagnostics={
                "r_squared": float(result.rsquared),
                "absorbed_regressors": absorbed,
            },
            metadata={
                "fixed_effects": list(spec.fixed_effects),
                "cluster": spec.cluster,
                "cov_type": "clustered",
                "subset": dict(spec.subset),
            },
        )

    @staticmethod
    def _get_linearmodels_version() -> str:
        try:
            import linearmodels
            return getattr(linearmodels, "__version__", "unknown")
        except ImportError:
            return "unknown"
