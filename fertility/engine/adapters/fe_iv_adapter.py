"""
Fixed-Effects IV (2SLS) Adapter.

Wraps pyfixest.feols with a three-part formula
``y ~ exog | fe | endog ~ instruments`` so high-dimensional fixed effects
are absorbed in both stages. Standard errors are CRV1-clustered.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from fertility.engine.adapters.base import EstimationResult, EstimatorAdapter
from fertility.model.specification import RegressionSpec

logger = logging.getLogger(__name__)

WEAK_INSTRUMENT_F = 10.0


def build_iv_formula(spec: RegressionSpec) -> str:
    """pyfixest formula for the second stage."""
    exog = " + ".join(spec.regressors) or "1"
    iv = f"{' + '.join(spec.endogenous)} ~ {' + '.join(spec.instruments)}"
    if spec.fixed_effects:
        return f"{spec.outcome} ~ {exog} | {' + '.join(spec.fixed_effects)} | {iv}"
    return f"{spec.outcome} ~ {exog} | {iv}"


def build_first_stage_formula(spec: RegressionSpec, endog: str) -> str:
    """pyfixest formula for the first stage of one endogenous regressor."""
    rhs = " + ".join(list(spec.instruments) + list(spec.regressors))
    if spec.fixed_effects:
        return f"{endog} ~ {rhs} | {' + '.join(spec.fixed_effects)}"
    return f"{endog} ~ {rhs}"


class FixedEffectsIVAdapter(EstimatorAdapter):
    """Adapter for 2SLS with absorbed fixed effects."""

    def supported_designs(self) -> list[str]:
        return ["FE_IV"]

    def validate_request(self, table: pd.DataFrame, spec: RegressionSpec) -> list[str]:
        errors = super().validate_request(table, spec)
        if not spec.instruments:
            errors.append("FixedEffectsIVAdapter requires at least one instrument")
        if not spec.endogenous:
            errors.append("FixedEffectsIVAdapter requires an endogenous regressor")
        return errors

    def estimate(self, table: pd.DataFrame, spec: RegressionSpec) -> EstimationResult:
        """Run FE-IV and a clustered first stage for each endogenous regressor."""
        import pyfixest as pf

        errors = self.validate_request(table, spec)
        if errors:
            raise ValueError("; ".join(errors))

        sample = self.prepare_sample(table, spec)
        vcov = {"CRV1": spec.cluster}

        fit = pf.feols(build_iv_formula(spec), data=sample, vcov=vcov)

        coef = fit.coef()
        se = fit.se()
        pval = fit.pvalue()
        if spec.treatment not in coef.index:
            raise ValueError(
                f"Treatment '{spec.treatment}' was dropped from the second stage "
                f"(collinear with fixed effects {list(spec.fixed_effects)})"
            )
        ci = fit.confint()

        diagnostics: dict = {}
        for endog in spec.endogenous:
            f_stat = self.first_stage_f(sample, spec, endog, vcov)
            diagnostics.setdefault("first_stage_f", {})[endog] = f_stat
            diagnostics.setdefault("weak_instrument", {})[endog] = bool(
                np.isfinite(f_stat) and f_stat < WEAK_INSTRUMENT_F
            )
            if np.isfinite(f_stat) and f_stat < WEAK_INSTRUMENT_F:
                logger.warning(
                    f"[{spec.name}] weak first stage for '{endog}': F = {f_stat:.2f}"
                )

        return EstimationResult(
            spec_name=spec.name,
            design=spec.design,
            treatment=spec.treatment,
            point=float(coef[spec.treatment]),
            se=float(se[spec.treatment]),
            ci_lower=float(ci.loc[spec.treatment].iloc[0]),
            ci_upper=float(ci.loc[spec.treatment].iloc[1]),
            pvalue=float(pval[spec.treatment]),
            n_obs=int(fit._N),
            method_name="FE_IV_2SLS",
            library="pyfixest",
            library_version=getattr(pf, "__version__", "unknown"),
            coefficients=self._to_float_dict(coef),
            std_errors=self._to_float_dict(se),
            pvalues=self._to_float_dict(pval),
            fe_levels=self.fe_levels(sample, spec),
            n_clusters=int(sample[spec.cluster].nunique()),
            diagnostics=diagnostics,
            metadata={
                "formula": build_iv_formula(spec),
                "instruments": list(spec.instruments),
                "fixed_effects": list(spec.fixed_effects),
                "cluster": spec.cluster,
                "cov_type": "CRV1",
                "subset": dict(spec.subset),
            },
        )

    def first_stage_f(
        self,
        sample: pd.DataFrame,
        spec: RegressionSpec,
        endog: str,
        vcov: dict[str, str],
    ) -> float:
        """
        Cluster-robust partial F of the excluded instruments.

        With one instrument this is the squared first-stage t-statistic;
        with several it is the Wald F on the instrument coefficients.
        """
        import pyfixest as pf

        fs = pf.feols(build_first_stage_formula(spec, endog), data=sample, vcov=vcov)
        kept = [z for z in spec.instruments if z in fs.coef().index]
        if not kept:
            logger.warning(f"[{spec.name}] every instrument was dropped from the first stage")
            return float("nan")

        if len(kept) == 1:
            return float(fs.tstat()[kept[0]] ** 2)

        names = list(fs.coef().index)
        R = np.zeros((len(kept), len(names)))
        for i, z in enumerate(kept):
            R[i, names.index(z)] = 1.0
        wald = fs.wald_test(R=R)
        return float(wald["statistic"])
