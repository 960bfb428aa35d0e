"""
Batch estimation runner.

Validates every specification against the final table before anything is
estimated, then estimates each specification independently. A library
failure on one specification is recorded with that specification and the
batch moves on; configuration errors abort the batch.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from fertility.engine.adapters import EstimationResult, get_adapter
from fertility.errors import EstimationError
from fertility.model.specification import RegressionSpec, SpecificationBuilder, ValidatedSpec

logger = logging.getLogger(__name__)


@dataclass
class EstimationFailure:
    """A specification the estimation library could not fit."""

    spec_name: str
    design: str
    error_type: str
    message: str

    @classmethod
    def from_error(cls, spec: RegressionSpec, error: EstimationError) -> "EstimationFailure":
        return cls(
            spec_name=spec.name,
            design=spec.design,
            error_type=type(error.cause).__name__,
            message=str(error),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BatchResult:
    """Results of one batch of specifications."""

    sample_config: str
    validated: list[ValidatedSpec] = field(default_factory=list)
    results: list[EstimationResult] = field(default_factory=list)
    failures: list[EstimationFailure] = field(default_factory=list)

    @property
    def n_attempted(self) -> int:
        return len(self.results) + len(self.failures)

    def get(self, spec_name: str) -> EstimationResult | None:
        for r in self.results:
            if r.spec_name == spec_name:
                return r
        return None

    def to_frame(self) -> pd.DataFrame:
        """One row per successful specification."""
        rows = []
        for r in self.results:
            first_stage = r.diagnostics.get("first_stage_f", {})
            rows.append(
                {
                    "spec": r.spec_name,
                    "design": r.design,
                    "treatment": r.treatment,
                    "coef": r.point,
                    "se": r.se,
                    "pvalue": r.pvalue,
                    "ci_lower": r.ci_lower,
                    "ci_upper": r.ci_upper,
                    "n_obs": r.n_obs,
                    "n_clusters": r.n_clusters,
                    "fe_levels": ", ".join(f"{k}={v}" for k, v in r.fe_levels.items()),
                    "first_stage_f": first_stage.get(r.treatment) if first_stage else None,
                }
            )
        return pd.DataFrame(rows)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sample_config": self.sample_config,
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
        }

    def to_markdown(self) -> str:
        """Markdown summary of the batch."""
        lines = [f"# Estimation Results ({self.sample_config} sample)", ""]
        lines.append(f"**Specifications:** {self.n_attempted}")
        lines.append(f"**Estimated:** {len(self.results)}")
        lines.append(f"**Failed:** {len(self.failures)}")
        lines.append("")

        if self.results:
            lines.append("| Spec | Design | Treatment | Coef | SE | p | N | Clusters | FE levels | First-stage F |")
            lines.append("|------|--------|-----------|------|----|---|---|----------|-----------|---------------|")
            for r in self.results:
                stars = "***" if r.pvalue is not None and r.pvalue < 0.01 else (
                    "**" if r.pvalue is not None and r.pvalue < 0.05 else (
                        "*" if r.pvalue is not None and r.pvalue < 0.1 else ""
                    )
                )
                fs = r.diagnostics.get("first_stage_f", {}).get(r.treatment)
                fs_str = f"{fs:.2f}" if fs is not None else "-"
                fe = ", ".join(f"{k}={v}" for k, v in r.fe_levels.items())
                pval = f"{r.pvalue:.3f}" if r.pvalue is not None else "-"
                lines.append(
                    f"| {r.spec_name} | {r.design} | {r.treatment} | {r.point:.4f}{stars} | "
                    f"{r.se:.4f} | {pval} | {r.n_obs} | {r.n_clusters} | {fe} | {fs_str} |"
                )
            lines.append("")
            lines.append("Standard errors clustered by city. * p<0.1, ** p<0.05, *** p<0.01")
            lines.append("")

        if self.failures:
            lines.append("## Failed Specifications")
            lines.append("")
            for f in self.failures:
                lines.append(f"- **{f.spec_name}** ({f.design}): {f.message}")
            lines.append("")

        return "\n".join(lines)

    def save(self, output_dir: Path, stem: str = "estimates") -> dict[str, Path]:
        """Write JSON and markdown exports."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        json_path = output_dir / f"{stem}_{self.sample_config}.json"
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        md_path = output_dir / f"{stem}_{self.sample_config}.md"
        md_path.write_text(self.to_markdown(), encoding="utf-8")

        logger.info(f"Saved estimation results to {json_path} and {md_path}")
        return {"json": json_path, "markdown": md_path}


class EstimationRunner:
    """Runs a list of specifications against one estimation table."""

    def __init__(self, table: pd.DataFrame, sample_config: str = "baseline"):
        self.table = table
        self.sample_config = sample_config

    def check(self, specs: list[RegressionSpec]) -> list[ValidatedSpec]:
        """Validate every spec and resolve its adapter; raises on the first problem."""
        validated = SpecificationBuilder(self.table).validate_all(specs)
        for v in validated:
            get_adapter(v.spec.design)
        return validated

    def run(self, specs: list[RegressionSpec]) -> BatchResult:
        """
        Estimate every specification.

        Raises:
            ConfigurationError: If any specification fails validation
        """
        batch = BatchResult(sample_config=self.sample_config)
        batch.validated = self.check(specs)

        for v in batch.validated:
            spec = v.spec
            adapter = get_adapter(spec.design)
            logger.info(f"Estimating '{spec.name}' ({spec.design}, N={v.n_obs})")
            try:
                result = adapter.estimate(self.table, spec)
            except Exception as exc:
                error = EstimationError(spec.name, exc)
                logger.error(str(error))
                batch.failures.append(EstimationFailure.from_error(spec, error))
                continue

            batch.results.append(result)
            logger.info(
                f"  {spec.treatment}: {result.point:.4f} (SE {result.se:.4f}, p={result.pvalue:.3f})"
            )

        logger.info(
            f"Batch complete: {len(batch.results)} estimated, {len(batch.failures)} failed"
        )
        return batch
