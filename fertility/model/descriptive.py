"""
Descriptive statistics for the estimation sample.

One row per key variable: N, mean, standard deviation, median, min, max,
labelled from the variable dictionary and exported for human review.
"""

import logging
from pathlib import Path

import pandas as pd

from fertility.errors import ConfigurationError

logger = logging.getLogger(__name__)

KEY_VARIABLES = [
    "fertility",
    "birth_age",
    "cm_price",
    "ln_cm_price",
    "age",
    "gender",
    "edu",
    "health",
    "hukou",
    "ln_income",
    "ln_asset",
    "owner",
    "iv_fiscal_water_a",
    "iv_fiscal_water_b",
    "ln_gdp_pc",
    "schools_pc",
    "loan_gdp",
]

STAT_COLUMNS = ["variable", "label", "n", "mean", "sd", "median", "min", "max"]


def describe(
    df: pd.DataFrame,
    variables: list[str] | None = None,
    labels: dict[str, str] | None = None,
) -> pd.DataFrame:
    """
    Summary statistics over non-missing values of each variable.

    Raises:
        ConfigurationError: If a requested variable is absent
    """
    variables = variables or KEY_VARIABLES
    missing = [v for v in variables if v not in df.columns]
    if missing:
        raise ConfigurationError(
            f"Descriptive statistics requested for missing field(s) {missing}",
            stage="descriptive",
            field=missing[0],
        )

    labels = labels or {}
    rows = []
    for var in variables:
        s = pd.to_numeric(df[var], errors="coerce").dropna()
        rows.append(
            {
                "variable": var,
                "label": labels.get(var, ""),
                "n": int(s.count()),
                "mean": s.mean() if len(s) else float("nan"),
                "sd": s.std() if len(s) > 1 else float("nan"),
                "median": s.median() if len(s) else float("nan"),
                "min": s.min() if len(s) else float("nan"),
                "max": s.max() if len(s) else float("nan"),
            }
        )
    return pd.DataFrame(rows, columns=STAT_COLUMNS)


def to_markdown(stats: pd.DataFrame, title: str = "Descriptive Statistics") -> str:
    """Markdown table of ``describe`` output."""
    lines = [f"# {title}", ""]
    lines.append("| Variable | Definition | N | Mean | SD | Median | Min | Max |")
    lines.append("|----------|------------|---|------|----|--------|-----|-----|")
    for _, r in stats.iterrows():
        lines.append(
            f"| {r['variable']} | {r['label']} | {r['n']} | {r['mean']:.3f} | {r['sd']:.3f} | "
            f"{r['median']:.3f} | {r['min']:.3f} | {r['max']:.3f} |"
        )
    lines.append("")
    return "\n".join(lines)


def save_descriptives(
    stats: pd.DataFrame,
    output_dir: Path,
    stem: str = "descriptive_statistics",
) -> dict[str, Path]:
    """Write the statistics as CSV and markdown."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    csv_path = output_dir / f"{stem}.csv"
    stats.to_csv(csv_path, index=False)

    md_path = output_dir / f"{stem}.md"
    md_path.write_text(to_markdown(stats), encoding="utf-8")

    logger.info(f"Saved descriptive statistics to {csv_path} and {md_path}")
    return {"csv": csv_path, "markdown": md_path}
