"""
Cleaning pipeline orchestration.

Runs the cleaning phase as a strict sequence of stages, each taking the
previous stage's table and returning a new one:

1. Schema normalization (household and city tables)
2. Panel declaration and community-id repair
3. Derived household variables, community prices and price lags
4. Sample filter (named predicates, winsorization)
5. City-year instruments and controls, merged by (city, year)

The estimation table is persisted as parquet together with the filter
report and the per-stage missingness report.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from config.settings import Settings, get_settings
from fertility.data.city_covariates import COVARIATE_COLUMNS, CityCovariateBuilder
from fertility.data.ingest import load_table
from fertility.data.quality import MissingnessTracker
from fertility.data.schema import SchemaNormalizer
from fertility.data.variable_dictionary import VariableDictionary, load_variable_dictionary
from fertility.model.derived import DerivedVariableEngine
from fertility.model.panel_data import PanelBuilder
from fertility.model.sample import FilterReport, get_sample_filter

logger = logging.getLogger(__name__)

DERIVED_FIELDS = [
    "fertility",
    "birth_age",
    "age_sq",
    "ln_income",
    "ln_asset",
    "ln_property",
    "price_sqm",
    "cm_price",
    "ln_cm_price",
    "lag1_price",
    "lag2_price",
    "diff_price",
    "ln_diff_price",
]


def clean_table_path(settings: Settings, sample: str = "baseline") -> Path:
    """Location of the persisted estimation table for a sample configuration."""
    name = Path(settings.clean_table_name)
    if sample != "baseline":
        name = name.with_name(f"{name.stem}_{sample}{name.suffix}")
    return settings.project_root / settings.processed_data_dir / name


@dataclass
class CleaningResult:
    """Outputs of one cleaning run."""

    sample_config: str
    panel: pd.DataFrame
    table: pd.DataFrame
    filter_report: FilterReport
    quality: MissingnessTracker
    paths: dict[str, Path] = field(default_factory=dict)


class CleaningPipeline:
    """Orchestrates the cleaning phase."""

    def __init__(
        self,
        settings: Settings | None = None,
        dictionary: VariableDictionary | None = None,
        sample: str = "baseline",
    ):
        self.settings = settings or get_settings()
        self.dictionary = dictionary or load_variable_dictionary(
            self.settings.variable_dictionary_path
        )
        self.sample = sample

        self.normalizer = SchemaNormalizer(self.dictionary)
        self.panel = PanelBuilder(step=self.settings.panel_time_step)
        self.derived = DerivedVariableEngine(self.panel)
        self.sample_filter = get_sample_filter(sample, self.settings)
        self.covariates = CityCovariateBuilder()

    def run(self, household_raw: pd.DataFrame, city_raw: pd.DataFrame) -> CleaningResult:
        """
        Run stages 1-5 on raw tables.

        Args:
            household_raw: Raw household-year microdata
            city_raw: Raw city-year administrative statistics

        Returns:
            CleaningResult with the pre-filter panel and the estimation table
        """
        quality = MissingnessTracker(warn_share=self.settings.missing_warn_share)

        logger.info("Stage 1: schema normalization")
        household = self.normalizer.normalize_household(household_raw)
        city = self.normalizer.normalize_city(city_raw)
        quality.record_stage("schema_normalizer", household)

        logger.info("Stage 2: panel declaration")
        panel = self.panel.build(household, repair="cid")
        quality.record_stage("panel_builder", panel, ["cid"])

        logger.info("Stage 3: derived variables")
        derived = self.derived.run(panel)
        quality.record_stage("derived_variables", derived, DERIVED_FIELDS)

        # Covariates are built before filtering so a bad city table fails
        # before any household row is dropped
        logger.info("Stage 4: sample filter")
        city_covariates = self.covariates.build(city)
        sample, report = self.sample_filter.run(derived)
        quality.record_stage("sample_filter", sample, DERIVED_FIELDS)

        logger.info("Stage 5: city instruments and controls")
        table = self.covariates.merge(sample, city_covariates)
        quality.record_stage("instrument_constructor", table, COVARIATE_COLUMNS)

        logger.info(
            f"Cleaning complete ({self.sample}): {len(household_raw)} raw rows -> "
            f"{len(table)} estimation rows"
        )
        return CleaningResult(
            sample_config=self.sample,
            panel=derived,
            table=table,
            filter_report=report,
            quality=quality,
        )

    def run_from_files(
        self,
        household_path: Path | None = None,
        city_path: Path | None = None,
    ) -> CleaningResult:
        """Load raw inputs (defaults from settings) and run the pipeline."""
        raw_dir = self.settings.project_root / self.settings.raw_data_dir
        household_path = household_path or raw_dir / self.settings.household_file
        city_path = city_path or raw_dir / self.settings.city_file
        return self.run(load_table(household_path), load_table(city_path))

    def save(self, result: CleaningResult) -> dict[str, Path]:
        """Persist the estimation table and the quality reports."""
        table_path = clean_table_path(self.settings, result.sample_config)
        table_path.parent.mkdir(parents=True, exist_ok=True)
        result.table.to_parquet(table_path, index=False)

        report_dir = self.settings.project_root / self.settings.tables_dir
        report_dir.mkdir(parents=True, exist_ok=True)

        filter_path = report_dir / f"filter_report_{result.sample_config}.csv"
        result.filter_report.to_frame().to_csv(filter_path, index=False)

        missing_path = report_dir / f"missingness_{result.sample_config}.csv"
        result.quality.save(missing_path)

        result.paths = {
            "table": table_path,
            "filter_report": filter_path,
            "missingness": missing_path,
        }
        logger.info(f"Saved estimation table to {table_path}")
        return result.paths


def load_clean_table(sample: str = "baseline", settings: Settings | None = None) -> pd.DataFrame:
    """Read a persisted estimation table."""
    settings = settings or get_settings()
    path = clean_table_path(settings, sample)
    return load_table(path)


def run_pipeline(
    sample: str = "baseline",
    save: bool = True,
    settings: Settings | None = None,
) -> CleaningResult:
    """Run the complete cleaning phase from the configured input files."""
    pipeline = CleaningPipeline(settings=settings, sample=sample)
    result = pipeline.run_from_files()
    if save:
        pipeline.save(result)
    return result
