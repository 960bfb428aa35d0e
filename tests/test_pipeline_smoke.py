"""
Pipeline smoke test.

Runs the full cleaning phase on synthetic raw tables (locale-specific column
names) and estimates the complete specification catalog on the result.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from config.settings import Settings
from fertility.data.data_pipeline import CleaningPipeline, clean_table_path, load_clean_table
from fertility.data.variable_dictionary import load_variable_dictionary
from fertility.engine.runner import EstimationRunner
from fertility.errors import ConfigurationError
from fertility.model.specification import ALL_SPECS
from tests.fixtures.synthetic_panel import (
    make_city_records,
    make_household_records,
    to_source_names,
)


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path / "data", output_dir=tmp_path / "outputs")


@pytest.fixture
def raw_tables():
    household = to_source_names(make_household_records(), "household")
    city = to_source_names(make_city_records(), "city")
    return household, city


@pytest.fixture
def result(settings, raw_tables):
    return CleaningPipeline(settings=settings).run(*raw_tables)


class TestCleaningPipeline:
    """End-to-end cleaning."""

    def test_panel_keeps_every_household_row(self, result, raw_tables):
        household, _ = raw_tables
        assert len(result.panel) == len(household)
        assert not result.panel.duplicated(subset=["hhid", "year"]).any()

    def test_estimation_table_invariants(self, result, settings):
        table = result.table
        assert len(table) > 0
        assert table["birth_age"].between(settings.birth_age_min, settings.birth_age_max).all()
        assert (table["birth_yc"] >= settings.min_birth_year).all()
        assert table[["fertility", "ln_cm_price", "health", "city"]].notna().all().all()

    def test_covariates_merged(self, result):
        for col in ["iv_fiscal_water_a", "iv_fiscal_water_b", "ln_gdp_pc", "schools_pc"]:
            assert col in result.table.columns
        assert result.table["iv_fiscal_water_a"].notna().all()

    def test_lags_computed_before_filtering(self, result):
        # Lags come from the unfiltered panel, so filtering never changes them
        panel = result.panel.set_index(["hhid", "year"])
        table = result.table.set_index(["hhid", "year"])
        common = table.index
        np.testing.assert_allclose(
            table["lag1_price"].to_numpy(),
            panel.loc[common, "lag1_price"].to_numpy(),
        )

    def test_reports(self, result):
        steps = result.filter_report.steps
        assert steps[0].rows_before == len(result.panel)
        assert steps[-1].rows_after == len(result.table)
        frame = result.quality.to_frame()
        assert set(frame["stage"]) >= {"schema_normalizer", "derived_variables", "sample_filter"}

    def test_health_zero_policy_keeps_more_rows(self, settings, raw_tables):
        dictionary = load_variable_dictionary().with_recode("health", "zero")
        zero = CleaningPipeline(settings=settings, dictionary=dictionary).run(*raw_tables)
        missing = CleaningPipeline(settings=settings).run(*raw_tables)
        assert len(zero.table) > len(missing.table)

    def test_save_and_reload(self, settings, result):
        pipeline = CleaningPipeline(settings=settings)
        paths = pipeline.save(result)
        assert paths["table"] == clean_table_path(settings, "baseline")
        assert paths["filter_report"].exists()
        assert paths["missingness"].exists()

        reloaded = load_clean_table("baseline", settings)
        assert len(reloaded) == len(result.table)

    def test_robustness_sample_path(self, settings, raw_tables):
        pipeline = CleaningPipeline(settings=settings, sample="winsor_by_year")
        result = pipeline.run(*raw_tables)
        paths = pipeline.save(result)
        assert paths["table"].name == "analysis_sample_winsor_by_year.parquet"

    def test_bad_city_table_fails_before_filtering(self, settings, raw_tables):
        household, city = raw_tables
        with pytest.raises(ConfigurationError):
            CleaningPipeline(settings=settings).run(household, city.drop(columns="户籍人口"))

    def test_run_from_files(self, settings, raw_tables):
        household, city = raw_tables
        raw_dir = settings.project_root / settings.raw_data_dir
        raw_dir.mkdir(parents=True)
        household.to_csv(raw_dir / "household.csv", index=False)
        city.to_csv(raw_dir / "city.csv", index=False)

        result = CleaningPipeline(settings=settings).run_from_files(
            raw_dir / "household.csv", raw_dir / "city.csv"
        )
        assert len(result.table) > 0


class TestEstimationOnCleanTable:
    """The study catalog runs on the cleaned table."""

    def test_every_spec_attempted(self, result):
        batch = EstimationRunner(result.table).run(ALL_SPECS)
        assert batch.n_attempted == len(ALL_SPECS)
        assert len(batch.results) > 0
        for r in batch.results:
            assert r.n_obs > 0
            assert r.fe_levels
            if r.design == "FE_IV":
                assert r.treatment in r.diagnostics["first_stage_f"]
