"""
Tests for estimation sample construction.
"""

import numpy as np
import pandas as pd
import pytest

from config.settings import Settings
from fertility.errors import ConfigurationError
from fertility.model.sample import (
    REQUIRED_FIELDS,
    DropBelow,
    DropMissing,
    KeepBetween,
    SampleFilter,
    Winsorize,
    baseline_filter,
    clip_to_bounds,
    get_sample_filter,
    price_floor_filter,
    winsor_by_year_filter,
    winsorize_series,
)


def _valid_rows(n: int = 50, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    return pd.DataFrame(
        {
            "hhid": [str(i) for i in range(n)],
            "year": rng.choice([2014, 2016], n),
            "city": rng.choice(["110000", "120000"], n),
            "birth_age": rng.uniform(20, 38, n),
            "birth_yc": np.full(n, 2012.0),
            "fertility": rng.integers(0, 2, n).astype(float),
            "ln_cm_price": rng.normal(9, 0.5, n),
            "age": rng.uniform(25, 45, n),
            "gender": rng.integers(0, 2, n).astype(float),
            "edu": rng.uniform(6, 16, n),
            "health": rng.integers(0, 2, n).astype(float),
            "hukou": rng.integers(0, 2, n).astype(float),
            "ln_income": rng.normal(10, 1, n),
            "ln_asset": rng.normal(12, 1, n),
            "house_value": rng.uniform(10, 300, n),
            "price_sqm": rng.uniform(500, 20000, n),
        }
    )


@pytest.fixture
def settings():
    return Settings()


class TestWinsorization:
    """Test percentile capping."""

    def test_caps_at_quantiles(self):
        s = pd.Series(np.arange(101, dtype=float))
        out, (lo, hi) = winsorize_series(s, 0.01, 0.99)
        assert lo == pytest.approx(1.0)
        assert hi == pytest.approx(99.0)
        assert out.min() == pytest.approx(1.0)
        assert out.max() == pytest.approx(99.0)

    def test_missing_stays_missing(self):
        s = pd.Series([1.0, np.nan, 3.0, 100.0])
        out, _ = winsorize_series(s, 0.0, 0.5)
        assert np.isnan(out.iloc[1])

    def test_idempotent_with_same_cut_points(self):
        s = pd.Series(np.random.default_rng(1).standard_t(2, 500))
        once, bounds = winsorize_series(s, 0.01, 0.99)
        twice = clip_to_bounds(once, bounds)
        pd.testing.assert_series_equal(once, twice)

    def test_invalid_quantiles(self):
        with pytest.raises(ConfigurationError):
            winsorize_series(pd.Series([1.0, 2.0]), 0.9, 0.1)


class TestPredicates:
    """Test individual predicates."""

    def test_keep_between_is_inclusive(self, settings):
        df = _valid_rows(5)
        df["birth_age"] = [17.9, 18.0, 30.0, 40.0, 40.1]
        out, _ = SampleFilter([KeepBetween("birth_age", 18, 40)]).run(df)
        assert out["birth_age"].tolist() == [18.0, 30.0, 40.0]

    def test_drop_below_keeps_missing(self):
        df = _valid_rows(3)
        df["price_sqm"] = [500.0, np.nan, 5000.0]
        out, _ = SampleFilter([DropBelow("price_sqm", 1000)]).run(df)
        assert len(out) == 2

    def test_winsorize_by_group_records_cut_points(self):
        df = _valid_rows(40)
        out, report = SampleFilter(
            [Winsorize(["ln_income"], 0.0, 0.98, by="year")]
        ).run(df)
        keys = report.steps[0].cut_points
        assert set(keys) == {"ln_income@2014", "ln_income@2016"}
        for year in (2014, 2016):
            _, hi = keys[f"ln_income@{year}"]
            assert out.loc[out["year"] == year, "ln_income"].max() <= hi + 1e-12


class TestSampleFilter:
    """Test ordered application and fail-fast checks."""

    def test_age_bound_holds_after_filter(self, settings):
        df = _valid_rows(200)
        df.loc[:20, "birth_age"] = 12.0
        df.loc[21:40, "birth_age"] = 45.0
        out, _ = baseline_filter(settings).run(df)
        assert out["birth_age"].between(18, 40).all()

    def test_birth_cohort_before_2010_excluded(self, settings):
        df = _valid_rows(10)
        df.loc[0, "birth_yc"] = 2009.0
        out, _ = baseline_filter(settings).run(df)
        assert len(out) == 9
        assert (out["birth_yc"] >= 2010).all()

    def test_missing_health_dropped_by_required_fields(self, settings):
        assert "health" in REQUIRED_FIELDS
        df = _valid_rows(10)
        df.loc[3, "health"] = np.nan
        out, report = baseline_filter(settings).run(df)
        assert len(out) == 9
        step = next(s for s in report.steps if s.name == "drop_missing_required")
        assert step.dropped == 1

    def test_negative_property_dropped(self, settings):
        df = _valid_rows(10)
        df.loc[0, "house_value"] = -1.0
        out, _ = baseline_filter(settings).run(df)
        assert len(out) == 9

    def test_missing_property_kept_by_negative_property_step(self, settings):
        df = _valid_rows(10)
        df.loc[0, "house_value"] = np.nan
        out, report = baseline_filter(settings).run(df)
        step = next(s for s in report.steps if s.name == "drop_negative_property")
        assert step.dropped == 0
        assert len(out) == 10
        assert out["house_value"].isna().sum() == 1

    def test_missing_field_fails_before_any_drop(self, settings):
        df = _valid_rows(10).drop(columns="ln_asset")
        before = df.copy()
        with pytest.raises(ConfigurationError) as exc:
            baseline_filter(settings).run(df)
        assert exc.value.field == "ln_asset"
        assert exc.value.predicate == "drop_missing_required"
        pd.testing.assert_frame_equal(df, before)

    def test_predicate_order_recorded(self, settings):
        _, report = baseline_filter(settings).run(_valid_rows(30))
        assert [s.name for s in report.steps] == [
            "drop_missing_birth_age",
            "birth_age_window",
            "drop_missing_required",
            "drop_negative_property",
            "births_from_min_year",
            "winsorize",
        ]
        assert report.rows_in == 30
        frame = report.to_frame()
        assert list(frame["step"]) == [1, 2, 3, 4, 5, 6]
        assert "ln_income=[" in frame.iloc[-1]["cut_points"]

    def test_winsorize_uses_filtered_sample(self, settings):
        df = _valid_rows(100)
        # Extreme incomes on rows that the age window removes
        df.loc[:9, "birth_age"] = 50.0
        df.loc[:9, "ln_income"] = 1000.0
        _, report = baseline_filter(settings).run(df)
        _, hi = report.steps[-1].cut_points["ln_income"]
        assert hi < 1000.0

    def test_output_index_reset(self, settings):
        df = _valid_rows(10)
        df.loc[0, "birth_age"] = np.nan
        out, _ = baseline_filter(settings).run(df)
        assert list(out.index) == list(range(len(out)))

    def test_robustness_configurations(self, settings):
        df = _valid_rows(60)
        df.loc[0, "price_sqm"] = 10.0
        floor, _ = price_floor_filter(settings).run(df)
        assert (floor["price_sqm"].dropna() >= settings.price_floor).all()

        _, report = winsor_by_year_filter(settings).run(df)
        assert report.steps[-1].name == "winsorize_by_year"

    def test_lookup_by_name(self, settings):
        assert get_sample_filter("price_floor", settings).config == "price_floor"
        with pytest.raises(ConfigurationError, match="Unknown sample"):
            get_sample_filter("nope", settings)

    def test_drop_missing_generic(self):
        df = _valid_rows(4)
        df.loc[1, "edu"] = np.nan
        out, _ = SampleFilter([DropMissing(["edu"])]).run(df)
        assert len(out) == 3
