"""
Tests for descriptive statistics, missingness tracking and table loading.
"""

import numpy as np
import pandas as pd
import pytest

from fertility.data.ingest import load_table
from fertility.data.quality import FieldStatus, MissingnessTracker
from fertility.errors import ConfigurationError
from fertility.model.descriptive import describe, save_descriptives, to_markdown


@pytest.fixture
def sample():
    return pd.DataFrame(
        {
            "fertility": [0.0, 1.0, 0.0, 1.0],
            "ln_cm_price": [8.0, 9.0, 10.0, np.nan],
        }
    )


class TestDescribe:
    """Test the statistics table."""

    def test_statistics(self, sample):
        stats = describe(sample, ["fertility", "ln_cm_price"], labels={"fertility": "Birth (=1)"})
        row = stats.set_index("variable").loc["ln_cm_price"]
        assert row["n"] == 3
        assert row["mean"] == pytest.approx(9.0)
        assert row["sd"] == pytest.approx(1.0)
        assert row["median"] == pytest.approx(9.0)
        assert row["min"] == 8.0
        assert row["max"] == 10.0
        assert stats.set_index("variable").loc["fertility", "label"] == "Birth (=1)"

    def test_missing_variable(self, sample):
        with pytest.raises(ConfigurationError) as exc:
            describe(sample, ["fertility", "edu"])
        assert exc.value.field == "edu"

    def test_markdown(self, sample):
        md = to_markdown(describe(sample, ["fertility"]))
        assert md.startswith("# Descriptive Statistics")
        assert "| fertility |" in md

    def test_save(self, sample, tmp_path):
        paths = save_descriptives(describe(sample, ["fertility"]), tmp_path)
        assert paths["csv"].exists()
        assert pd.read_csv(paths["csv"])["variable"].tolist() == ["fertility"]
        assert paths["markdown"].exists()


class TestMissingnessTracker:
    """Test per-stage missing-rate records."""

    def test_status(self, sample):
        tracker = MissingnessTracker(warn_share=0.9)
        df = sample.assign(empty=np.nan)
        records = {r.field_name: r for r in tracker.record_stage("derived", df)}
        assert records["fertility"].status == FieldStatus.COMPLETE
        assert records["ln_cm_price"].status == FieldStatus.PARTIAL
        assert records["ln_cm_price"].missing_share == pytest.approx(0.25)
        assert records["empty"].status == FieldStatus.EMPTY
        assert len(tracker.get_warnings()) == 1

    def test_sparse_warning(self, sample):
        tracker = MissingnessTracker(warn_share=0.2)
        tracker.record_stage("derived", sample, ["ln_cm_price"])
        assert any("SPARSE" in w for w in tracker.get_warnings())

    def test_latest_and_frame(self, sample, tmp_path):
        tracker = MissingnessTracker()
        tracker.record_stage("a", sample, ["ln_cm_price"])
        tracker.record_stage("b", sample.dropna(), ["ln_cm_price"])
        assert tracker.latest("ln_cm_price").stage == "b"
        frame = tracker.to_frame()
        assert list(frame["stage"]) == ["a", "b"]
        tracker.save(tmp_path / "missing.csv")
        assert (tmp_path / "missing.csv").exists()


class TestLoadTable:
    """Test file-format dispatch."""

    def test_csv(self, sample, tmp_path):
        path = tmp_path / "t.csv"
        sample.to_csv(path, index=False)
        assert len(load_table(path)) == 4

    def test_gbk_csv(self, tmp_path):
        path = tmp_path / "city.csv"
        pd.DataFrame({"城市代码": [1], "户籍人口": [2.0]}).to_csv(path, index=False, encoding="gbk")
        assert list(load_table(path).columns) == ["城市代码", "户籍人口"]

    def test_parquet(self, sample, tmp_path):
        path = tmp_path / "t.parquet"
        sample.to_parquet(path, index=False)
        pd.testing.assert_frame_equal(load_table(path), sample)

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "t.sav"
        path.write_text("x")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_table(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_table(tmp_path / "absent.csv")
