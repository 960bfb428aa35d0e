"""
Missingness tracking for the cleaning pipeline.

Cell-level data problems (log of a non-positive value, division by zero,
unmatched city-years) never abort the pipeline; they become missing values.
This tracker makes them countable: after each stage it records, per field,
how many cells are missing, and warns when a field is mostly empty.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)


class FieldStatus(Enum):
    """Completeness of a field after a stage."""
    COMPLETE = "complete"  # No missing cells
    PARTIAL = "partial"  # Some missing cells
    EMPTY = "empty"  # Every cell missing


@dataclass
class FieldQualityRecord:
    """Missingness of one field after one stage."""

    stage: str
    field_name: str
    rows: int
    n_missing: int
    status: FieldStatus
    warnings: list[str] = field(default_factory=list)

    @property
    def missing_share(self) -> float:
        return self.n_missing / self.rows if self.rows else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "field": self.field_name,
            "rows": self.rows,
            "n_missing": self.n_missing,
            "missing_share": round(self.missing_share, 6),
            "status": self.status.value,
            "warnings": "; ".join(self.warnings),
        }


class MissingnessTracker:
    """
    Records per-field missing counts stage by stage.

    Use this to:
    1. Count cells degraded to missing by each stage
    2. Warn when a field is missing for most rows
    3. Persist a missing-rate report next to the cleaned table
    """

    def __init__(self, warn_share: float = 0.5):
        self.warn_share = warn_share
        self.records: list[FieldQualityRecord] = []
        self._warnings: list[str] = []

    def record_stage(
        self,
        stage: str,
        df: pd.DataFrame,
        fields: list[str] | None = None,
    ) -> list[FieldQualityRecord]:
        """
        Record missingness of ``fields`` (default: every column) in ``df``.

        Args:
            stage: Name of the stage that produced ``df``
            df: Stage output
            fields: Columns to record

        Returns:
            The created records
        """
        fields = [c for c in (fields or list(df.columns)) if c in df.columns]
        created = []
        for name in fields:
            n_missing = int(df[name].isna().sum())
            if n_missing == 0:
                status = FieldStatus.COMPLETE
            elif n_missing == len(df):
                status = FieldStatus.EMPTY
            else:
                status = FieldStatus.PARTIAL

            record = FieldQualityRecord(
                stage=stage,
                field_name=name,
                rows=len(df),
                n_missing=n_missing,
                status=status,
            )

            if status == FieldStatus.EMPTY and len(df):
                warning = f"EMPTY: '{name}' is missing for every row after {stage}"
                record.warnings.append(warning)
                self._warnings.append(warning)
                logger.warning(warning)
            elif record.missing_share > self.warn_share:
                warning = (
                    f"SPARSE: '{name}' is missing for {record.missing_share:.1%} of rows after {stage}"
                )
                record.warnings.append(warning)
                self._warnings.append(warning)
                logger.warning(warning)

            created.append(record)

        self.records.extend(created)
        return created

    def get_warnings(self) -> list[str]:
        """Get all warnings."""
        return self._warnings.copy()

    def latest(self, field_name: str) -> FieldQualityRecord | None:
        """Most recent record for a field."""
        for record in reversed(self.records):
            if record.field_name == field_name:
                return record
        return None

    def to_frame(self) -> pd.DataFrame:
        """One row per (stage, field)."""
        return pd.DataFrame([r.to_dict() for r in self.records])

    def save(self, filepath: str | Path) -> None:
        """Save the missing-rate report as CSV."""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(filepath, index=False)
        logger.info(f"Saved missingness report to {filepath}")
