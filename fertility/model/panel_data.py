"""
Household x year panel construction.

Declares the (household id, year) panel key, validates it, and provides
time-based lag/lead operators. Lags look up the record at ``t - k * step``
for the same household; they never read the physically previous row, so
gaps in a household's survey history yield missing values.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from config.settings import get_settings
from fertility.errors import ConfigurationError, DuplicateKeyError

logger = logging.getLogger(__name__)

STAGE = "panel_builder"


@dataclass
class PanelValidation:
    """Result of validating a candidate panel."""

    n_rows: int
    n_units: int
    n_periods: int
    n_missing_keys: int
    duplicates: pd.DataFrame = field(default_factory=pd.DataFrame)
    n_units_with_gaps: int = 0

    @property
    def n_duplicate_rows(self) -> int:
        return len(self.duplicates)

    @property
    def is_valid(self) -> bool:
        return self.n_missing_keys == 0 and self.n_duplicate_rows == 0

    def summary(self) -> str:
        status = "valid" if self.is_valid else "INVALID"
        return (
            f"Panel {status}: {self.n_rows} rows, {self.n_units} units, "
            f"{self.n_periods} periods, {self.n_duplicate_rows} duplicated-key rows, "
            f"{self.n_missing_keys} rows with missing keys, "
            f"{self.n_units_with_gaps} units with gaps"
        )


class PanelBuilder:
    """Declares and operates on the household-year panel."""

    def __init__(
        self,
        unit: str = "hhid",
        time: str = "year",
        step: int | None = None,
    ):
        """
        Initialize panel builder.

        Args:
            unit: Unit identifier column
            time: Time index column
            step: Distance between consecutive waves (defaults to settings)
        """
        self.unit = unit
        self.time = time
        self.step = step if step is not None else get_settings().panel_time_step
        if self.step < 1:
            raise ConfigurationError(
                f"Panel time step must be positive, got {self.step}", stage=STAGE
            )

    @property
    def keys(self) -> list[str]:
        return [self.unit, self.time]

    def validate(self, df: pd.DataFrame) -> PanelValidation:
        """Check key completeness, uniqueness and contiguity without raising."""
        self._require(df, self.keys)

        missing_keys = df[self.keys].isna().any(axis=1)
        keyed = df[~missing_keys]
        dup_mask = keyed.duplicated(subset=self.keys, keep=False)
        duplicates = keyed.loc[dup_mask, self.keys].sort_values(self.keys)

        n_gaps = 0
        if not keyed.empty:
            ordered = keyed.drop_duplicates(subset=self.keys).sort_values(self.keys)
            diffs = ordered.groupby(self.unit, sort=False)[self.time].diff()
            n_gaps = int(ordered.loc[diffs > self.step, self.unit].nunique())

        return PanelValidation(
            n_rows=len(df),
            n_units=int(keyed[self.unit].nunique()),
            n_periods=int(keyed[self.time].nunique()),
            n_missing_keys=int(missing_keys.sum()),
            duplicates=duplicates,
            n_units_with_gaps=n_gaps,
        )

    def declare(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Declare the panel.

        Returns a new table sorted by (unit, time) with an integer time index.

        Raises:
            ConfigurationError: If key columns are absent or have missing values
            DuplicateKeyError: If any (unit, time) key appears more than once
        """
        validation = self.validate(df)

        if validation.n_missing_keys:
            raise ConfigurationError(
                f"{validation.n_missing_keys} rows have a missing ({self.unit}, {self.time}) key",
                stage=STAGE,
                field=self.unit,
            )
        if validation.n_duplicate_rows:
            logger.error(validation.summary())
            raise DuplicateKeyError(self.keys, validation.duplicates, stage=STAGE)

        time = pd.to_numeric(df[self.time], errors="coerce")
        if not (time == np.floor(time)).all():
            raise ConfigurationError(
                f"Time index '{self.time}' must be integral", stage=STAGE, field=self.time
            )

        panel = df.copy()
        panel[self.time] = time.astype("int64")
        panel = panel.sort_values(self.keys, kind="mergesort").reset_index(drop=True)

        if validation.n_units_with_gaps:
            logger.info(
                f"{validation.n_units_with_gaps} units have non-contiguous waves; "
                "lags across gaps will be missing"
            )
        logger.info(validation.summary())
        return panel

    def deduplicate(self, df: pd.DataFrame, keep: str = "first") -> pd.DataFrame:
        """Drop repeated (unit, time) keys, keeping one row per key."""
        self._require(df, self.keys)
        out = df.drop_duplicates(subset=self.keys, keep=keep).copy()
        dropped = len(df) - len(out)
        if dropped:
            logger.warning(f"Dropped {dropped} rows with duplicated ({self.unit}, {self.time}) keys")
        return out

    def lag(self, df: pd.DataFrame, column: str, k: int = 1) -> pd.Series:
        """Value of ``column`` at ``t - k * step`` for the same unit (missing if absent)."""
        if k < 0:
            raise ConfigurationError(f"Lag order must be non-negative, got {k}", stage=STAGE)
        return self._shift(df, column, k)

    def lead(self, df: pd.DataFrame, column: str, k: int = 1) -> pd.Series:
        """Value of ``column`` at ``t + k * step`` for the same unit (missing if absent)."""
        if k < 0:
            raise ConfigurationError(f"Lead order must be non-negative, got {k}", stage=STAGE)
        return self._shift(df, column, -k)

    def repair_ids(self, df: pd.DataFrame, column: str = "cid") -> pd.DataFrame:
        """
        Fill a missing time-varying identifier from the adjacent wave.

        Takes the next wave's value first, then the previous wave's. Only the
        single nearest wave on each side is consulted; units with no
        non-missing value nearby stay missing.
        """
        self._require(df, [column])
        out = df.copy()

        missing_before = int(out[column].isna().sum())
        if missing_before == 0:
            return out

        # Both neighbours are read from the unrepaired column so fills never chain
        from_lead = self.lead(df, column, 1)
        from_lag = self.lag(df, column, 1)
        out[column] = out[column].fillna(from_lead).fillna(from_lag)

        repaired = missing_before - int(out[column].isna().sum())
        logger.info(
            f"Repaired {repaired}/{missing_before} missing '{column}' values from adjacent waves"
        )
        return out

    def build(self, df: pd.DataFrame, repair: str | None = "cid") -> pd.DataFrame:
        """Declare the panel and repair the community identifier."""
        panel = self.declare(df)
        if repair and repair in panel.columns:
            panel = self.repair_ids(panel, repair)
        return panel

    def _shift(self, df: pd.DataFrame, column: str, k: int) -> pd.Series:
        self._require(df, self.keys + [column])
        if df.duplicated(subset=self.keys).any():
            dups = df.loc[df.duplicated(subset=self.keys, keep=False), self.keys]
            raise DuplicateKeyError(self.keys, dups, stage=STAGE)

        source = df[self.keys + [column]].copy()
        # The record at t appears as the k-lag of t + k * step
        source[self.time] = source[self.time] + k * self.step
        merged = df[self.keys].merge(source, on=self.keys, how="left")
        return pd.Series(merged[column].array, index=df.index, name=column)

    def _require(self, df: pd.DataFrame, columns: list[str]) -> None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ConfigurationError(
                f"Panel column(s) not found: {missing}", stage=STAGE, field=missing[0]
            )
