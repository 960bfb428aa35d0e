"""
Schema normalization for household-year and city-year tables.

Renames locale-specific columns to normalized field names, standardizes
identifier columns, recodes categorical string labels to binary indicators
and coerces numeric fields. Every label -> code decision comes from the
variable dictionary; nothing here compares against literal labels.
"""

import logging

import numpy as np
import pandas as pd

from fertility.data.variable_dictionary import (
    RecodeSpec,
    VariableDictionary,
    load_variable_dictionary,
)
from fertility.errors import ConfigurationError

logger = logging.getLogger(__name__)

STAGE = "schema_normalizer"


def standardize_key(series: pd.Series) -> pd.Series:
    """Identifier column as a stripped string; integral floats lose their '.0'."""
    if pd.api.types.is_numeric_dtype(series):
        numeric = pd.to_numeric(series, errors="coerce")
        integral = numeric.dropna()
        if (integral == np.floor(integral)).all():
            return numeric.astype("Int64").astype("string")
        return numeric.astype("string")

    out = series.astype("string").str.strip()
    return out.mask(out == "")


def recode_labels(series: pd.Series, recode: RecodeSpec) -> pd.Series:
    """Map string labels to codes, applying the field's 'other' policy."""
    labels = series.astype("string").str.strip()
    coded = pd.to_numeric(labels.map(recode.labels), errors="coerce").astype(float)
    if recode.other == "zero":
        coded = coded.fillna(0.0)
    return coded


class SchemaNormalizer:
    """Normalizes raw tables against the variable dictionary."""

    def __init__(self, dictionary: VariableDictionary | None = None):
        self.dictionary = dictionary or load_variable_dictionary()

    def normalize_household(self, raw: pd.DataFrame) -> pd.DataFrame:
        """
        Normalize raw household-year records.

        Args:
            raw: Household-year table with source or normalized column names

        Returns:
            New table with normalized names, string keys, binary indicators
            for categorical fields and float numeric fields
        """
        df = self._rename(raw, "household")

        for name in self.dictionary.key_fields("household"):
            df[name] = standardize_key(df[name])

        n_unrecognized = {}
        for name in self.dictionary.categorical_fields("household"):
            recode = self.dictionary.recodes[name]
            raw_labels = df[name]
            df[name] = recode_labels(raw_labels, recode)
            unrecognized = raw_labels.notna() & ~raw_labels.astype("string").str.strip().isin(
                list(recode.labels)
            )
            n_unrecognized[name] = int(unrecognized.sum())

        df = self._coerce_numeric(df, "household")

        for name, count in n_unrecognized.items():
            if count:
                policy = self.dictionary.recodes[name].other
                logger.info(f"{name}: {count} unrecognized labels recoded as {policy}")

        logger.info(f"Normalized household table: {len(df)} rows, {len(df.columns)} columns")
        return df

    def normalize_city(self, raw: pd.DataFrame) -> pd.DataFrame:
        """Normalize raw city-year administrative records."""
        df = self._rename(raw, "city")

        for name in self.dictionary.key_fields("city"):
            df[name] = standardize_key(df[name])

        df = self._coerce_numeric(df, "city")
        logger.info(f"Normalized city table: {len(df)} rows")
        return df

    def _rename(self, raw: pd.DataFrame, table: str) -> pd.DataFrame:
        rename = {
            src: dst
            for src, dst in self.dictionary.rename_map(table).items()
            if src in raw.columns and src != dst
        }
        df = raw.rename(columns=rename).copy()

        expected = self.dictionary.field_names(table)
        missing = [c for c in expected if c not in df.columns]
        if missing:
            raise ConfigurationError(
                f"{table} table is missing expected fields: {missing}",
                stage=STAGE,
                field=missing[0],
            )
        return df

    def _coerce_numeric(self, df: pd.DataFrame, table: str) -> pd.DataFrame:
        for name in self.dictionary.numeric_fields(table):
            before = df[name].notna().sum()
            df[name] = pd.to_numeric(df[name], errors="coerce").astype(float)
            lost = int(before - df[name].notna().sum())
            if lost:
                logger.warning(f"{name}: {lost} values failed numeric coercion")
        return df
