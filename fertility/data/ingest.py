"""
Raw table loading.

Reads the household microdata and city statistics into DataFrames. Format
detection is by file suffix only; no parsing beyond the pandas readers.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from fertility.errors import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".tsv", ".parquet", ".dta", ".xlsx", ".xls")

# Chinese statistical yearbook exports are often GBK-encoded
CSV_ENCODINGS = ("utf-8", "utf-8-sig", "gbk")


def load_table(path: str | Path, sheet_name: str | int = 0) -> pd.DataFrame:
    """
    Read a raw data file into a DataFrame.

    Args:
        path: File path (.csv, .tsv, .parquet, .dta, .xlsx, .xls)
        sheet_name: Worksheet for Excel files

    Raises:
        ConfigurationError: If the file is absent or its format is unsupported
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Input file not found: {path}", stage="ingest")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported file format '{suffix}' for {path} (supported: {SUPPORTED_EXTENSIONS})",
            stage="ingest",
        )

    if suffix in (".csv", ".tsv"):
        sep = "\t" if suffix == ".tsv" else ","
        df = None
        for encoding in CSV_ENCODINGS:
            try:
                df = pd.read_csv(path, sep=sep, encoding=encoding)
                break
            except UnicodeDecodeError:
                continue
        if df is None:
            raise ConfigurationError(
                f"Cannot decode {path} with any of {CSV_ENCODINGS}", stage="ingest"
            )
    elif suffix == ".parquet":
        df = pd.read_parquet(path)
    elif suffix == ".dta":
        df = pd.read_stata(path, convert_categoricals=True)
    else:
        df = pd.read_excel(path, sheet_name=sheet_name)

    logger.info(f"Loaded {path.name}: {len(df)} rows, {len(df.columns)} columns")
    return df
