"""
Housing prices and fertility: project settings.
"""

from pathlib import Path
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Directories
    project_root: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent,
        description="Project root directory",
    )
    data_dir: Path = Field(default=Path("data"), description="Data directory")
    output_dir: Path = Field(default=Path("outputs"), description="Output directory")

    # Inputs
    household_file: str = Field(
        default="household_panel.dta",
        description="Household-year microdata file under data/raw",
    )
    city_file: str = Field(
        default="city_statistics.csv",
        description="City-year administrative statistics file under data/raw",
    )
    variable_dictionary_path: Path = Field(
        default_factory=lambda: Path(__file__).parent / "variable_dictionary.yaml",
        description="Variable dictionary (locale labels -> normalized fields)",
    )

    # Outputs
    clean_table_name: str = Field(
        default="analysis_sample.parquet",
        description="Cleaned household-year table written under data/processed",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    missing_warn_share: float = Field(
        default=0.5,
        description="Warn when a derived field is missing for more than this share of rows",
    )

    # Panel
    panel_time_step: int = Field(
        default=1, description="Distance in years between consecutive survey waves"
    )

    # Sample restrictions
    birth_age_min: int = Field(default=18, description="Minimum mother age at birth")
    birth_age_max: int = Field(default=40, description="Maximum mother age at birth")
    min_birth_year: int = Field(default=2010, description="First child birth cohort kept")
    winsor_lower: float = Field(default=0.01, description="Lower winsorization quantile")
    winsor_upper: float = Field(default=0.99, description="Upper winsorization quantile")

    # Robustness samples
    price_floor: float = Field(
        default=1000.0,
        description="Drop households whose own price per m2 (yuan) is below this floor",
    )
    robust_winsor_lower: float = Field(default=0.0, description="Robustness lower quantile")
    robust_winsor_upper: float = Field(default=0.98, description="Robustness upper quantile")

    @property
    def raw_data_dir(self) -> Path:
        return self.data_dir / "raw"

    @property
    def processed_data_dir(self) -> Path:
        return self.data_dir / "processed"

    @property
    def tables_dir(self) -> Path:
        return self.output_dir / "tables"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
