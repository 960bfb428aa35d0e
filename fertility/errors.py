"""
Pipeline error taxonomy.

Configuration problems abort a run before any data is touched. Cell-level
data quality problems are never errors: they become missing values.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for errors that abort a pipeline stage."""

    def __init__(self, message: str, stage: str | None = None):
        self.stage = stage
        prefix = f"[{stage}] " if stage else ""
        super().__init__(f"{prefix}{message}")


class ConfigurationError(PipelineError):
    """A stage was configured against a table it cannot run on."""

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        field: str | None = None,
        predicate: str | None = None,
    ):
        self.field = field
        self.predicate = predicate
        super().__init__(message, stage=stage)


class DuplicateKeyError(ConfigurationError):
    """Rows share a key that must be unique (panel key or merge key)."""

    def __init__(self, keys: list[str], duplicates: Any, stage: str | None = None):
        self.keys = keys
        self.duplicates = duplicates
        n_dup = len(duplicates)
        super().__init__(
            f"{n_dup} rows share a duplicated ({', '.join(keys)}) key; "
            "deduplicate before declaring the panel or merging",
            stage=stage,
            field=", ".join(keys),
        )


class EstimationError(PipelineError):
    """The estimation library failed on a specification."""

    def __init__(self, spec_name: str, cause: Exception):
        self.spec_name = spec_name
        self.cause = cause
        super().__init__(
            f"Specification '{spec_name}' failed: {type(cause).__name__}: {cause}",
            stage="estimation",
        )
