"""
Variable dictionary loader.

The dictionary maps locale-specific source column names to normalized field
names, lists which fields are numeric, and carries the label -> code tables
used to recode categorical strings. It is configuration, not logic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml

from fertility.errors import ConfigurationError

logger = logging.getLogger(__name__)

FieldKind = Literal["key", "numeric", "categorical"]
OtherPolicy = Literal["zero", "missing"]

_VALID_KINDS = {"key", "numeric", "categorical"}
_VALID_POLICIES = {"zero", "missing"}


@dataclass(frozen=True)
class FieldSpec:
    """One dictionary entry."""

    source: str
    name: str
    kind: FieldKind
    label: str = ""


@dataclass(frozen=True)
class RecodeSpec:
    """Label -> code table for one categorical field."""

    name: str
    labels: dict[str, int]
    other: OtherPolicy = "missing"


@dataclass
class VariableDictionary:
    """Parsed variable dictionary."""

    household: list[FieldSpec] = field(default_factory=list)
    city: list[FieldSpec] = field(default_factory=list)
    recodes: dict[str, RecodeSpec] = field(default_factory=dict)
    derived: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VariableDictionary:
        household = [_parse_field(e, "household") for e in data.get("household") or []]
        city = [_parse_field(e, "city") for e in data.get("city") or []]

        recodes: dict[str, RecodeSpec] = {}
        for name, entry in (data.get("recodes") or {}).items():
            other = entry.get("other", "missing")
            if other not in _VALID_POLICIES:
                raise ConfigurationError(
                    f"Unknown recode policy '{other}' for '{name}' "
                    f"(expected one of {sorted(_VALID_POLICIES)})",
                    stage="variable_dictionary",
                    field=name,
                )
            labels = {str(k): int(v) for k, v in (entry.get("labels") or {}).items()}
            recodes[name] = RecodeSpec(name=name, labels=labels, other=other)

        vd = cls(
            household=household,
            city=city,
            recodes=recodes,
            derived=dict(data.get("derived") or {}),
        )
        vd._check_recodes()
        return vd

    def _check_recodes(self) -> None:
        categorical = {f.name for f in self.household if f.kind == "categorical"}
        missing = categorical - set(self.recodes)
        if missing:
            raise ConfigurationError(
                f"Categorical fields without a recode table: {sorted(missing)}",
                stage="variable_dictionary",
                field=sorted(missing)[0],
            )

    def with_recode(self, name: str, other: OtherPolicy) -> VariableDictionary:
        """Copy of the dictionary with a different 'other' policy for one field."""
        if name not in self.recodes:
            raise ConfigurationError(
                f"No recode table for '{name}'", stage="variable_dictionary", field=name
            )
        recodes = dict(self.recodes)
        recodes[name] = RecodeSpec(name=name, labels=recodes[name].labels, other=other)
        return VariableDictionary(
            household=list(self.household),
            city=list(self.city),
            recodes=recodes,
            derived=dict(self.derived),
        )

    def rename_map(self, table: str) -> dict[str, str]:
        """Source name -> normalized name for 'household' or 'city'."""
        return {f.source: f.name for f in self._fields(table)}

    def field_names(self, table: str) -> list[str]:
        return [f.name for f in self._fields(table)]

    def key_fields(self, table: str) -> list[str]:
        return [f.name for f in self._fields(table) if f.kind == "key"]

    def numeric_fields(self, table: str) -> list[str]:
        return [f.name for f in self._fields(table) if f.kind == "numeric"]

    def categorical_fields(self, table: str) -> list[str]:
        return [f.name for f in self._fields(table) if f.kind == "categorical"]

    def labels(self) -> dict[str, str]:
        """Normalized field name -> human-readable definition."""
        out = {f.name: f.label for f in self.household + self.city if f.label}
        out.update(self.derived)
        return out

    def _fields(self, table: str) -> list[FieldSpec]:
        if table == "household":
            return self.household
        if table == "city":
            return self.city
        raise ValueError(f"Unknown table '{table}' (expected 'household' or 'city')")


def _parse_field(entry: dict[str, Any], table: str) -> FieldSpec:
    kind = entry.get("kind", "numeric")
    if kind not in _VALID_KINDS:
        raise ConfigurationError(
            f"Unknown field kind '{kind}' in {table} dictionary",
            stage="variable_dictionary",
            field=entry.get("name"),
        )
    return FieldSpec(
        source=str(entry["source"]),
        name=str(entry["name"]),
        kind=kind,
        label=str(entry.get("label", "")),
    )


def load_variable_dictionary(path: Path | str | None = None) -> VariableDictionary:
    """Load the variable dictionary from YAML (defaults to settings path)."""
    if path is None:
        from config.settings import get_settings

        path = get_settings().variable_dictionary_path

    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Variable dictionary not found: {path}", stage="variable_dictionary"
        )

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    vd = VariableDictionary.from_dict(data)
    logger.debug(
        f"Loaded variable dictionary: {len(vd.household)} household fields, "
        f"{len(vd.city)} city fields, {len(vd.recodes)} recodes"
    )
    return vd
