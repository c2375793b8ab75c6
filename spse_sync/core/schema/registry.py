"""
Field schema registry.

Each target table is described by a FieldMapping: the ordered field list,
per-field defaults and per-field validators. Mappings are data, loaded from
a YAML document, so adding a table never needs a code change.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PrivateAttr, field_validator

from spse_sync.core.validators import BaseValidator, build_validator
from spse_sync.utils.validation import sanitize_sql_identifier

DEFAULT_MAPPINGS_PATH = Path(__file__).with_name("field_mappings.yaml")

NATURAL_KEY = ("kode_rup", "nama_paket")


class FieldMappingError(ValueError):
    """Raised when a field mapping document is malformed."""


class FieldSpec(BaseModel):
    """One declared field of a target table."""

    name: str
    default: str = ""
    validator: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def check_identifier(cls, v: str) -> str:
        return sanitize_sql_identifier(v, field_name="field name")


class FieldMapping(BaseModel):
    """
    Declaration of one target table.

    Attributes:
        table_name: Identifier used by callers (e.g. "perencanaan")
        fields: Ordered field declarations
        endpoint_env: Environment variable holding the endpoint path
        feeds_work_units: Rows also feed the work-unit table
    """

    table_name: str
    fields: list[FieldSpec]
    endpoint_env: str | None = None
    feeds_work_units: bool = False

    _validators: dict[str, BaseValidator] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise FieldMappingError(f"Duplicate field in mapping '{self.table_name}'")
        for key in NATURAL_KEY:
            if key not in names:
                raise FieldMappingError(f"Mapping '{self.table_name}' lacks natural key field '{key}'")

        for spec in self.fields:
            if spec.validator:
                try:
                    self._validators[spec.name] = build_validator(spec.validator, spec.name, spec.params)
                except ValueError as e:
                    raise FieldMappingError(f"Mapping '{self.table_name}': {e}") from e

    @property
    def sink_table(self) -> str:
        return f"spse_{self.table_name}"

    @property
    def field_order(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def defaults(self) -> dict[str, str]:
        return {f.name: f.default for f in self.fields}

    @property
    def total_fields(self) -> int:
        return len(self.fields)

    def validator_for(self, field_name: str) -> BaseValidator | None:
        return self._validators.get(field_name)

    def first_field_with(self, rule_type: str) -> str | None:
        """Name of the first field validated by the given rule type."""
        for spec in self.fields:
            if spec.validator == rule_type:
                return spec.name
        return None


class FieldSchemaRegistry:
    """
    Lookup of FieldMappings by table identifier.

    A lookup of an unknown table returns None; callers fall back to an
    unmapped passthrough.
    """

    def __init__(self, mappings: list[FieldMapping]):
        self._mappings: dict[str, FieldMapping] = {}
        for mapping in mappings:
            self._mappings[mapping.table_name] = mapping

    def get(self, table_name: str) -> FieldMapping | None:
        return self._mappings.get(table_name)

    def __contains__(self, table_name: str) -> bool:
        return table_name in self._mappings

    def __iter__(self):
        return iter(self._mappings.values())

    def __len__(self) -> int:
        return len(self._mappings)

    @property
    def table_names(self) -> list[str]:
        return list(self._mappings)

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "FieldSchemaRegistry":
        """
        Build a registry from a YAML mapping document.

        Args:
            path: Document path (defaults to env var FIELD_MAPPINGS_PATH,
                  then the bundled field_mappings.yaml)

        Raises:
            FileNotFoundError: If the document does not exist
            FieldMappingError: If the document is malformed
        """
        path = Path(path or os.getenv("FIELD_MAPPINGS_PATH") or DEFAULT_MAPPINGS_PATH)
        if not path.exists():
            raise FileNotFoundError(f"Field mapping file not found: {path}")

        with open(path) as f:
            document = yaml.safe_load(f)

        return cls.from_dict(document)

    @classmethod
    def from_dict(cls, document: dict[str, Any] | None) -> "FieldSchemaRegistry":
        if not document or "tables" not in document:
            raise FieldMappingError("Field mapping document must contain a 'tables' section")

        mappings = []
        for table_name, table_def in document["tables"].items():
            if not isinstance(table_def, dict) or not isinstance(table_def.get("fields"), list):
                raise FieldMappingError(f"Table '{table_name}' must declare a list of fields")
            try:
                sanitize_sql_identifier(str(table_name), field_name="table name")
                fields = [
                    FieldSpec(**f) if isinstance(f, dict) else FieldSpec(name=str(f))
                    for f in table_def["fields"]
                ]
                mappings.append(FieldMapping(
                    table_name=str(table_name),
                    fields=fields,
                    endpoint_env=table_def.get("endpoint_env"),
                    feeds_work_units=bool(table_def.get("feeds_work_units", False)),
                ))
            except FieldMappingError:
                raise
            except ValueError as e:
                raise FieldMappingError(f"Table '{table_name}': {e}") from e

        return cls(mappings)


_default_registry: FieldSchemaRegistry | None = None


def get_registry() -> FieldSchemaRegistry:
    """Process-wide registry loaded from the default mapping document."""
    global _default_registry
    if _default_registry is None:
        _default_registry = FieldSchemaRegistry.from_yaml()
    return _default_registry
