"""
Transient models produced while normalizing upstream items.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ItemKind(str, Enum):
    """Shape of one raw item as delivered by an endpoint."""

    KEYED = "keyed"
    POSITIONAL = "positional"
    TEXT = "text"
    UNKNOWN = "unknown"


class RawItem(BaseModel):
    """
    One upstream item tagged with its shape.

    Attributes:
        kind: Which shape the payload has
        payload: dict for keyed, list for positional, str for text,
                 anything else for unknown
    """

    kind: ItemKind
    payload: Any = None

    @classmethod
    def classify(cls, value: Any) -> "RawItem":
        if isinstance(value, dict):
            return cls(kind=ItemKind.KEYED, payload=value)
        if isinstance(value, (list, tuple)):
            return cls(kind=ItemKind.POSITIONAL, payload=list(value))
        if isinstance(value, str):
            return cls(kind=ItemKind.TEXT, payload=value)
        return cls(kind=ItemKind.UNKNOWN, payload=value)


class MappingStatus(BaseModel):
    """
    Mapping-quality report for one normalized item.

    Attributes:
        total_fields: Fields the target table expects
        mapped_fields: Fields populated from the raw item
        missing_fields: Fields left to their default
        invalid_fields: Candidate values rejected by a validator
        sequence_preserved: Every expected field was populated
    """

    total_fields: int = Field(0, ge=0)
    mapped_fields: int = Field(0, ge=0)
    missing_fields: int = Field(0, ge=0)
    invalid_fields: int = Field(0, ge=0)
    sequence_preserved: bool = False

    @property
    def quality(self) -> float:
        if self.total_fields == 0:
            return 0.0
        return self.mapped_fields / self.total_fields

    @property
    def is_degraded(self) -> bool:
        """Fewer than half the expected fields were mapped."""
        return self.mapped_fields < self.total_fields / 2


class OrderedDataset(BaseModel):
    """
    Resolved field values of one raw item for one target table.

    Attributes:
        table_name: Target table identifier
        field_order: Expected field order (empty for unmapped passthrough)
        field_values: Field name -> stored string value
        original_array: The raw positional array, kept for diagnostics
        status: Mapping-quality report
        active_year: Budget year the item was fetched for
    """

    table_name: str
    field_order: list[str] = Field(default_factory=list)
    field_values: dict[str, Any] = Field(default_factory=dict)
    original_array: list[Any] | None = None
    status: MappingStatus = Field(default_factory=MappingStatus)
    active_year: str | None = None

    @property
    def kode_rup(self) -> str:
        return str(self.field_values.get("kode_rup") or "")

    @property
    def nama_paket(self) -> str:
        return str(self.field_values.get("nama_paket") or "")

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.kode_rup, self.nama_paket)

    def ordered_values(self) -> list[Any]:
        """Field values in declared column order."""
        return [self.field_values.get(name) for name in self.field_order]

    class Config:
        json_schema_extra = {
            "example": {
                "table_name": "perencanaan",
                "field_order": ["kode_rup", "satuan_kerja", "nama_paket"],
                "field_values": {
                    "kode_rup": "12345678",
                    "satuan_kerja": "Dinas Pendidikan",
                    "nama_paket": "Renovasi Kantor",
                },
                "original_array": None,
                "status": {
                    "total_fields": 3,
                    "mapped_fields": 3,
                    "missing_fields": 0,
                    "invalid_fields": 0,
                    "sequence_preserved": True,
                },
                "active_year": "2025",
            }
        }
