"""
Per-table field mappings and their registry.
"""

from .registry import (
    NATURAL_KEY,
    FieldMapping,
    FieldMappingError,
    FieldSchemaRegistry,
    FieldSpec,
    get_registry,
)

__all__ = [
    "NATURAL_KEY",
    "FieldSpec",
    "FieldMapping",
    "FieldMappingError",
    "FieldSchemaRegistry",
    "get_registry",
]
