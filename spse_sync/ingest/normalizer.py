"""
Record normalization.

Turns one raw upstream item (keyed record, positional array or free text)
into an OrderedDataset for a target table, using that table's FieldMapping.
Rejected values never reach the dataset; they are counted and the field is
left to its default.
"""

import re
from typing import Any

from spse_sync.core.models import ItemKind, MappingStatus, OrderedDataset, RawItem
from spse_sync.core.schema import FieldMapping, FieldSchemaRegistry
from spse_sync.observability import metrics
from spse_sync.observability.logger import get_logger

logger = get_logger(__name__)

MONTH_NAMES = (
    "Januari|Februari|Maret|April|Mei|Juni|Juli|Agustus|"
    "September|Oktober|November|Desember"
)

KODE_RUP_PATTERN = re.compile(r"(\d{8,})")
CURRENCY_PATTERN = re.compile(r"Rp\.?\s*([\d,.]+)")
DATE_PATTERN = re.compile(rf"(\d{{1,2}}\s+(?:{MONTH_NAMES})\s+\d{{4}})", re.IGNORECASE)


def stringify(value: Any) -> str | None:
    """
    Render a raw JSON value as the string stored in the sink.

    Returns None for values that carry nothing (null, empty or blank).
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


class RecordNormalizer:
    """
    Normalizes raw items against the field schema registry.

    Args:
        registry: Field schema registry
        active_year: Budget year stamped on every dataset
    """

    def __init__(self, registry: FieldSchemaRegistry, active_year: str | None = None):
        self.registry = registry
        self.active_year = active_year

    def normalize(self, item: RawItem, table_name: str) -> OrderedDataset:
        """
        Normalize one raw item for one table.

        Unknown tables yield an unmapped passthrough dataset with an empty
        status; unknown item shapes yield an empty dataset.
        """
        mapping = self.registry.get(table_name)
        if mapping is None:
            return self._passthrough(item, table_name)

        if item.kind == ItemKind.KEYED:
            dataset = self.from_record(item.payload, mapping)
        elif item.kind == ItemKind.POSITIONAL:
            dataset = self.from_array(item.payload, mapping)
        elif item.kind == ItemKind.TEXT:
            dataset = self.from_text(item.payload, mapping)
        else:
            dataset = self._finish(mapping, {}, invalid=0)

        self._report(dataset, item.kind)
        return dataset

    def from_record(self, record: dict[str, Any], mapping: FieldMapping) -> OrderedDataset:
        """Map a keyed record field by field in declared order."""
        values: dict[str, str] = {}
        invalid = 0

        for field_name in mapping.field_order:
            candidate = stringify(record.get(field_name))
            if candidate is None:
                continue
            if not self._accept(mapping, field_name, candidate, values):
                invalid += self._rejected(mapping, field_name, candidate)

        return self._finish(mapping, values, invalid)

    def from_array(self, array: list[Any], mapping: FieldMapping) -> OrderedDataset:
        """
        Map a positional array index-for-index onto the declared field order.

        Extra trailing elements are ignored. A column shift upstream is only
        visible through rejected values and a lower mapping quality.
        """
        values: dict[str, str] = {}
        invalid = 0

        for field_name, raw in zip(mapping.field_order, array):
            candidate = stringify(raw)
            if candidate is None:
                continue
            if not self._accept(mapping, field_name, candidate, values):
                invalid += self._rejected(mapping, field_name, raw)

        return self._finish(mapping, values, invalid, original_array=list(array))

    def from_text(self, text: str, mapping: FieldMapping) -> OrderedDataset:
        """
        Recover what can be recovered from unstructured text.

        A long digit run becomes the procurement code, an "Rp" amount the
        first currency field and an Indonesian date the first date field.
        When nothing matches, the whole text becomes the package name.
        """
        values: dict[str, str] = {}
        invalid = 0
        matched = False

        candidates: list[tuple[str | None, str | None]] = []

        code = KODE_RUP_PATTERN.search(text)
        if code:
            candidates.append(("kode_rup", code.group(1)))

        amount = CURRENCY_PATTERN.search(text)
        if amount:
            candidates.append((mapping.first_field_with("currency"), f"Rp. {amount.group(1)}"))

        announced = DATE_PATTERN.search(text)
        if announced:
            candidates.append((mapping.first_field_with("date"), announced.group(1)))

        for field_name, candidate in candidates:
            if field_name is None or field_name in values:
                continue
            matched = True
            if not self._accept(mapping, field_name, candidate, values):
                invalid += self._rejected(mapping, field_name, candidate)

        if not matched:
            self._accept(mapping, "nama_paket", stringify(text), values)

        return self._finish(mapping, values, invalid)

    def _accept(
        self,
        mapping: FieldMapping,
        field_name: str,
        candidate: str | None,
        values: dict[str, str],
    ) -> bool:
        if candidate is None:
            return False
        validator = mapping.validator_for(field_name)
        if validator is not None and not validator.is_valid(candidate):
            return False
        values[field_name] = candidate
        return True

    def _rejected(self, mapping: FieldMapping, field_name: str, raw: Any) -> int:
        logger.debug(
            "Rejected value for field",
            extra={"table": mapping.table_name, "field_name": field_name, "value": str(raw)[:100]},
        )
        metrics.rejected_values_total.labels(table=mapping.table_name, field_name=field_name).inc()
        return 1

    def _finish(
        self,
        mapping: FieldMapping,
        values: dict[str, str],
        invalid: int,
        original_array: list[Any] | None = None,
    ) -> OrderedDataset:
        mapped = len(values)
        total = mapping.total_fields

        field_values = dict(mapping.defaults)
        field_values.update(values)

        status = MappingStatus(
            total_fields=total,
            mapped_fields=mapped,
            missing_fields=total - mapped,
            invalid_fields=invalid,
            sequence_preserved=mapped == total,
        )

        return OrderedDataset(
            table_name=mapping.table_name,
            field_order=mapping.field_order,
            field_values=field_values,
            original_array=original_array,
            status=status,
            active_year=self.active_year,
        )

    def _passthrough(self, item: RawItem, table_name: str) -> OrderedDataset:
        logger.warning("No field mapping for table, passing item through", extra={"table": table_name})
        field_values = dict(item.payload) if item.kind == ItemKind.KEYED else {}
        original = item.payload if item.kind == ItemKind.POSITIONAL else None
        return OrderedDataset(
            table_name=table_name,
            field_values=field_values,
            original_array=original,
            active_year=self.active_year,
        )

    def _report(self, dataset: OrderedDataset, kind: ItemKind) -> None:
        status = dataset.status
        metrics.record_mapping(dataset.table_name, kind.value, status.mapped_fields, status.total_fields)

        if status.is_degraded:
            logger.warning(
                "Low mapping quality, upstream format may have changed",
                extra={
                    "table": dataset.table_name,
                    "item_kind": kind.value,
                    "mapped_fields": status.mapped_fields,
                    "total_fields": status.total_fields,
                    "invalid_fields": status.invalid_fields,
                },
            )
