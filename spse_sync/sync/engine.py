"""
Reconciliation sync engine.

One cycle mirrors one portal endpoint into its sink table:

1. snapshot the natural keys currently live in the sink
2. acquire a token and fetch the endpoint (failure aborts, nothing opened)
3. open one transaction for the cycle
4. normalize and upsert every item, each inside its own savepoint
5. retire live keys that this fetch no longer returned
6. commit

Per-item failures are counted and skipped. A cycle that does not commit
reports nothing stored.
"""

import threading
import time
from contextlib import contextmanager
from typing import Iterator

import psycopg

from spse_sync.config import Settings
from spse_sync.core.models import ItemKind, RawItem, SyncAllResult, SyncResult, SyncState
from spse_sync.core.schema import FieldMapping, FieldSchemaRegistry
from spse_sync.ingest import RecordNormalizer, SourceClient, SourceError
from spse_sync.observability import metrics
from spse_sync.observability.logger import get_logger, log_operation
from spse_sync.warehouse.connection import DatabaseConnectionPool
from spse_sync.warehouse.upsert import NaturalKey, SinkWriter, now_epoch

logger = get_logger(__name__)

_locks_guard = threading.Lock()
_table_locks: dict[str, threading.Lock] = {}


class CycleInProgressError(RuntimeError):
    """A cycle for the same table is already running in this process."""


class UnknownTableError(ValueError):
    """No field mapping is registered for the requested table."""


@contextmanager
def cycle_lock(table_name: str) -> Iterator[None]:
    """Serialize cycles per table; a second caller fails instead of waiting."""
    with _locks_guard:
        lock = _table_locks.setdefault(table_name, threading.Lock())
    if not lock.acquire(blocking=False):
        raise CycleInProgressError(f"A sync cycle for '{table_name}' is already running")
    try:
        yield
    finally:
        lock.release()


class SyncEngine:
    """
    Drives sync cycles for the tables of a field schema registry.

    Args:
        pool: Database connection pool
        client: Portal client (owns the HTTP session)
        registry: Field schema registry
        settings: Portal settings (endpoint paths, active year)
        normalizer: Record normalizer (built from registry and settings by default)
        writer: Sink writer (built from pool by default)
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        client: SourceClient,
        registry: FieldSchemaRegistry,
        settings: Settings,
        normalizer: RecordNormalizer | None = None,
        writer: SinkWriter | None = None,
    ):
        self.pool = pool
        self.client = client
        self.registry = registry
        self.settings = settings
        self.normalizer = normalizer or RecordNormalizer(registry, active_year=settings.active_year)
        self.writer = writer or SinkWriter(pool)

    def run_all(self) -> SyncAllResult:
        """
        Run one cycle per registered table, one after the other.

        Tables are not parallelized to keep load on the portal bounded.
        """
        summary = SyncAllResult(total_tables=len(self.registry))
        for table_name in self.registry.table_names:
            try:
                result = self.run_cycle(table_name)
            except CycleInProgressError as e:
                result = SyncResult(table=table_name, state=SyncState.IDLE, message=str(e))
            summary.results[table_name] = result
            if result.success:
                summary.total_success += 1

        logger.info(
            "All sync cycles finished",
            extra={"total_success": summary.total_success, "total_tables": summary.total_tables},
        )
        return summary

    def run_cycle(self, table_name: str, form_params: dict[str, str] | None = None) -> SyncResult:
        """
        Run one full sync cycle for one table.

        Returns:
            SyncResult; success is False for fatal conditions

        Raises:
            UnknownTableError: If the table has no field mapping
            CycleInProgressError: If a cycle for this table is already running
        """
        mapping = self.registry.get(table_name)
        if mapping is None:
            raise UnknownTableError(f"No field mapping for table '{table_name}'")

        endpoint = self.settings.endpoint_for(table_name)
        if not endpoint:
            return SyncResult(
                table=table_name,
                message=f"No endpoint configured for table '{table_name}' ({mapping.endpoint_env})",
            )

        with cycle_lock(table_name):
            with log_operation("Sync cycle", logger=logger, table=table_name, endpoint=endpoint) as op:
                result = self._cycle(mapping, endpoint, form_params)
                result.duration_seconds = round(op.elapsed, 3)

        metrics.record_cycle(
            table=table_name,
            committed=result.state == SyncState.COMMITTED,
            fetched=result.records_found,
            stored=result.records_stored,
            failed=result.records_failed,
            retired=result.records_retired,
            duration_seconds=result.duration_seconds,
            finished_at=time.time(),
        )
        return result

    def _cycle(self, mapping: FieldMapping, endpoint: str, form_params: dict[str, str] | None) -> SyncResult:
        result = SyncResult(table=mapping.table_name, endpoint=endpoint, state=SyncState.IDLE)

        try:
            pre_cycle_keys = self.writer.live_keys(mapping)
            self.client.acquire_token()
            result.state = SyncState.TOKEN_ACQUIRED
            items = self.client.fetch_endpoint(endpoint, form_params)
            result.state = SyncState.ITEMS_FETCHED
        except (SourceError, psycopg.Error) as e:
            return self._abort(result, f"Fetch failed: {e}")

        result.records_found = len(items)
        stored = failed = retired = 0
        seen: set[NaturalKey] = set()

        try:
            with self.pool.transaction() as conn:
                with conn.cursor() as cur:
                    last_update = now_epoch()

                    for item in items:
                        result.state = SyncState.NORMALIZING
                        dataset = self._normalize(item, mapping)
                        if dataset is None:
                            failed += 1
                            continue
                        seen.add(dataset.natural_key)

                        result.state = SyncState.UPSERTING
                        try:
                            with conn.transaction():
                                self.writer.upsert(cur, mapping, dataset, last_update)
                        except psycopg.Error as e:
                            failed += 1
                            logger.warning(
                                "Upsert failed, skipping record",
                                extra={"table": mapping.table_name, "kode_rup": dataset.kode_rup, "error": str(e)},
                            )
                            continue
                        stored += 1

                        if mapping.feeds_work_units:
                            self._upsert_work_unit(conn, cur, dataset, last_update)

                    result.state = SyncState.RECONCILING
                    retired = self._retire(conn, cur, mapping, pre_cycle_keys - seen)
        except psycopg.Error as e:
            return self._abort(result, f"Transaction failed: {e}")

        result.state = SyncState.COMMITTED
        result.success = True
        result.records_stored = stored
        result.records_failed = failed
        result.records_retired = retired
        result.message = (
            f"Stored {stored} of {len(items)} records from {endpoint}, "
            f"{failed} failed, {retired} retired"
        )
        logger.info(
            "Sync cycle committed",
            extra={
                "table": mapping.table_name,
                "records_found": len(items),
                "records_stored": stored,
                "records_failed": failed,
                "records_retired": retired,
            },
        )
        return result

    def _normalize(self, item: RawItem, mapping: FieldMapping):
        if item.kind == ItemKind.UNKNOWN:
            logger.warning(
                "Unrecognized item shape, skipping",
                extra={"table": mapping.table_name, "item_type": type(item.payload).__name__},
            )
            return None

        dataset = self.normalizer.normalize(item, mapping.table_name)
        if not dataset.kode_rup:
            logger.warning(
                "Item has no valid kode_rup, skipping",
                extra={"table": mapping.table_name, "item_kind": item.kind.value,
                       "invalid_fields": dataset.status.invalid_fields},
            )
            return None
        return dataset

    def _upsert_work_unit(self, conn: psycopg.Connection, cur: psycopg.Cursor, dataset, last_update: int) -> None:
        try:
            with conn.transaction():
                self.writer.upsert_work_unit(cur, dataset, last_update)
        except psycopg.Error as e:
            logger.warning(
                "Work unit upsert failed",
                extra={"kode_satuan_kerja": dataset.field_values.get("kode_satuan_kerja"), "error": str(e)},
            )

    def _retire(self, conn: psycopg.Connection, cur: psycopg.Cursor, mapping: FieldMapping, keys: set[NaturalKey]) -> int:
        if not keys:
            return 0
        try:
            with conn.transaction():
                retired = self.writer.retire(cur, mapping, keys)
        except psycopg.Error as e:
            logger.warning(
                "Retirement failed, stale rows stay live",
                extra={"table": mapping.table_name, "keys": len(keys), "error": str(e)},
            )
            return 0

        logger.info("Retired rows missing upstream", extra={"table": mapping.table_name, "retired": retired})
        return retired

    @staticmethod
    def _abort(result: SyncResult, message: str) -> SyncResult:
        logger.error(
            "Sync cycle aborted",
            extra={"table": result.table, "state": result.state.value, "error": message},
        )
        result.state = SyncState.ROLLED_BACK
        result.success = False
        result.message = message
        result.records_stored = 0
        result.records_failed = 0
        result.records_retired = 0
        return result
