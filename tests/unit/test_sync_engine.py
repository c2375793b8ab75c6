"""
Unit tests for the sync engine

The pool, connection, cursor, client and writer are mocks, so these tests
cover the cycle's control flow: state transitions, counters, savepoint
isolation and which keys get retired. SQL behavior is covered by the
integration tests.
"""

from unittest.mock import MagicMock

import psycopg
import pytest

from spse_sync.core.models import RawItem, SyncState
from spse_sync.ingest import SourceClient, SourceUnavailableError
from spse_sync.sync import CycleInProgressError, SyncEngine, UnknownTableError, cycle_lock
from spse_sync.warehouse.upsert import SinkWriter


def record(kode_rup, nama_paket, **extra):
    return RawItem.classify({"kode_rup": kode_rup, "nama_paket": nama_paket, **extra})


@pytest.fixture
def connection():
    conn = MagicMock(name="connection")
    conn.cursor.return_value.__enter__.return_value = MagicMock(name="cursor")
    return conn


@pytest.fixture
def pool(connection):
    pool = MagicMock(name="pool")
    pool.transaction.return_value.__enter__.return_value = connection
    return pool


@pytest.fixture
def client():
    client = MagicMock(spec=SourceClient)
    client.fetch_endpoint.return_value = []
    return client


@pytest.fixture
def writer():
    writer = MagicMock(spec=SinkWriter)
    writer.live_keys.return_value = set()
    writer.retire.side_effect = lambda cur, mapping, keys: len(keys)
    return writer


@pytest.fixture
def engine(pool, client, registry, settings, writer):
    return SyncEngine(pool, client, registry, settings, writer=writer)


@pytest.mark.unit
class TestCycle:

    def test_items_stored_and_committed(self, engine, client, writer):
        client.fetch_endpoint.return_value = [
            record("12345678", "Renovasi Kantor"),
            record("12345679", "Pengadaan ATK"),
        ]

        result = engine.run_cycle("kontrak")

        assert result.success is True
        assert result.state == SyncState.COMMITTED
        assert result.records_found == 2
        assert result.records_stored == 2
        assert result.records_failed == 0
        assert result.records_retired == 0
        assert result.endpoint == "/dt/kontrak"
        assert writer.upsert.call_count == 2
        client.acquire_token.assert_called_once()
        client.fetch_endpoint.assert_called_once_with("/dt/kontrak", None)

    def test_form_params_forwarded(self, engine, client):
        engine.run_cycle("kontrak", {"activeSatker": "42"})

        client.fetch_endpoint.assert_called_once_with("/dt/kontrak", {"activeSatker": "42"})

    def test_one_timestamp_per_cycle(self, engine, client, writer):
        client.fetch_endpoint.return_value = [
            record("12345678", "A"),
            record("12345679", "B"),
        ]

        engine.run_cycle("kontrak")

        stamps = {c.args[3] for c in writer.upsert.call_args_list}
        assert len(stamps) == 1

    def test_items_without_code_are_failed(self, engine, client, writer):
        client.fetch_endpoint.return_value = [
            record("12345678", "Renovasi Kantor"),
            record("abc", "Bukan Kode"),
            RawItem.classify(42),
        ]

        result = engine.run_cycle("kontrak")

        assert result.success is True
        assert result.records_stored == 1
        assert result.records_failed == 2
        assert writer.upsert.call_count == 1

    def test_failed_upsert_skips_only_that_item(self, engine, client, writer, connection):
        client.fetch_endpoint.return_value = [
            record("12345678", "A"),
            record("12345679", "B"),
            record("12345680", "C"),
        ]
        writer.upsert.side_effect = [None, psycopg.DataError("value too long"), None]

        result = engine.run_cycle("kontrak")

        assert result.success is True
        assert result.records_stored == 2
        assert result.records_failed == 1
        # Each item ran inside its own savepoint
        assert connection.transaction.call_count == 3

    def test_empty_fetch_commits_and_retires_everything(self, engine, writer):
        writer.live_keys.return_value = {("12345678", "A"), ("12345679", "B")}

        result = engine.run_cycle("kontrak")

        assert result.success is True
        assert result.records_found == 0
        assert result.records_retired == 2


@pytest.mark.unit
class TestReconciliation:

    def test_only_missing_keys_retired(self, engine, client, writer):
        writer.live_keys.return_value = {("12345678", "A"), ("99999999", "Hilang")}
        client.fetch_endpoint.return_value = [record("12345678", "A"), record("12345679", "B")]

        result = engine.run_cycle("kontrak")

        retired_keys = writer.retire.call_args.args[2]
        assert retired_keys == {("99999999", "Hilang")}
        assert result.records_retired == 1

    def test_renamed_package_retires_old_name(self, engine, client, writer):
        writer.live_keys.return_value = {("12345678", "Nama Lama")}
        client.fetch_endpoint.return_value = [record("12345678", "Nama Baru")]

        engine.run_cycle("kontrak")

        assert writer.retire.call_args.args[2] == {("12345678", "Nama Lama")}

    def test_failed_upsert_key_not_retired(self, engine, client, writer):
        writer.live_keys.return_value = {("12345678", "A")}
        client.fetch_endpoint.return_value = [record("12345678", "A")]
        writer.upsert.side_effect = psycopg.DataError("bad row")

        result = engine.run_cycle("kontrak")

        writer.retire.assert_not_called()
        assert result.records_retired == 0
        assert result.records_failed == 1

    def test_nothing_to_retire_skips_statement(self, engine, client, writer):
        writer.live_keys.return_value = {("12345678", "A")}
        client.fetch_endpoint.return_value = [record("12345678", "A")]

        engine.run_cycle("kontrak")

        writer.retire.assert_not_called()

    def test_failed_retirement_keeps_cycle(self, engine, writer):
        writer.live_keys.return_value = {("12345678", "A")}
        writer.retire.side_effect = psycopg.OperationalError("lock timeout")

        result = engine.run_cycle("kontrak")

        assert result.success is True
        assert result.records_retired == 0


@pytest.mark.unit
class TestWorkUnits:

    def test_planning_table_feeds_work_units(self, engine, client, writer):
        client.fetch_endpoint.return_value = [
            record("12345678", "A", satuan_kerja="Dinas Pendidikan", kode_satuan_kerja="1234567"),
        ]

        engine.run_cycle("perencanaan")

        writer.upsert_work_unit.assert_called_once()

    def test_other_tables_do_not(self, engine, client, writer):
        client.fetch_endpoint.return_value = [record("12345678", "A")]

        engine.run_cycle("kontrak")

        writer.upsert_work_unit.assert_not_called()

    def test_work_unit_failure_keeps_record(self, engine, client, writer):
        client.fetch_endpoint.return_value = [record("12345678", "A", kode_satuan_kerja="1234567")]
        writer.upsert_work_unit.side_effect = psycopg.IntegrityError("duplicate")

        result = engine.run_cycle("perencanaan")

        assert result.records_stored == 1
        assert result.records_failed == 0


@pytest.mark.unit
class TestFatalConditions:

    def test_token_failure_aborts_before_transaction(self, engine, client, pool, writer):
        client.acquire_token.side_effect = SourceUnavailableError("down", attempts=3)

        result = engine.run_cycle("kontrak")

        assert result.success is False
        assert result.state == SyncState.ROLLED_BACK
        assert "Fetch failed" in result.message
        pool.transaction.assert_not_called()
        writer.retire.assert_not_called()

    def test_fetch_failure_retires_nothing(self, engine, client, pool, writer):
        writer.live_keys.return_value = {("12345678", "A")}
        client.fetch_endpoint.side_effect = SourceUnavailableError("HTTP 500", status_code=500)

        result = engine.run_cycle("kontrak")

        assert result.success is False
        assert result.records_retired == 0
        pool.transaction.assert_not_called()

    def test_transaction_failure_reports_nothing_stored(self, engine, client, pool):
        client.fetch_endpoint.return_value = [record("12345678", "A")]
        pool.transaction.return_value.__exit__.side_effect = psycopg.OperationalError("server closed the connection")

        result = engine.run_cycle("kontrak")

        assert result.success is False
        assert result.state == SyncState.ROLLED_BACK
        assert result.records_found == 1
        assert result.records_stored == 0
        assert result.records_failed == 0

    def test_unknown_table(self, engine):
        with pytest.raises(UnknownTableError):
            engine.run_cycle("lelang")

    def test_missing_endpoint(self, pool, client, registry, settings, writer):
        settings.endpoints.pop("kontrak")
        engine = SyncEngine(pool, client, registry, settings, writer=writer)

        result = engine.run_cycle("kontrak")

        assert result.success is False
        assert "SPSE_KONTRAK_ENDPOINT" in result.message
        client.fetch_endpoint.assert_not_called()

    def test_concurrent_cycle_rejected(self, engine, client):
        with cycle_lock("kontrak"):
            with pytest.raises(CycleInProgressError):
                engine.run_cycle("kontrak")

        client.fetch_endpoint.assert_not_called()

    def test_lock_released_after_failure(self, engine, client):
        client.acquire_token.side_effect = SourceUnavailableError("down")
        engine.run_cycle("kontrak")

        client.acquire_token.side_effect = None
        assert engine.run_cycle("kontrak").success is True


@pytest.mark.unit
class TestRunAll:

    def test_every_table_runs(self, engine, client, registry):
        summary = engine.run_all()

        assert summary.total_tables == 6
        assert summary.total_success == 6
        assert summary.success is True
        assert list(summary.results) == registry.table_names

    def test_one_failure_does_not_stop_others(self, engine, client):
        def fetch(endpoint, form_params=None):
            if endpoint == "/dt/pemilihan":
                raise SourceUnavailableError("HTTP 503", status_code=503)
            return []

        client.fetch_endpoint.side_effect = fetch

        summary = engine.run_all()

        assert summary.total_success == 5
        assert summary.success is False
        assert summary.results["pemilihan"].success is False
        assert summary.results["kontrak"].success is True

    def test_locked_table_reported_as_failed(self, engine):
        with cycle_lock("persiapan"):
            summary = engine.run_all()

        assert summary.results["persiapan"].success is False
        assert "already running" in summary.results["persiapan"].message
        assert summary.total_success == 5
