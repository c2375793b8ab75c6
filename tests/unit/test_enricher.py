"""
Unit tests for the enrichment pass

Client, writer and queries are mocks; the clock and sleep are fakes so
throttling can be asserted without waiting.
"""

from unittest.mock import MagicMock

import psycopg
import pytest

from spse_sync.enrichment import DetailEnricher
from spse_sync.ingest import SourceClient, SourceUnavailableError
from spse_sync.utils.validation import ValidationError
from spse_sync.warehouse.queries import SinkQueries
from spse_sync.warehouse.upsert import EnrichmentWriter


class FakeClock:
    """Monotonic clock that only moves when slept or advanced."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(detail_page_html):
    client = MagicMock(spec=SourceClient)
    client.fetch_page.return_value = detail_page_html
    return client


@pytest.fixture
def writer():
    return MagicMock(spec=EnrichmentWriter)


@pytest.fixture
def queries():
    queries = MagicMock(spec=SinkQueries)
    queries.primary_name.return_value = None
    queries.keys_pending_enrichment.return_value = []
    return queries


@pytest.fixture
def enricher(client, writer, queries, settings, clock):
    return DetailEnricher(client, writer, queries, settings, sleep=clock.sleep, clock=clock)


def stored_records(writer):
    return [c.args[0] for c in writer.upsert.call_args_list]


@pytest.mark.unit
class TestEnrichKey:

    def test_successful_extraction(self, enricher, client, writer):
        result = enricher.enrich_key("12345678")

        assert result.success is True
        assert result.records_found == 1
        assert result.records_stored == 1
        assert result.records_failed == 0
        client.fetch_page.assert_called_once_with("http://sirup.test/detail?idPaket=12345678")

        record = stored_records(writer)[0]
        assert record.sirup_scraped is True
        assert record.nama_paket == "Renovasi Kantor"
        assert record.active_year == "2025"

    def test_primary_name_is_the_key(self, enricher, writer, queries):
        queries.primary_name.return_value = "Renovasi Kantor Dinas"

        enricher.enrich_key("12345678")

        queries.primary_name.assert_called_once_with("12345678")
        assert stored_records(writer)[0].nama_paket == "Renovasi Kantor Dinas"

    def test_explicit_name_skips_lookup(self, enricher, writer, queries):
        enricher.enrich_key("12345678", nama_paket="Nama Dari Daftar")

        queries.primary_name.assert_not_called()
        assert stored_records(writer)[0].nama_paket == "Nama Dari Daftar"

    def test_fetch_failure_stored_as_failed(self, enricher, client, writer):
        client.fetch_page.side_effect = SourceUnavailableError("HTTP 503", status_code=503)

        result = enricher.enrich_key("12345678")

        assert result.success is False
        assert result.records_stored == 1
        assert result.records_failed == 1
        record = stored_records(writer)[0]
        assert record.sirup_scraped is False
        assert record.kode_rup == "12345678"
        assert record.nama_paket == ""

    def test_empty_extraction_stored_as_failed(self, enricher, client, writer):
        client.fetch_page.return_value = "<html><body>Paket tidak ditemukan</body></html>"

        result = enricher.enrich_key("12345678")

        assert result.success is False
        assert stored_records(writer)[0].sirup_scraped is False

    def test_store_error_reported(self, enricher, writer):
        writer.upsert.side_effect = psycopg.OperationalError("connection lost")

        result = enricher.enrich_key("12345678")

        assert result.success is False
        assert result.records_stored == 0
        assert result.records_failed == 1

    @pytest.mark.parametrize("kode_rup", ["abc", "", "12-34"])
    def test_invalid_code_rejected(self, enricher, client, kode_rup):
        with pytest.raises(ValidationError):
            enricher.enrich_key(kode_rup)

        client.fetch_page.assert_not_called()


@pytest.mark.unit
class TestEnrichPending:

    def test_nothing_pending(self, enricher, client):
        result = enricher.enrich_pending()

        assert result.success is True
        assert result.message == "No planning records pending enrichment"
        client.fetch_page.assert_not_called()

    def test_counts_and_message(self, enricher, client, queries, detail_page_html):
        queries.keys_pending_enrichment.return_value = [
            ("12345678", "A"),
            ("12345679", "B"),
            ("12345680", "C"),
        ]
        client.fetch_page.side_effect = [
            detail_page_html,
            SourceUnavailableError("HTTP 500", status_code=500),
            detail_page_html,
        ]

        result = enricher.enrich_pending()

        assert result.records_found == 3
        assert result.records_stored == 3
        assert result.records_failed == 1
        assert result.message == "Processed 3 records: 2 successful, 1 failed"

    def test_keys_keep_their_listed_names(self, enricher, writer, queries):
        queries.keys_pending_enrichment.return_value = [("12345678", "Nama Primer")]

        enricher.enrich_pending()

        assert stored_records(writer)[0].nama_paket == "Nama Primer"
        queries.primary_name.assert_not_called()

    def test_options_forwarded(self, enricher, queries):
        enricher.enrich_pending(include_failed=False, limit=10)

        queries.keys_pending_enrichment.assert_called_once_with(include_failed=False, limit=10)

    def test_one_store_error_does_not_stop_the_pass(self, enricher, writer, queries):
        queries.keys_pending_enrichment.return_value = [("12345678", "A"), ("12345679", "B")]
        writer.upsert.side_effect = [psycopg.OperationalError("deadlock"), None]

        result = enricher.enrich_pending()

        assert writer.upsert.call_count == 2
        assert result.records_stored == 1
        assert result.records_failed == 1


@pytest.mark.unit
class TestThrottle:

    def test_requests_spaced_by_min_interval(self, enricher, queries, clock):
        queries.keys_pending_enrichment.return_value = [
            ("12345678", "A"),
            ("12345679", "B"),
            ("12345680", "C"),
        ]

        enricher.enrich_pending()

        assert clock.sleeps == [1.0, 1.0]

    def test_no_wait_when_interval_already_passed(self, enricher, clock):
        enricher.enrich_key("12345678")
        clock.now += 5.0
        enricher.enrich_key("12345679")

        assert clock.sleeps == []

    def test_partial_wait(self, enricher, clock):
        enricher.enrich_key("12345678")
        clock.now += 0.25
        enricher.enrich_key("12345679")

        assert clock.sleeps == [0.75]
