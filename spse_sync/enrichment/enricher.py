"""
Detail-page enrichment pass.

Runs apart from the sync cycles, one key at a time, throttled so the detail
host sees at most one request per detail_min_interval seconds. Every attempt
leaves a row behind: a failed fetch or an empty extraction is stored with
sirup_scraped = FALSE so the key shows up as attempted and can be retried.
"""

import time
from typing import Callable

import psycopg

from spse_sync.config import Settings
from spse_sync.core.models import EnrichmentRecord, EnrichmentResult
from spse_sync.ingest import SourceClient, SourceError
from spse_sync.observability import metrics
from spse_sync.observability.logger import get_logger, log_operation
from spse_sync.utils.validation import validate_kode_rup
from spse_sync.warehouse.queries import SinkQueries
from spse_sync.warehouse.upsert import EnrichmentWriter

from .extractor import DetailExtractor

logger = get_logger(__name__)

PROGRESS_EVERY = 100


class DetailEnricher:
    """
    Fetches, extracts and stores detail pages for planning keys.

    Args:
        client: Portal client used for the detail GETs
        writer: Enrichment table writer
        queries: Sink read accessors (pending keys, primary package names)
        settings: Detail URL template, throttle interval, active year
        extractor: HTML extractor
        sleep: Function used for throttling
        clock: Monotonic clock used for throttling
    """

    def __init__(
        self,
        client: SourceClient,
        writer: EnrichmentWriter,
        queries: SinkQueries,
        settings: Settings,
        extractor: DetailExtractor | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.writer = writer
        self.queries = queries
        self.settings = settings
        self.extractor = extractor or DetailExtractor()
        self._sleep = sleep
        self._clock = clock
        self._last_request: float | None = None

    def enrich_key(self, kode_rup: str, nama_paket: str | None = None) -> EnrichmentResult:
        """
        Enrich one procurement code.

        Args:
            kode_rup: Procurement code
            nama_paket: Package name of the primary row; looked up when omitted

        Raises:
            ValidationError: If kode_rup is not a valid code
        """
        kode_rup = validate_kode_rup(kode_rup)
        if nama_paket is None:
            nama_paket = self.queries.primary_name(kode_rup)

        with log_operation("Detail enrichment", logger=logger, kode_rup=kode_rup):
            scraped, stored = self._process(kode_rup, nama_paket)

        return EnrichmentResult(
            success=scraped and stored,
            message="Detail extracted and stored" if scraped else "No package details extracted (stored as failed)",
            records_found=1,
            records_stored=int(stored),
            records_failed=int(not (scraped and stored)),
        )

    def enrich_pending(self, include_failed: bool = True, limit: int | None = None) -> EnrichmentResult:
        """
        Enrich every live planning key without a successful extraction.

        Args:
            include_failed: Retry keys whose last extraction failed
            limit: Cap on the number of keys attempted
        """
        keys = self.queries.keys_pending_enrichment(include_failed=include_failed, limit=limit)
        total = len(keys)
        if total == 0:
            return EnrichmentResult(message="No planning records pending enrichment")

        processed = stored = failed = 0
        with log_operation("Detail enrichment pass", logger=logger, total_keys=total):
            for kode_rup, nama_paket in keys:
                scraped, written = self._process(kode_rup, nama_paket)
                processed += 1
                stored += int(written)
                if not (scraped and written):
                    failed += 1

                if processed == 1 or processed % PROGRESS_EVERY == 0:
                    logger.info(
                        "Enrichment progress",
                        extra={"processed": processed, "total_keys": total, "failed": failed},
                    )

        return EnrichmentResult(
            message=f"Processed {processed} records: {processed - failed} successful, {failed} failed",
            records_found=processed,
            records_stored=stored,
            records_failed=failed,
        )

    def _process(self, kode_rup: str, nama_paket: str | None) -> tuple[bool, bool]:
        record = self._attempt(kode_rup)

        # The primary row's name is the key; the extracted one only fills in
        # for codes the planning table does not know.
        if nama_paket:
            record.nama_paket = nama_paket

        try:
            self.writer.upsert(record)
        except psycopg.Error as e:
            metrics.enrichment_total.labels(outcome="store_error").inc()
            logger.error("Failed to store enrichment", extra={"kode_rup": kode_rup, "error": str(e)})
            return record.sirup_scraped, False

        metrics.enrichment_total.labels(outcome="extracted" if record.sirup_scraped else "failed").inc()
        return record.sirup_scraped, True

    def _attempt(self, kode_rup: str) -> EnrichmentRecord:
        url = self.settings.detail_url.format(kode_rup=kode_rup)
        self._throttle()
        try:
            page = self.client.fetch_page(url)
        except SourceError as e:
            logger.warning("Detail page fetch failed", extra={"kode_rup": kode_rup, "url": url, "error": str(e)})
            return EnrichmentRecord.failed(kode_rup, active_year=self.settings.active_year)

        return self.extractor.extract(page, kode_rup, active_year=self.settings.active_year)

    def _throttle(self) -> None:
        now = self._clock()
        if self._last_request is not None:
            wait = self.settings.detail_min_interval - (now - self._last_request)
            if wait > 0:
                self._sleep(wait)
                now = self._clock()
        self._last_request = now
