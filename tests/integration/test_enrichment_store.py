"""
Integration tests for the enrichment table writer.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from spse_sync.core.models import EnrichmentRecord
from spse_sync.warehouse.upsert import EnrichmentWriter


def enrichment_rows(pool):
    return pool.execute_query("SELECT * FROM spse_perencanaansirup ORDER BY kode_rup, nama_paket")


def extracted(kode_rup="12345678", nama_paket="Renovasi Kantor", **overrides):
    values = dict(
        kode_rup=kode_rup,
        nama_paket=nama_paket,
        nama_klpd="Pemerintah Daerah Kabupaten Sumedang",
        satuan_kerja="Dinas Pendidikan",
        tahun_anggaran="2025",
        total_pagu=175000000.0,
        lokasi_pekerjaan=["Jawa Barat, Sumedang (Kab.)"],
        sumber_dana=["APBD"],
        jadwal_pemilihan_mulai=date(2025, 2, 1),
        jadwal_pemilihan_akhir=date(2025, 3, 1),
        tanggal_umumkan_paket=datetime(2025, 1, 15, 9, 30),
        sirup_scraped=True,
        active_year="2025",
    )
    values.update(overrides)
    return EnrichmentRecord(**values)


@pytest.fixture
def writer(clean_db):
    return EnrichmentWriter(clean_db)


@pytest.mark.integration
def test_successful_extraction_stored(writer, clean_db):
    writer.upsert(extracted())

    [row] = enrichment_rows(clean_db)
    assert row["sirup_scraped"] is True
    assert row["total_pagu"] == Decimal("175000000.00")
    assert row["lokasi_pekerjaan"] == ["Jawa Barat, Sumedang (Kab.)"]
    assert row["sumber_dana"] == ["APBD"]
    assert row["jadwal_pemilihan_mulai"] == date(2025, 2, 1)
    assert row["tanggal_umumkan_paket"] == datetime(2025, 1, 15, 9, 30)
    assert row["deleted_at"] is None


@pytest.mark.integration
def test_failed_attempt_stored_as_marker(writer, clean_db):
    writer.upsert(EnrichmentRecord.failed("12345678", nama_paket="Renovasi Kantor"))

    [row] = enrichment_rows(clean_db)
    assert row["sirup_scraped"] is False
    assert row["lokasi_pekerjaan"] == []
    assert row["total_pagu"] is None


@pytest.mark.integration
def test_failed_attempt_never_overwrites_success(writer, clean_db):
    writer.upsert(extracted())
    writer.upsert(EnrichmentRecord.failed("12345678", nama_paket="Renovasi Kantor"))

    [row] = enrichment_rows(clean_db)
    assert row["sirup_scraped"] is True
    assert row["nama_klpd"] == "Pemerintah Daerah Kabupaten Sumedang"
    assert row["sumber_dana"] == ["APBD"]


@pytest.mark.integration
def test_success_replaces_earlier_failure(writer, clean_db):
    writer.upsert(EnrichmentRecord.failed("12345678", nama_paket="Renovasi Kantor"))
    writer.upsert(extracted())

    [row] = enrichment_rows(clean_db)
    assert row["sirup_scraped"] is True
    assert row["total_pagu"] == Decimal("175000000.00")


@pytest.mark.integration
def test_newer_extraction_replaces_older(writer, clean_db):
    writer.upsert(extracted(total_pagu=100.0, sumber_dana=["APBN"]))
    writer.upsert(extracted(total_pagu=200.0, sumber_dana=["APBD"]))

    [row] = enrichment_rows(clean_db)
    assert row["total_pagu"] == Decimal("200.00")
    assert row["sumber_dana"] == ["APBD"]


@pytest.mark.integration
def test_one_row_per_key(writer, clean_db):
    writer.upsert(extracted(nama_paket="Tahap 1"))
    writer.upsert(extracted(nama_paket="Tahap 2"))
    writer.upsert(extracted(nama_paket="Tahap 1"))

    assert [r["nama_paket"] for r in enrichment_rows(clean_db)] == ["Tahap 1", "Tahap 2"]


def live_names(pool, kode_rup):
    rows = pool.execute_query(
        "SELECT nama_paket FROM spse_perencanaansirup WHERE kode_rup = %s AND deleted_at IS NULL ORDER BY nama_paket",
        (kode_rup,),
    )
    return [r["nama_paket"] for r in rows]


@pytest.mark.integration
def test_named_success_retires_unnamed_failure(writer, clean_db):
    """A code unknown to the planning table first fails under an empty name"""
    writer.upsert(EnrichmentRecord.failed("12345678"))
    assert live_names(clean_db, "12345678") == [""]

    writer.upsert(extracted())

    assert live_names(clean_db, "12345678") == ["Renovasi Kantor"]

    # Another failed attempt does not bring the marker back
    writer.upsert(EnrichmentRecord.failed("12345678"))

    assert live_names(clean_db, "12345678") == ["Renovasi Kantor"]


@pytest.mark.integration
def test_named_failure_marker_kept(writer, clean_db):
    writer.upsert(EnrichmentRecord.failed("12345678", nama_paket="Tahap 1"))
    writer.upsert(extracted(nama_paket="Tahap 2"))

    assert live_names(clean_db, "12345678") == ["Tahap 1", "Tahap 2"]
