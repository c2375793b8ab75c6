"""
Detail-page enrichment models.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class EnrichmentRecord(BaseModel):
    """
    Best-effort extraction of one procurement detail page.

    `sirup_scraped` is the extraction outcome, not the existence of the row:
    a failed extraction is still stored so the key can be retried.
    """

    kode_rup: str
    nama_paket: str = ""
    nama_klpd: str | None = None
    satuan_kerja: str | None = None
    tahun_anggaran: str | None = None
    total_pagu: float | None = None
    lokasi_pekerjaan: list[str] = Field(default_factory=list)
    sumber_dana: list[str] = Field(default_factory=list)
    jenis_pengadaan: str | None = None
    metode_pemilihan: str | None = None
    pemanfaatan_mulai: date | None = None
    pemanfaatan_akhir: date | None = None
    jadwal_kontrak_mulai: date | None = None
    jadwal_kontrak_akhir: date | None = None
    jadwal_pemilihan_mulai: date | None = None
    jadwal_pemilihan_akhir: date | None = None
    tanggal_umumkan_paket: datetime | None = None
    sirup_scraped: bool = False
    active_year: str | None = None

    @classmethod
    def failed(cls, kode_rup: str, nama_paket: str = "", active_year: str | None = None) -> "EnrichmentRecord":
        """Minimal row marking an attempted but unsuccessful extraction."""
        return cls(kode_rup=kode_rup, nama_paket=nama_paket, sirup_scraped=False, active_year=active_year)

    class Config:
        json_schema_extra = {
            "example": {
                "kode_rup": "12345678",
                "nama_paket": "Renovasi Kantor",
                "nama_klpd": "Pemerintah Daerah Kabupaten Sumedang",
                "satuan_kerja": "Dinas Pendidikan",
                "tahun_anggaran": "2025",
                "total_pagu": 150000000.0,
                "lokasi_pekerjaan": ["Sumedang (Kab.)"],
                "sumber_dana": ["APBD"],
                "jadwal_pemilihan_mulai": "2025-02-01",
                "jadwal_pemilihan_akhir": "2025-03-31",
                "sirup_scraped": True,
                "active_year": "2025",
            }
        }


class EnrichmentResult(BaseModel):
    """Outcome of an enrichment pass over one or more keys."""

    success: bool = True
    message: str = ""
    records_found: int = Field(0, ge=0)
    records_stored: int = Field(0, ge=0)
    records_failed: int = Field(0, ge=0)
    endpoint: str = "sirup.inaproc.id"
