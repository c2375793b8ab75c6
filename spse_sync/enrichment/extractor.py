"""
Best-effort extraction of procurement detail pages.

Detail pages are plain label/value tables with no ids or classes worth
relying on. A first pass walks label/value cell pairs and matches the label
against known headings; composite values (locations, funding sources,
start/end windows) live in nested tables inside the value cell. When no
heading matches at all, a keyword scan over every cell picks up what it can.

The package name is the success criterion: no name, no successful
extraction, whatever else was found.
"""

from datetime import date
from typing import Any

from bs4 import BeautifulSoup, Tag

from spse_sync.core.models import EnrichmentRecord
from spse_sync.observability.logger import get_logger

from .locale import parse_currency, parse_date, parse_datetime

logger = get_logger(__name__)

# Label prefix (lowercase) -> record attribute, checked in order
HEADINGS = [
    ("nama paket", "nama_paket"),
    ("nama klpd", "nama_klpd"),
    ("satuan kerja", "satuan_kerja"),
    ("tahun anggaran", "tahun_anggaran"),
    ("total pagu", "total_pagu"),
    ("lokasi pekerjaan", "lokasi_pekerjaan"),
    ("sumber dana", "sumber_dana"),
    ("jenis pengadaan", "jenis_pengadaan"),
    ("metode pemilihan", "metode_pemilihan"),
    ("pemanfaatan barang", "pemanfaatan"),
    ("jadwal pelaksanaan kontrak", "jadwal_kontrak"),
    ("jadwal pemilihan penyedia", "jadwal_pemilihan"),
    ("tanggal perbarui paket", "tanggal_umumkan_paket"),
    ("tanggal umumkan paket", "tanggal_umumkan_paket"),
]

WINDOWS = ("pemanfaatan", "jadwal_kontrak", "jadwal_pemilihan")

FUNDING_KEYWORDS = ("apbd", "apbn", "dana")
LOCATION_KEYWORDS = ("kabupaten", "kota", "provinsi", "(kab.)")

RANGE_SEPARATORS = (" s/d ", " s.d. ", " sampai ", " - ")


def cell_text(cell: Tag) -> str:
    return " ".join(cell.get_text(" ", strip=True).split())


def unique(values: list[str]) -> list[str]:
    """Drop empties and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(v.strip() for v in values if v and v.strip()))


def _is_index(text: str) -> bool:
    return text.rstrip(".").isdigit()


class DetailExtractor:
    """Turns one detail page into an EnrichmentRecord."""

    def extract(self, html: str, kode_rup: str, active_year: str | None = None) -> EnrichmentRecord:
        soup = BeautifulSoup(html or "", "lxml")

        fields = self._labeled_pass(soup)
        if not fields:
            logger.debug("No labeled cells found, scanning by keyword", extra={"kode_rup": kode_rup})
            fields = self._keyword_pass(soup)

        fields["lokasi_pekerjaan"] = unique(fields.get("lokasi_pekerjaan", []))
        fields["sumber_dana"] = unique(fields.get("sumber_dana", []))

        nama_paket = fields.pop("nama_paket", "") or ""
        record = EnrichmentRecord(
            kode_rup=kode_rup,
            nama_paket=nama_paket,
            sirup_scraped=bool(nama_paket),
            active_year=active_year,
            **fields,
        )

        if not record.sirup_scraped:
            logger.warning("Detail page yielded no package name", extra={"kode_rup": kode_rup})
        return record

    def _labeled_pass(self, soup: BeautifulSoup) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        # Value cells already read; rows nested inside them are part of the value
        consumed: set[int] = set()

        for row in soup.find_all("tr"):
            if any(id(cell) in consumed for cell in row.find_parents("td")):
                continue
            cells = row.find_all("td", recursive=False)
            if len(cells) < 2:
                continue

            label = cell_text(cells[0]).rstrip(":").strip().lower()
            target = next((attr for prefix, attr in HEADINGS if label.startswith(prefix)), None)
            if target is None:
                continue

            value_cell = cells[1]
            consumed.add(id(value_cell))
            if target in WINDOWS:
                start, end = self._window(value_cell)
                fields.setdefault(f"{target}_mulai", start)
                fields.setdefault(f"{target}_akhir", end)
            elif target == "lokasi_pekerjaan":
                fields.setdefault("lokasi_pekerjaan", []).extend(self._locations(value_cell))
            elif target == "sumber_dana":
                fields.setdefault("sumber_dana", []).extend(self._funding(value_cell))
            elif target == "total_pagu":
                fields.setdefault("total_pagu", parse_currency(cell_text(value_cell)))
            elif target == "tanggal_umumkan_paket":
                fields.setdefault("tanggal_umumkan_paket", parse_datetime(cell_text(value_cell)))
            else:
                text = cell_text(value_cell)
                if text:
                    fields.setdefault(target, text)

        return fields

    def _keyword_pass(self, soup: BeautifulSoup) -> dict[str, Any]:
        funding: list[str] = []
        locations: list[str] = []
        dates: list[date] = []

        for cell in soup.find_all("td"):
            if cell.find("table") is not None:
                continue
            text = cell_text(cell)
            if not text:
                continue
            lowered = text.lower()

            if any(k in lowered for k in FUNDING_KEYWORDS) and len(text) > 3:
                funding.append(text)
            elif any(k in lowered for k in LOCATION_KEYWORDS):
                locations.append(text)
            else:
                parsed = parse_date(text)
                if parsed is not None and parsed not in dates:
                    dates.append(parsed)

        fields: dict[str, Any] = {"sumber_dana": funding, "lokasi_pekerjaan": locations}
        if dates:
            fields["jadwal_pemilihan_mulai"] = dates[0]
            fields["jadwal_pemilihan_akhir"] = dates[1] if len(dates) > 1 else None
        return fields

    @staticmethod
    def _data_rows(value_cell: Tag) -> list[list[str]]:
        """Text of the nested table's data rows (header rows skipped)."""
        nested = value_cell.find("table")
        if nested is None:
            return []
        rows = []
        for row in nested.find_all("tr"):
            cells = row.find_all("td")
            if cells:
                rows.append([cell_text(c) for c in cells])
        return rows

    def _window(self, value_cell: Tag) -> tuple[date | None, date | None]:
        for row in self._data_rows(value_cell):
            parsed = [parse_date(v) for v in row if v and not _is_index(v)]
            if any(parsed):
                return parsed[0], parsed[1] if len(parsed) > 1 else None

        text = cell_text(value_cell)
        for separator in RANGE_SEPARATORS:
            if separator in text:
                first, _, second = text.partition(separator)
                return parse_date(first), parse_date(second)
        return parse_date(text), None

    def _locations(self, value_cell: Tag) -> list[str]:
        rows = self._data_rows(value_cell)
        if not rows:
            text = cell_text(value_cell)
            return [text] if text else []
        return [", ".join(v for v in row if v and not _is_index(v)) for row in rows]

    def _funding(self, value_cell: Tag) -> list[str]:
        rows = self._data_rows(value_cell)
        if not rows:
            text = cell_text(value_cell)
            return [text] if text else []

        sources = []
        for row in rows:
            named = [v for v in row if v and not _is_index(v)]
            if named:
                sources.append(named[0])
        return sources
