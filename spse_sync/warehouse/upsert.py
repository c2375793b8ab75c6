"""
Idempotent writes to the sink tables.

Every write is INSERT ... ON CONFLICT (kode_rup, nama_paket) DO UPDATE, so
re-running a cycle updates rows in place and a returning key clears its
soft-delete marker instead of creating a duplicate. Rows are never removed;
retirement only stamps deleted_at.
"""

import time

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from spse_sync.core.models import EnrichmentRecord, OrderedDataset
from spse_sync.core.schema import FieldMapping

from .connection import DatabaseConnectionPool
from .schema_mgmt import ENRICHMENT_TABLE, WORK_UNIT_TABLE

NaturalKey = tuple[str, str]


def now_epoch() -> int:
    return int(time.time())


def build_upsert(mapping: FieldMapping) -> sql.Composed:
    """
    Upsert statement for one sink table, with named placeholders per field
    plus active_year and last_update.
    """
    columns = mapping.field_order + ["active_year"]
    updated = [c for c in columns if c not in ("kode_rup", "nama_paket")]

    return sql.SQL("""
        INSERT INTO {table} ({columns}, created_at, last_update, deleted_at)
        VALUES ({values}, NOW(), %(last_update)s, NULL)
        ON CONFLICT (kode_rup, nama_paket) DO UPDATE SET
            {assignments},
            last_update = EXCLUDED.last_update,
            deleted_at = NULL
    """).format(
        table=sql.Identifier(mapping.sink_table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
        assignments=sql.SQL(",\n            ").join(
            sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in updated
        ),
    )


class SinkWriter:
    """
    Reads live keys from and writes rows to one family of sink tables.

    Statement-level methods take an open cursor so the caller controls the
    transaction; live_keys() runs on its own pooled connection.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool
        self._statements: dict[str, sql.Composed] = {}

    def live_keys(self, mapping: FieldMapping) -> set[NaturalKey]:
        """Natural keys of every row not yet retired."""
        query = sql.SQL(
            "SELECT kode_rup, nama_paket FROM {} WHERE deleted_at IS NULL"
        ).format(sql.Identifier(mapping.sink_table))
        rows = self.pool.execute_query(query)
        return {(row["kode_rup"], row["nama_paket"]) for row in rows}

    def upsert(self, cur: psycopg.Cursor, mapping: FieldMapping, dataset: OrderedDataset, last_update: int) -> None:
        """Insert or refresh one row and clear its soft-delete marker."""
        statement = self._statements.get(mapping.table_name)
        if statement is None:
            statement = self._statements[mapping.table_name] = build_upsert(mapping)

        params = {name: dataset.field_values.get(name, spec_default)
                  for name, spec_default in mapping.defaults.items()}
        params["active_year"] = dataset.active_year
        params["last_update"] = last_update
        cur.execute(statement, params)

    def upsert_work_unit(self, cur: psycopg.Cursor, dataset: OrderedDataset, last_update: int) -> bool:
        """
        Record the work unit a row belongs to.

        Returns:
            False when the row names no work unit
        """
        code = str(dataset.field_values.get("kode_satuan_kerja") or "")
        if not code:
            return False

        cur.execute(
            f"""
            INSERT INTO {WORK_UNIT_TABLE} (kode_satuan_kerja, satuan_kerja, active_year, created_at, last_update)
            VALUES (%s, %s, %s, NOW(), %s)
            ON CONFLICT (kode_satuan_kerja) DO UPDATE SET
                satuan_kerja = EXCLUDED.satuan_kerja,
                active_year = EXCLUDED.active_year,
                last_update = EXCLUDED.last_update
            """,
            (code, dataset.field_values.get("satuan_kerja", ""), dataset.active_year, last_update),
        )
        return True

    def retire(self, cur: psycopg.Cursor, mapping: FieldMapping, keys: set[NaturalKey]) -> int:
        """
        Soft-delete the given live rows in one statement.

        Returns:
            Number of rows retired
        """
        if not keys:
            return 0

        ordered = sorted(keys)
        cur.execute(
            sql.SQL("""
                UPDATE {table} AS t SET deleted_at = NOW()
                FROM unnest(%s::text[], %s::text[]) AS gone(kode_rup, nama_paket)
                WHERE t.kode_rup = gone.kode_rup
                  AND t.nama_paket = gone.nama_paket
                  AND t.deleted_at IS NULL
            """).format(table=sql.Identifier(mapping.sink_table)),
            ([k[0] for k in ordered], [k[1] for k in ordered]),
        )
        return cur.rowcount


ENRICHMENT_INSERT = f"""
    INSERT INTO {ENRICHMENT_TABLE} (
        kode_rup, nama_paket, nama_klpd, satuan_kerja, tahun_anggaran, total_pagu,
        lokasi_pekerjaan, sumber_dana, jenis_pengadaan, metode_pemilihan,
        pemanfaatan_mulai, pemanfaatan_akhir, jadwal_kontrak_mulai, jadwal_kontrak_akhir,
        jadwal_pemilihan_mulai, jadwal_pemilihan_akhir, tanggal_umumkan_paket,
        sirup_scraped, active_year, created_at, last_update, deleted_at
    )
    VALUES (
        %(kode_rup)s, %(nama_paket)s, %(nama_klpd)s, %(satuan_kerja)s, %(tahun_anggaran)s,
        %(total_pagu)s, %(lokasi_pekerjaan)s, %(sumber_dana)s, %(jenis_pengadaan)s,
        %(metode_pemilihan)s, %(pemanfaatan_mulai)s, %(pemanfaatan_akhir)s,
        %(jadwal_kontrak_mulai)s, %(jadwal_kontrak_akhir)s, %(jadwal_pemilihan_mulai)s,
        %(jadwal_pemilihan_akhir)s, %(tanggal_umumkan_paket)s, %(sirup_scraped)s,
        %(active_year)s, NOW(), %(last_update)s, NULL
    )
"""

ENRICHMENT_REPLACE = """
    ON CONFLICT (kode_rup, nama_paket) DO UPDATE SET
        nama_klpd = EXCLUDED.nama_klpd,
        satuan_kerja = EXCLUDED.satuan_kerja,
        tahun_anggaran = EXCLUDED.tahun_anggaran,
        total_pagu = EXCLUDED.total_pagu,
        lokasi_pekerjaan = EXCLUDED.lokasi_pekerjaan,
        sumber_dana = EXCLUDED.sumber_dana,
        jenis_pengadaan = EXCLUDED.jenis_pengadaan,
        metode_pemilihan = EXCLUDED.metode_pemilihan,
        pemanfaatan_mulai = EXCLUDED.pemanfaatan_mulai,
        pemanfaatan_akhir = EXCLUDED.pemanfaatan_akhir,
        jadwal_kontrak_mulai = EXCLUDED.jadwal_kontrak_mulai,
        jadwal_kontrak_akhir = EXCLUDED.jadwal_kontrak_akhir,
        jadwal_pemilihan_mulai = EXCLUDED.jadwal_pemilihan_mulai,
        jadwal_pemilihan_akhir = EXCLUDED.jadwal_pemilihan_akhir,
        tanggal_umumkan_paket = EXCLUDED.tanggal_umumkan_paket,
        sirup_scraped = EXCLUDED.sirup_scraped,
        active_year = EXCLUDED.active_year,
        last_update = EXCLUDED.last_update,
        deleted_at = NULL
"""

# A failed attempt keeps whatever an earlier attempt extracted, and does not
# bring back a retired marker
ENRICHMENT_TOUCH = """
    ON CONFLICT (kode_rup, nama_paket) DO UPDATE SET
        last_update = EXCLUDED.last_update
"""

# Failed attempts for codes the planning table did not know are keyed by an
# empty name; a named success for the same code supersedes them
RETIRE_UNNAMED_MARKER = f"""
    UPDATE {ENRICHMENT_TABLE} SET deleted_at = NOW()
    WHERE kode_rup = %s
      AND nama_paket = ''
      AND sirup_scraped = FALSE
      AND deleted_at IS NULL
"""


class EnrichmentWriter:
    """
    Upserts detail-page extractions into the enrichment table.

    A successful extraction replaces the stored row and retires any unnamed
    failure marker for the same code; a failed one only creates the row if
    missing and refreshes last_update otherwise.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def upsert(self, record: EnrichmentRecord) -> None:
        conflict = ENRICHMENT_REPLACE if record.sirup_scraped else ENRICHMENT_TOUCH

        params = record.model_dump()
        params["lokasi_pekerjaan"] = Jsonb(record.lokasi_pekerjaan)
        params["sumber_dana"] = Jsonb(record.sumber_dana)
        params["last_update"] = now_epoch()

        with self.pool.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(ENRICHMENT_INSERT + conflict, params)
                if record.sirup_scraped and record.nama_paket:
                    cur.execute(RETIRE_UNNAMED_MARKER, (record.kode_rup,))
