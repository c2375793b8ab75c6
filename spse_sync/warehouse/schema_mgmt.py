"""
DDL for the sink, work-unit and enrichment tables.

Sink tables are generated from the field schema registry: one TEXT column
per mapped field plus the bookkeeping columns every sink carries. Running
ensure_all() is idempotent and adds columns for fields new to a mapping.
"""

from psycopg import sql

from spse_sync.core.schema import FieldMapping, FieldSchemaRegistry
from spse_sync.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

WORK_UNIT_TABLE = "spse_satuan_kerja"
ENRICHMENT_TABLE = "spse_perencanaansirup"

WORK_UNIT_DDL = f"""
    CREATE TABLE IF NOT EXISTS {WORK_UNIT_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        kode_satuan_kerja TEXT NOT NULL UNIQUE,
        satuan_kerja TEXT NOT NULL DEFAULT '',
        active_year TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        last_update BIGINT NOT NULL
    )
"""

ENRICHMENT_DDL = [
    f"""
    CREATE TABLE IF NOT EXISTS {ENRICHMENT_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        kode_rup TEXT NOT NULL,
        nama_paket TEXT NOT NULL DEFAULT '',
        nama_klpd TEXT,
        satuan_kerja TEXT,
        tahun_anggaran TEXT,
        total_pagu NUMERIC(20, 2),
        lokasi_pekerjaan JSONB NOT NULL DEFAULT '[]'::jsonb,
        sumber_dana JSONB NOT NULL DEFAULT '[]'::jsonb,
        jenis_pengadaan TEXT,
        metode_pemilihan TEXT,
        pemanfaatan_mulai DATE,
        pemanfaatan_akhir DATE,
        jadwal_kontrak_mulai DATE,
        jadwal_kontrak_akhir DATE,
        jadwal_pemilihan_mulai DATE,
        jadwal_pemilihan_akhir DATE,
        tanggal_umumkan_paket TIMESTAMP,
        sirup_scraped BOOLEAN NOT NULL DEFAULT FALSE,
        active_year TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        last_update BIGINT NOT NULL,
        deleted_at TIMESTAMPTZ
    )
    """,
    f"CREATE UNIQUE INDEX IF NOT EXISTS unique_sirup_kode_nama ON {ENRICHMENT_TABLE} (kode_rup, nama_paket)",
    f"CREATE INDEX IF NOT EXISTS idx_sirup_kode_rup ON {ENRICHMENT_TABLE} (kode_rup)",
    f"CREATE INDEX IF NOT EXISTS idx_sirup_deleted_at ON {ENRICHMENT_TABLE} (deleted_at)",
]


def sink_table_ddl(mapping: FieldMapping) -> list[sql.Composable]:
    """
    Statements creating (or widening) one sink table.

    The natural key (kode_rup, nama_paket) carries a plain unique index, not
    a partial one, so a returning key updates its retired row.
    """
    table = sql.Identifier(mapping.sink_table)
    columns = sql.SQL(",\n").join(
        sql.SQL("{} TEXT NOT NULL DEFAULT {}").format(sql.Identifier(f.name), sql.Literal(f.default))
        for f in mapping.fields
    )

    statements: list[sql.Composable] = [
        sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                {columns},
                active_year TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                last_update BIGINT NOT NULL,
                deleted_at TIMESTAMPTZ
            )
        """).format(table=table, columns=columns)
    ]

    for f in mapping.fields:
        statements.append(
            sql.SQL("ALTER TABLE {} ADD COLUMN IF NOT EXISTS {} TEXT NOT NULL DEFAULT {}").format(
                table, sql.Identifier(f.name), sql.Literal(f.default)
            )
        )

    statements.append(
        sql.SQL("CREATE UNIQUE INDEX IF NOT EXISTS {} ON {} (kode_rup, nama_paket)").format(
            sql.Identifier(f"unique_{mapping.sink_table}_kode_nama"), table
        )
    )
    statements.append(
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (deleted_at)").format(
            sql.Identifier(f"idx_{mapping.sink_table}_deleted_at"), table
        )
    )
    return statements


class SchemaManager:
    """
    Creates the tables the sync engine and enricher write to.

    Args:
        pool: Database connection pool
        registry: Field schema registry describing the sink tables
    """

    def __init__(self, pool: DatabaseConnectionPool, registry: FieldSchemaRegistry):
        self.pool = pool
        self.registry = registry

    def ensure_all(self) -> list[str]:
        """
        Create every sink table, the work-unit table and the enrichment table.

        Returns:
            Names of the tables ensured
        """
        ensured = []
        with self.pool.transaction() as conn:
            with conn.cursor() as cur:
                for mapping in self.registry:
                    for statement in sink_table_ddl(mapping):
                        cur.execute(statement)
                    ensured.append(mapping.sink_table)

                cur.execute(WORK_UNIT_DDL)
                ensured.append(WORK_UNIT_TABLE)

                for statement in ENRICHMENT_DDL:
                    cur.execute(statement)
                ensured.append(ENRICHMENT_TABLE)

        logger.info("Sink schema ensured", extra={"tables": ensured})
        return ensured

    def truncate_all(self) -> None:
        """Empty every managed table. Intended for tests and local resets."""
        tables = [m.sink_table for m in self.registry] + [WORK_UNIT_TABLE, ENRICHMENT_TABLE]
        statement = sql.SQL("TRUNCATE TABLE {} RESTART IDENTITY").format(
            sql.SQL(", ").join(sql.Identifier(t) for t in tables)
        )
        self.pool.execute_command(statement)
