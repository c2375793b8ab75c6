"""
Read-only accessors over the sink and enrichment tables.

Every accessor hides retired rows (deleted_at IS NULL).
"""

from typing import Any

from psycopg import sql

from spse_sync.core.schema import FieldSchemaRegistry
from spse_sync.utils.validation import (
    ValidationError,
    validate_kode_rup,
    validate_limit,
    validate_offset,
)

from .connection import DatabaseConnectionPool
from .schema_mgmt import ENRICHMENT_TABLE


class SinkQueries:
    """
    Counts and listings for the dashboard and the admin CLI.

    Args:
        pool: Database connection pool
        registry: Field schema registry naming the sink tables
    """

    def __init__(self, pool: DatabaseConnectionPool, registry: FieldSchemaRegistry):
        self.pool = pool
        self.registry = registry

    def statistics(self) -> dict[str, int]:
        """
        Live row count per sink table, plus the enrichment table and a total.

        Returns:
            {"perencanaan": 120, ..., "perencanaansirup": 80, "total": 640}
        """
        counts: dict[str, int] = {}
        for mapping in self.registry:
            counts[mapping.table_name] = self._count(mapping.sink_table)

        counts["perencanaansirup"] = self._count(ENRICHMENT_TABLE)
        counts["total"] = sum(counts.values())
        return counts

    def list_records(self, table_name: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        """
        Live rows of one sink table, newest first.

        Raises:
            ValidationError: If the table is unknown or paging is invalid
        """
        mapping = self.registry.get(table_name)
        if mapping is None:
            raise ValidationError(f"Unknown table: {table_name}")

        query = sql.SQL("""
            SELECT * FROM {table}
            WHERE deleted_at IS NULL
            ORDER BY created_at DESC, id DESC
            LIMIT %s OFFSET %s
        """).format(table=sql.Identifier(mapping.sink_table))

        return self.pool.execute_query(query, (validate_limit(limit), validate_offset(offset)))

    def get_enrichment(self, kode_rup: str) -> list[dict[str, Any]]:
        """Live enrichment rows for one procurement code."""
        return self.pool.execute_query(
            f"""
            SELECT * FROM {ENRICHMENT_TABLE}
            WHERE kode_rup = %s AND deleted_at IS NULL
            ORDER BY last_update DESC
            """,
            (validate_kode_rup(kode_rup),),
        )

    def enrichment_comparison(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        """
        Live planning rows side by side with their enrichment, if any.

        Each row carries has_enrichment and the enrichment's sirup_scraped flag.
        """
        mapping = self.registry.get("perencanaan")
        if mapping is None:
            raise ValidationError("No 'perencanaan' mapping registered")

        query = sql.SQL("""
            SELECT
                p.kode_rup,
                p.nama_paket,
                p.satuan_kerja,
                p.pagu_rup,
                s.nama_klpd,
                s.total_pagu,
                s.sumber_dana AS sumber_dana_sirup,
                s.lokasi_pekerjaan,
                s.sirup_scraped,
                (s.id IS NOT NULL) AS has_enrichment
            FROM {table} p
            LEFT JOIN {enrichment} s
                ON s.kode_rup = p.kode_rup
               AND s.nama_paket = p.nama_paket
               AND s.deleted_at IS NULL
            WHERE p.deleted_at IS NULL
            ORDER BY p.created_at DESC, p.id DESC
            LIMIT %s OFFSET %s
        """).format(
            table=sql.Identifier(mapping.sink_table),
            enrichment=sql.Identifier(ENRICHMENT_TABLE),
        )
        return self.pool.execute_query(query, (validate_limit(limit), validate_offset(offset)))

    def keys_pending_enrichment(self, include_failed: bool = True, limit: int | None = None) -> list[tuple[str, str]]:
        """
        Live planning keys without a successful enrichment.

        Args:
            include_failed: Also return keys whose last extraction failed
            limit: Cap on the number of keys returned
        """
        mapping = self.registry.get("perencanaan")
        if mapping is None:
            raise ValidationError("No 'perencanaan' mapping registered")

        condition = "s.id IS NULL OR s.sirup_scraped = FALSE" if include_failed else "s.id IS NULL"
        query = sql.SQL("""
            SELECT p.kode_rup, p.nama_paket
            FROM {table} p
            LEFT JOIN {enrichment} s
                ON s.kode_rup = p.kode_rup
               AND s.nama_paket = p.nama_paket
            WHERE p.deleted_at IS NULL AND ({condition})
            ORDER BY p.kode_rup, p.nama_paket
        """).format(
            table=sql.Identifier(mapping.sink_table),
            enrichment=sql.Identifier(ENRICHMENT_TABLE),
            condition=sql.SQL(condition),
        )

        params: tuple = ()
        if limit is not None:
            query = query + sql.SQL(" LIMIT %s")
            params = (validate_limit(limit),)

        rows = self.pool.execute_query(query, params or None)
        return [(row["kode_rup"], row["nama_paket"]) for row in rows]

    def primary_name(self, kode_rup: str) -> str | None:
        """Package name of the live planning row for a code, if any."""
        mapping = self.registry.get("perencanaan")
        if mapping is None:
            return None

        rows = self.pool.execute_query(
            sql.SQL("""
                SELECT nama_paket FROM {table}
                WHERE kode_rup = %s AND deleted_at IS NULL
                ORDER BY last_update DESC
                LIMIT 1
            """).format(table=sql.Identifier(mapping.sink_table)),
            (kode_rup,),
        )
        return rows[0]["nama_paket"] if rows else None

    def _count(self, table: str) -> int:
        rows = self.pool.execute_query(
            sql.SQL("SELECT COUNT(*) AS n FROM {} WHERE deleted_at IS NULL").format(sql.Identifier(table))
        )
        return int(rows[0]["n"])
