"""
Command-line interface for sync cycles and detail enrichment.

Usage:
    python -m spse_sync.cli.sync_cli sync --table <table> [options]
    python -m spse_sync.cli.sync_cli sync-all [options]
    python -m spse_sync.cli.sync_cli enrich --kode-rup <code> [options]
    python -m spse_sync.cli.sync_cli enrich-all [--only-new] [--limit N] [options]
"""

import argparse
import json
import sys
from contextlib import contextmanager
from typing import Iterator

from pydantic import BaseModel

from spse_sync.config import Settings
from spse_sync.core.schema import FieldSchemaRegistry
from spse_sync.enrichment import DetailEnricher
from spse_sync.ingest import SourceClient
from spse_sync.observability.logger import get_logger
from spse_sync.observability.metrics import start_metrics_server
from spse_sync.sync import CycleInProgressError, SyncEngine
from spse_sync.warehouse.connection import DatabaseConnectionPool, close_pool, initialize_pool
from spse_sync.warehouse.queries import SinkQueries
from spse_sync.warehouse.schema_mgmt import SchemaManager
from spse_sync.warehouse.upsert import EnrichmentWriter

logger = get_logger(__name__)


class Services:
    """Everything one CLI invocation needs, opened together."""

    def __init__(self, registry: FieldSchemaRegistry, settings: Settings, pool: DatabaseConnectionPool, client: SourceClient):
        self.registry = registry
        self.settings = settings
        self.pool = pool
        self.client = client

    def engine(self) -> SyncEngine:
        return SyncEngine(self.pool, self.client, self.registry, self.settings)

    def enricher(self) -> DetailEnricher:
        return DetailEnricher(
            client=self.client,
            writer=EnrichmentWriter(self.pool),
            queries=SinkQueries(self.pool, self.registry),
            settings=self.settings,
        )


@contextmanager
def open_services(args) -> Iterator[Services]:
    registry = FieldSchemaRegistry.from_yaml(args.field_mappings)
    settings = Settings.from_env(registry, env_file=args.env_file)

    pool = initialize_pool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    client = SourceClient(settings)

    try:
        SchemaManager(pool, registry).ensure_all()
        yield Services(registry, settings, pool, client)
    finally:
        client.close()
        close_pool()


def emit(result: BaseModel) -> None:
    print(json.dumps(result.model_dump(mode="json"), indent=2))


def sync_command(args) -> int:
    """Run one sync cycle for one table."""
    with open_services(args) as services:
        result = services.engine().run_cycle(args.table)
    emit(result)
    return 0 if result.success else 1


def sync_all_command(args) -> int:
    """Run one sync cycle per registered table."""
    with open_services(args) as services:
        summary = services.engine().run_all()
    emit(summary)
    return 0 if summary.success else 1


def enrich_command(args) -> int:
    """Enrich a single procurement code from its detail page."""
    with open_services(args) as services:
        result = services.enricher().enrich_key(args.kode_rup, nama_paket=args.nama_paket)
    emit(result)
    return 0 if result.success else 1


def enrich_all_command(args) -> int:
    """Enrich every planning record lacking a successful extraction."""
    with open_services(args) as services:
        result = services.enricher().enrich_pending(include_failed=not args.only_new, limit=args.limit)
    emit(result)
    return 0 if result.success else 1


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db-host",
        default=None,
        help="Database host (default: DB_HOST or localhost)"
    )
    parser.add_argument(
        "--db-port",
        type=int,
        default=None,
        help="Database port (default: DB_PORT or 5432)"
    )
    parser.add_argument(
        "--db-name",
        default=None,
        help="Database name (default: DB_NAME or spse)"
    )
    parser.add_argument(
        "--db-user",
        default=None,
        help="Database user (default: DB_USER or spse)"
    )
    parser.add_argument(
        "--db-password",
        default=None,
        help="Database password (default: DB_PASSWORD)"
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with portal and database settings"
    )
    parser.add_argument(
        "--field-mappings",
        default=None,
        help="Path to a field mappings YAML file (default: FIELD_MAPPINGS_PATH or bundled)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync procurement portal endpoints into the local store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync the planning endpoint
  python -m spse_sync.cli.sync_cli sync --table perencanaan

  # Sync every endpoint, one after the other
  python -m spse_sync.cli.sync_cli sync-all

  # Enrich one code from its detail page
  python -m spse_sync.cli.sync_cli enrich --kode-rup 12345678

  # Enrich at most 500 codes never attempted before
  python -m spse_sync.cli.sync_cli enrich-all --only-new --limit 500
        """
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while running"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Run one sync cycle for a table")
    sync_parser.add_argument(
        "--table",
        required=True,
        help="Target table (perencanaan, persiapan, pemilihan, hasilpemilihan, kontrak, serahterima)"
    )
    add_common_arguments(sync_parser)

    sync_all_parser = subparsers.add_parser("sync-all", help="Run a sync cycle for every table")
    add_common_arguments(sync_all_parser)

    enrich_parser = subparsers.add_parser("enrich", help="Enrich one procurement code")
    enrich_parser.add_argument(
        "--kode-rup",
        required=True,
        help="Procurement code to enrich"
    )
    enrich_parser.add_argument(
        "--nama-paket",
        default=None,
        help="Package name to key the row by (default: the planning row's name)"
    )
    add_common_arguments(enrich_parser)

    enrich_all_parser = subparsers.add_parser("enrich-all", help="Enrich all pending planning records")
    enrich_all_parser.add_argument(
        "--only-new",
        action="store_true",
        help="Skip codes whose previous extraction failed"
    )
    enrich_all_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of codes to attempt"
    )
    add_common_arguments(enrich_all_parser)

    return parser


COMMANDS = {
    "sync": sync_command,
    "sync-all": sync_all_command,
    "enrich": enrich_command,
    "enrich-all": enrich_all_command,
}


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    try:
        exit_code = COMMANDS[args.command](args)
    except (CycleInProgressError, ValueError) as e:
        logger.error(f"Invalid request: {e}")
        print(f"\nError: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Error during {args.command}: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
