"""
Admin CLI for inspecting the local procurement store.

Usage:
    python -m spse_sync.cli.admin_cli init-db [options]
    python -m spse_sync.cli.admin_cli stats [options]
    python -m spse_sync.cli.admin_cli list --table <table> [--limit N] [--offset N]
    python -m spse_sync.cli.admin_cli show-enrichment --kode-rup <code>
    python -m spse_sync.cli.admin_cli compare [--limit N] [--offset N]
"""

import argparse
import json
import sys
from typing import Any

from dotenv import load_dotenv

from spse_sync.core.schema import FieldSchemaRegistry
from spse_sync.observability.logger import get_logger
from spse_sync.utils.validation import ValidationError
from spse_sync.warehouse.connection import DatabaseConnectionPool, close_pool, initialize_pool
from spse_sync.warehouse.queries import SinkQueries
from spse_sync.warehouse.schema_mgmt import SchemaManager

from .sync_cli import add_common_arguments

logger = get_logger(__name__)


def open_pool(args) -> DatabaseConnectionPool:
    return initialize_pool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )


def emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def init_db_command(args, registry: FieldSchemaRegistry) -> None:
    """
    Create every sink table plus the work-unit and enrichment tables.

    Args:
        args: Command line arguments
        registry: Field schema registry
    """
    pool = open_pool(args)
    try:
        tables = SchemaManager(pool, registry).ensure_all()
        emit({"success": True, "tables": tables})
    finally:
        close_pool()


def stats_command(args, registry: FieldSchemaRegistry) -> None:
    """Display live row counts per table."""
    pool = open_pool(args)
    try:
        emit({"statistics": SinkQueries(pool, registry).statistics()})
    finally:
        close_pool()


def list_command(args, registry: FieldSchemaRegistry) -> None:
    """List live rows of one sink table."""
    pool = open_pool(args)
    try:
        rows = SinkQueries(pool, registry).list_records(args.table, limit=args.limit, offset=args.offset)
        emit({
            "data": rows,
            "pagination": {"limit": args.limit, "offset": args.offset, "count": len(rows)},
        })
    finally:
        close_pool()


def show_enrichment_command(args, registry: FieldSchemaRegistry) -> None:
    pool = open_pool(args)
    try:
        rows = SinkQueries(pool, registry).get_enrichment(args.kode_rup)
        if not rows:
            print(f"\nNo enrichment found for kode RUP: {args.kode_rup}")
            sys.exit(1)
        emit({"data": rows})
    finally:
        close_pool()


def compare_command(args, registry: FieldSchemaRegistry) -> None:
    """Planning rows side by side with their enrichment."""
    pool = open_pool(args)
    try:
        rows = SinkQueries(pool, registry).enrichment_comparison(limit=args.limit, offset=args.offset)
        emit({
            "data": rows,
            "pagination": {"limit": args.limit, "offset": args.offset, "count": len(rows)},
        })
    finally:
        close_pool()


def add_paging_arguments(parser: argparse.ArgumentParser, default_limit: int) -> None:
    parser.add_argument(
        "--limit",
        type=int,
        default=default_limit,
        help=f"Maximum number of rows (default: {default_limit})"
    )
    parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Rows to skip (default: 0)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Admin CLI for the procurement store",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Create or widen all managed tables")
    add_common_arguments(init_parser)

    stats_parser = subparsers.add_parser("stats", help="Live row counts per table")
    add_common_arguments(stats_parser)

    list_parser = subparsers.add_parser("list", help="List live rows of a sink table")
    list_parser.add_argument(
        "--table",
        required=True,
        help="Sink table identifier (e.g. perencanaan)"
    )
    add_paging_arguments(list_parser, default_limit=100)
    add_common_arguments(list_parser)

    show_parser = subparsers.add_parser("show-enrichment", help="Show the enrichment rows of a code")
    show_parser.add_argument(
        "--kode-rup",
        required=True,
        help="Procurement code"
    )
    add_common_arguments(show_parser)

    compare_parser = subparsers.add_parser("compare", help="Compare planning rows with their enrichment")
    add_paging_arguments(compare_parser, default_limit=50)
    add_common_arguments(compare_parser)

    return parser


COMMANDS = {
    "init-db": init_db_command,
    "stats": stats_command,
    "list": list_command,
    "show-enrichment": show_enrichment_command,
    "compare": compare_command,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point for admin CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.env_file:
            load_dotenv(args.env_file, override=False)
        registry = FieldSchemaRegistry.from_yaml(args.field_mappings)
        COMMANDS[args.command](args, registry)
    except ValidationError as e:
        print(f"\nError: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Error during {args.command}: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
