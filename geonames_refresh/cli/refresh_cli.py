"""
Command-line interface for the geonames refresh jobs.

Usage:
    geonames-refresh places [--master <path>]
    geonames-refresh lookup [--table feature_codes] [files ...]
    geonames-refresh install [--clean]
    geonames-refresh status
"""

import argparse
import json
import sys

import psycopg

from geonames_refresh.batch.pipeline import PlacesRefreshPipeline
from geonames_refresh.core.errors import RefreshError
from geonames_refresh.core.models import RefreshResult
from geonames_refresh.core.rules import load_table_config
from geonames_refresh.lookup.pipeline import LookupRecordPipeline
from geonames_refresh.observability.logger import configure_logging, get_logger
from geonames_refresh.observability.metrics import start_metrics_server
from geonames_refresh.orchestrator import InstallOrchestrator, find_lookup_files
from geonames_refresh.settings import RefreshSettings, load_settings
from geonames_refresh.status.tracker import RefreshStatusTracker
from geonames_refresh.warehouse.connection import DatabaseConnectionPool
from geonames_refresh.warehouse.storage import PostgresStorage

logger = get_logger(__name__)


def log_progress(fraction: float, message: str) -> None:
    logger.info(f"{message}: {fraction:.0%}")


def open_pool(settings: RefreshSettings) -> DatabaseConnectionPool:
    pool = DatabaseConnectionPool(
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
    )
    pool.open()
    return pool


def print_results(results: list[RefreshResult]) -> None:
    logger.info("=" * 60)
    for result in results:
        status = "OK" if result.success else "FAILED"
        logger.info(
            f"{result.table}: {status} attempted={result.rows_attempted} "
            f"accepted={result.rows_accepted} rejected={result.rows_rejected} "
            f"elapsed={result.elapsed_seconds:.1f}s"
        )
        if result.error:
            logger.info(f"{result.table}: {result.error}")
    logger.info("=" * 60)


def places_command(args, settings: RefreshSettings) -> int:
    tables = load_table_config(settings.tables_config)
    pool = open_pool(settings)
    try:
        pipeline = PlacesRefreshPipeline(
            PostgresStorage(pool),
            settings.storage_dir,
            definition=tables.places,
            progress=log_progress,
            load_timeout=settings.load_timeout_seconds,
        )
        if args.master:
            result = pipeline.load_master(args.master)
        else:
            result = pipeline.refresh_directory()
    finally:
        pool.close()

    print_results([result])
    return 0 if result.success else 1


def lookup_command(args, settings: RefreshSettings) -> int:
    tables = load_table_config(settings.tables_config)
    if args.table not in tables.lookup_tables:
        logger.error(f"Unknown lookup table: {args.table} (known: {', '.join(tables.lookup_tables)})")
        return 2
    definition = tables.lookup_tables[args.table]

    paths = args.files or find_lookup_files(settings.storage_dir, definition)
    pool = open_pool(settings)
    try:
        pipeline = LookupRecordPipeline(PostgresStorage(pool), definition, progress=log_progress)
        result = pipeline.refresh(paths)
    finally:
        pool.close()

    print_results([result])
    return 0 if result.success else 1


def install_command(args, settings: RefreshSettings) -> int:
    tables = load_table_config(settings.tables_config)
    pool = open_pool(settings)
    try:
        orchestrator = InstallOrchestrator(
            pool,
            PostgresStorage(pool),
            settings.storage_dir,
            tables=tables,
            tracker=RefreshStatusTracker(pool, dataset=settings.dataset),
            load_timeout=settings.load_timeout_seconds,
            progress=log_progress,
        )
        results = orchestrator.install(clean_storage=args.clean)
    except RefreshError as e:
        logger.error(f"Install failed: {e}")
        return 1
    finally:
        pool.close()

    print_results(results)
    return 0


def status_command(args, settings: RefreshSettings) -> int:
    pool = open_pool(settings)
    try:
        tracker = RefreshStatusTracker(pool, dataset=settings.dataset)
        tracker.ensure_table()
        status = tracker.get()
    finally:
        pool.close()

    print(json.dumps(status.model_dump(mode="json"), indent=2))
    return 0


COMMANDS = {
    "places": places_command,
    "lookup": lookup_command,
    "install": install_command,
    "status": status_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geonames-refresh",
        description="Refresh the geonames tables from extracted dump files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Merge the partitions in the storage directory and load them
  geonames-refresh places

  # Load an already merged master extract
  geonames-refresh places --master /data/geonames/master.txt

  # Refresh the feature codes from explicit files
  geonames-refresh lookup --table feature_codes /data/geonames/featureCodes_en.txt

  # Full install, then empty the storage directory
  geonames-refresh install --clean
        """,
    )
    parser.add_argument("--env-file", default=".env", help="Environment file to load (default: .env)")
    parser.add_argument("--storage-dir", help="Override GEONAMES_STORAGE_DIR")
    parser.add_argument("--tables-config", help="Override GEONAMES_TABLES_CONFIG")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument("--log-format", default="json", choices=["json", "text"], help="Log format")
    parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    places_parser = subparsers.add_parser("places", help="Refresh the places table")
    places_parser.add_argument("--master", help="Resolved path of an already merged master extract")

    lookup_parser = subparsers.add_parser("lookup", help="Refresh one lookup table")
    lookup_parser.add_argument("--table", default="feature_codes", help="Lookup table key (default: feature_codes)")
    lookup_parser.add_argument("files", nargs="*", help="Lookup files (default: <prefix>_*.txt in the storage directory)")

    install_parser = subparsers.add_parser("install", help="Refresh every table and record the install status")
    install_parser.add_argument("--clean", action="store_true", help="Empty the storage directory afterwards")

    subparsers.add_parser("status", help="Show the install status")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(level=args.log_level, format_type=args.log_format)

    settings = load_settings(args.env_file)
    overrides = {}
    if args.storage_dir:
        overrides["storage_dir"] = args.storage_dir
    if args.tables_config:
        overrides["tables_config"] = args.tables_config
    if overrides:
        settings = settings.model_copy(update=overrides)

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    try:
        return COMMANDS[args.command](args, settings)
    except (RefreshError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except psycopg.Error as e:
        logger.error(f"{args.command} failed: database error: {e}", extra={"error_type": type(e).__name__})
        return 1


if __name__ == "__main__":
    sys.exit(main())
