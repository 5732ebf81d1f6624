"""Command-line entry point: run one sync pass and exit with its outcome."""

import argparse
import logging
import sys
from typing import List, Optional

from storesync.config import CATEGORIES, DB_PATH, FETCH_WORKERS
from storesync.db import CatalogStore
from storesync.logging_config import setup_logging
from storesync.workflows import run_sync

__all__ = ["main", "parse_args", "show_stats"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync the storefront catalog into the local catalog database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync all configured categories
  python -m storesync.cli

  # Sync two categories only, sequentially
  python -m storesync.cli --categories all-switching all-wifi --workers 1

  # Fetch and normalize without writing anything
  python -m storesync.cli --dry-run

  # Show row counts per table
  python -m storesync.cli --stats
        """,
    )

    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )
    parser.add_argument(
        "--categories",
        nargs="+",
        metavar="SLUG",
        help="Category slugs to sync, in attribution order (default: all configured)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=FETCH_WORKERS,
        help=f"Concurrent category fetches (default: {FETCH_WORKERS})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and normalize only; do not write to the database",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics and exit",
    )
    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="List configured categories and exit",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Don't write the JSONL log file",
    )

    return parser.parse_args(argv)


def show_stats(db_path: str) -> None:
    """Display row counts for every table."""
    store = CatalogStore(db_path)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")
    for table, count in store.table_counts().items():
        print(f"  {table}: {count}")
    print()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI. Returns the process exit code."""
    args = parse_args(argv)

    if args.list_categories:
        print("Configured categories:")
        for slug in CATEGORIES:
            print(f"  {slug}")
        return 0

    if args.stats:
        show_stats(args.db)
        return 0

    setup_logging(
        level=getattr(logging, args.log_level),
        log_to_file=not args.no_log_file,
    )

    summary = run_sync(
        categories=args.categories,
        db_path=args.db,
        workers=max(1, args.workers),
        dry_run=args.dry_run,
    )
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
