"""Command-line interface for catalog synchronization."""

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

from catalog_sync.config import DB_PATH, DEFAULT_WORKERS, SUPPLIER_ID
from catalog_sync.db import COUNTABLE_TABLES, get_table_count, init_db
from catalog_sync.detail_fetcher import download_all
from catalog_sync.index_reader import import_catalog, index_path_for
from catalog_sync.linker import assign_products
from catalog_sync.logging_config import setup_logging
from catalog_sync.models import Outcome
from catalog_sync.shutdown import get_shutdown_handler
from catalog_sync.sync import STEPS, run_detail_pipeline, summarize

__all__ = ["main", "parse_args", "show_stats"]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Product catalog index import, detail download and normalization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import today's daily index, link products, fetch and normalize
  python -m catalog_sync.cli --import-index --assign-products --download --pipeline

  # Import the full index
  python -m catalog_sync.cli --import-index --full

  # First import: also take the short descriptions
  python -m catalog_sync.cli --update-products --initial-import

  # Re-download every linked document
  python -m catalog_sync.cli --download --all-time --overwrite

  # Show database statistics
  python -m catalog_sync.cli --stats
        """,
    )

    # Index
    parser.add_argument("--import-index", action="store_true",
                        help="Import the catalog index into the ledger")
    parser.add_argument("--full", action="store_true",
                        help="Use the full index instead of a daily one")
    parser.add_argument("--date", type=date.fromisoformat,
                        help="Day of the daily index (YYYY-MM-DD, default: today)")
    parser.add_argument("--index-file", type=Path,
                        help="Explicit index file (overrides --full/--date)")
    parser.add_argument("--supplier-id", default=SUPPLIER_ID,
                        help=f"Supplier id to import (default: {SUPPLIER_ID})")

    # Linking
    parser.add_argument("--assign-products", action="store_true",
                        help="Link ledger records to products by article number")
    parser.add_argument("--all", action="store_true",
                        help="With --assign-products: relink all products, not only unlinked ones")

    # Download
    parser.add_argument("--download", action="store_true",
                        help="Download detail documents of linked records")
    parser.add_argument("--overwrite", action="store_true",
                        help="Replace cached documents")
    parser.add_argument("--all-time", action="store_true",
                        help="Download for all linked records, not only recently updated ones")

    # Detail steps
    parser.add_argument("--update-products", action="store_true",
                        help="Rewrite product texts and attribute values")
    parser.add_argument("--initial-import", action="store_true",
                        help="With --update-products/--pipeline: also take short descriptions")
    parser.add_argument("--relations", action="store_true",
                        help="Rebuild product and supply relations")
    parser.add_argument("--images", action="store_true",
                        help="Import images for products without one")
    parser.add_argument("--pipeline", action="store_true",
                        help=f"Run all detail steps ({', '.join(STEPS)}) per record")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS,
                        help=f"Parallel workers for detail steps (default: {DEFAULT_WORKERS})")

    # General
    parser.add_argument("--db", default=DB_PATH,
                        help=f"SQLite database path (default: {DB_PATH})")
    parser.add_argument("--stats", action="store_true",
                        help="Show database statistics and exit")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")

    return parser.parse_args(argv)


def show_stats(db_path: str) -> None:
    """Display database statistics."""
    init_db(db_path)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")
    for table in sorted(COUNTABLE_TABLES):
        print(f"  {table}: {get_table_count(db_path, table)}")
    print()


def _report(label: str, outcomes: List[Outcome]) -> None:
    counts = summarize(outcomes)
    print(f"{label}: " + (", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "nothing to do"))


def _selected_steps(args: argparse.Namespace) -> List[str]:
    if args.pipeline:
        return list(STEPS)
    selected = {
        "normalize": args.update_products,
        "relations": args.relations,
        "image": args.images,
    }
    return [step for step in STEPS if selected[step]]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.stats:
        show_stats(args.db)
        return 0

    steps = _selected_steps(args)
    if not (args.import_index or args.assign_products or args.download or steps):
        print("Nothing to do. See --help.")
        return 1

    get_shutdown_handler().install()

    if args.import_index:
        source = args.index_file or index_path_for(full=args.full, day=args.date)
        if not Path(source).exists():
            print(f"Index file not found: {source}")
            return 1
        result = import_catalog(source, db_path=args.db, supplier_id=args.supplier_id)
        _report("Index import", result)

    if args.assign_products:
        result = assign_products(db_path=args.db, only_missing=not args.all)
        _report("Product assignment", result)

    if args.download:
        result = download_all(db_path=args.db, overwrite=args.overwrite, from_today=not args.all_time)
        _report("Download", result)

    if steps:
        result = run_detail_pipeline(
            db_path=args.db,
            steps=steps,
            initial_import=args.initial_import,
            workers=args.workers,
        )
        _report("Detail steps", result)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
