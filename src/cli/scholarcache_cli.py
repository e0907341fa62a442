#!/usr/bin/env python3
"""ScholarCache CLI - cached bibliographic search from the command line."""

import argparse
import asyncio
import json
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from cli.output import OutputManager, get_output
from models.search import CacheResult, SearchFilters
from utils.config import Config
from utils.errors import ValidationError
from utils.validation import validate_year


def setup_logging(
    log_dir: Optional[Path] = None,
    verbose: bool = False,
    log_file_name: Optional[str] = None,
) -> Path:
    """Setup logging to both console and file.

    Args:
        log_dir: Directory for log files (default: Config.LOG_DIR)
        verbose: If True, set DEBUG level; otherwise Config.LOG_LEVEL
        log_file_name: Custom log file name (default: auto-generated with timestamp)

    Returns:
        Path to the log file
    """
    if log_dir is None:
        log_dir = Config.LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    if log_file_name is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_name = f"scholarcache_{timestamp}.log"
    log_file = log_dir / log_file_name

    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)

    file_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # File handler (always DEBUG to capture everything)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.debug(f"Logging initialized. Log file: {log_file}")
    return log_file


def build_filters(args) -> Optional[SearchFilters]:
    """Build a filter set from search arguments, None when no filter is given."""
    filters = SearchFilters(
        year_min=validate_year(args.year_min),
        year_max=validate_year(args.year_max),
        types=args.types.split(",") if args.types else [],
        open_access=args.open_access,
        min_citations=args.min_citations,
        sort_by=args.sort,
    )
    return None if filters.is_empty() else filters


def print_result(
    query: str,
    result: CacheResult,
    out: OutputManager,
    verbose: bool = False,
) -> None:
    """Print one search result with its cache summary."""
    out.header(f"Results: '{query}'")
    out.stat("Returned", f"{len(result.successful)}/{result.total_requested}")
    out.stat("From cache", len(result.from_cache))
    out.stat("Rate limited", result.rate_limited)
    if result.failed:
        out.warning(f"Upstream failure: {result.error}")
    out.blank()

    cached_ids = {paper.paper_id for paper in result.from_cache}
    for i, paper in enumerate(result.successful, 1):
        out.paper(paper.to_dict(), i, verbose=verbose, cached=paper.paper_id in cached_ids)

    if not result.successful and not result.failed:
        out.info("No papers found.")


async def cmd_search(args) -> int:
    """Execute search command."""
    from cache.orchestrator import create_orchestrator

    out = get_output("scholarcache.search")

    try:
        filters = build_filters(args)
        orchestrator = create_orchestrator(provider=args.provider)
        result = await orchestrator.search_with_caching(args.query, args.limit, filters)
    except ValidationError as e:
        out.error(f"Invalid input: {e.message}")
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print_result(args.query, result, out, verbose=args.verbose)

    if args.output:
        output_path = Path(args.output)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        out.success(f"Results saved to: {output_path}")

    return 1 if result.failed else 0


def read_queries(path: Path) -> List[str]:
    """One query per line; blank lines and ``#`` comments are skipped."""
    with open(path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    return [line for line in lines if line and not line.startswith("#")]


async def cmd_batch(args) -> int:
    """Run every query in a file through the cache."""
    from cache.orchestrator import create_orchestrator

    out = get_output("scholarcache.batch")

    input_path = Path(args.file)
    if not input_path.exists():
        out.error(f"File not found: {input_path}")
        return 1

    queries = read_queries(input_path)
    if not queries:
        out.warning("No queries found in file")
        return 1

    out.header(f"Batch search: {len(queries)} queries")
    orchestrator = create_orchestrator(provider=args.provider)
    results = await orchestrator.batch_search(queries, args.limit, delay=args.delay)

    widths = [40, 8, 8, 8]
    out.table_row(["Query", "Papers", "Cached", "Limited"], widths)
    for query, result in zip(queries, results):
        label = query if len(query) <= 40 else query[:37] + "..."
        out.table_row(
            [label, len(result.successful), len(result.from_cache), result.rate_limited],
            widths,
        )

    failures = sum(1 for result in results if result.failed)
    if failures:
        out.warning(f"{failures} queries failed")

    if args.output:
        output_path = Path(args.output)
        payload = [
            {"query": query, **result.to_dict()} for query, result in zip(queries, results)
        ]
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        out.success(f"Results saved to: {output_path}")

    return 1 if failures else 0


def cmd_stats(args) -> int:
    """Show durable cache statistics."""
    from cache.database import init_cache
    from cache.search_cache import SearchCache

    out = get_output("scholarcache.cache")

    db = init_cache()
    stats = db.get_stats()

    out.header("Cache Statistics")
    out.stat("Database", db.db_path)
    out.stat("Size", f"{stats.get('db_size_mb', 0)} MB")
    out.stat("Papers cached", stats.get("papers_count", 0))
    out.stat("Search queries", stats.get("search_cache_count", 0))
    out.stat("Expired searches", stats.get("expired_searches", 0))

    if args.list:
        out.blank()
        entries = SearchCache(db).list_entries(limit=args.list)
        widths = [40, 8, 8, 25]
        out.table_row(["Query", "Papers", "Expired", "Updated"], widths)
        for entry in entries:
            query = entry["query"]
            label = query if len(query) <= 40 else query[:37] + "..."
            out.table_row(
                [label, entry["successful_count"], bool(entry["expired"]), entry["updated_at"]],
                widths,
            )
    return 0


def cmd_clear(args) -> int:
    """Delete cached searches from the durable tier."""
    from cache.database import init_cache
    from cache.search_cache import SearchCache

    out = get_output("scholarcache.cache")
    searches = SearchCache(init_cache())

    try:
        count = searches.clear(args.pattern)
    except re.error as e:
        out.error(f"Invalid pattern '{args.pattern}': {e}")
        return 2

    if args.pattern:
        out.success(f"Cleared {count} search entries matching '{args.pattern}'")
    else:
        out.success(f"Cleared {count} search entries")

    if args.vacuum:
        searches.db.vacuum()
        out.success("Database optimized")
    return 0


def cmd_cleanup(args) -> int:
    """Delete expired searches from the durable tier."""
    from cache.database import init_cache

    out = get_output("scholarcache.cache")
    db = init_cache()
    count = db.clear_expired_cache()
    out.success(f"Cleared {count} expired cache entries")
    return 0


def cmd_config(args) -> int:
    """Show the effective configuration."""
    print(json.dumps(Config.get_summary(), indent=2))
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="scholarcache",
        description="ScholarCache - Cached bibliographic search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search (served from cache when possible)
  scholarcache search "transformer attention" --limit 20
  scholarcache search "CRISPR" --year-min 2020 --open-access --json

  # Run a file of queries, one per line
  scholarcache batch queries.txt --limit 10

  # Cache management
  scholarcache stats --list 20       # Show statistics and recent searches
  scholarcache clear --pattern CRISPR
  scholarcache cleanup               # Delete expired searches
  scholarcache config
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # search command
    search_parser = subparsers.add_parser("search", help="Search for papers")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help=f"Number of results (default: 10, max: {Config.MAX_QUERY_LIMIT})",
    )
    search_parser.add_argument(
        "--provider", "-p",
        choices=["openalex", "semantic_scholar"],
        default=None,
        help=f"Upstream provider (default: {Config.PROVIDER})",
    )
    search_parser.add_argument("--year-min", type=int, help="Earliest publication year")
    search_parser.add_argument("--year-max", type=int, help="Latest publication year")
    search_parser.add_argument("--types", help="Comma-separated work types (e.g. article,review)")
    search_parser.add_argument("--open-access", action="store_true", help="Open access only")
    search_parser.add_argument(
        "--min-citations", type=int, default=0, help="Minimum citation count"
    )
    search_parser.add_argument("--sort", help="Sort expression (e.g. cited_by_count:desc)")
    search_parser.add_argument("--json", action="store_true", help="Print raw JSON result")
    search_parser.add_argument("--output", "-o", help="Save result as JSON")

    # batch command
    batch_parser = subparsers.add_parser("batch", help="Search every query in a file")
    batch_parser.add_argument("file", help="Text file, one query per line")
    batch_parser.add_argument("--limit", "-l", type=int, default=10, help="Results per query")
    batch_parser.add_argument(
        "--provider", "-p",
        choices=["openalex", "semantic_scholar"],
        default=None,
        help=f"Upstream provider (default: {Config.PROVIDER})",
    )
    batch_parser.add_argument(
        "--delay", type=float, default=0.5, help="Seconds between queries (default: 0.5)"
    )
    batch_parser.add_argument("--output", "-o", help="Save results as JSON")

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show cache statistics")
    stats_parser.add_argument(
        "--list", type=int, default=0, metavar="N", help="Also list the N most recent searches"
    )

    # clear command
    clear_parser = subparsers.add_parser("clear", help="Delete cached searches")
    clear_parser.add_argument("--pattern", help="Regular expression matched against query text")
    clear_parser.add_argument("--vacuum", action="store_true", help="Optimize database afterwards")

    # cleanup command
    subparsers.add_parser("cleanup", help="Delete expired cached searches")

    # config command
    subparsers.add_parser("config", help="Show configuration")

    return parser


async def async_main(args) -> int:
    """Async main entry point."""
    if args.command == "search":
        return await cmd_search(args)
    elif args.command == "batch":
        return await cmd_batch(args)
    elif args.command == "stats":
        return cmd_stats(args)
    elif args.command == "clear":
        return cmd_clear(args)
    elif args.command == "cleanup":
        return cmd_cleanup(args)
    elif args.command == "config":
        return cmd_config(args)
    else:
        print("No command specified. Use --help for usage.")
        return 1


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(verbose=args.verbose)
    return asyncio.run(async_main(args))


if __name__ == "__main__":
    sys.exit(main())
