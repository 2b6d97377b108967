"""Command line entry points: ``catalog-index`` and ``catalog-search``."""

# ruff: noqa: T201  # CLI intentionally prints operator feedback

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path
import sys
import textwrap

import orjson

from catalog_search.config import ConfigurationError, Settings, load_settings
from catalog_search.indexing.builder import IndexBuilder, IndexBuildError, IndexBuildResult
from catalog_search.indexing.source import SourceError
from catalog_search.observability.logging import configure_logging
from catalog_search.search.query_parser import QueryParseError
from catalog_search.search.servers import ResourceType, create_search_server
from catalog_search.search.storage import StorageError


EXIT_FAILURE = 1
EXIT_QUERY_ERROR = 2


def _non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return value


def build_index_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-index",
        description="Build search indexes from the catalog database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent(
            """
            Examples:
              catalog-index --db catalog.sqlite
              catalog-index --db catalog.sqlite --indexes release --join-strategy temptable
              catalog-index --db catalog.sqlite --test --chunk-size 1000
            """
        ).strip(),
    )
    parser.add_argument("--db", type=Path, help="SQLite catalog database (env: CATALOG_DATABASE_PATH)")
    parser.add_argument("--indexes-dir", type=Path, help="Directory where indexes are written (default: ./data)")
    parser.add_argument("--indexes", help="Comma-separated index names (default: artist,release)")
    parser.add_argument("--chunk-size", type=int, help="Ids processed per chunk (default: 10000)")
    parser.add_argument(
        "--join-strategy",
        choices=["none", "temptable", "map"],
        help="How the release to PUID join is resolved (default: map)",
    )
    parser.add_argument(
        "--test",
        action="store_true",
        default=None,
        help="Only index ids up to the configured test maximum",
    )
    return parser


def build_search_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-search",
        description="Query a built index and print results as JSON lines",
    )
    parser.add_argument("resource", choices=[resource.value for resource in ResourceType])
    parser.add_argument("query", help="Lucene-style query, or free text with --dismax")
    parser.add_argument("--dismax", action="store_true", help="Search the resource's weighted field set")
    parser.add_argument("--offset", type=_non_negative_int, default=0, help="Results to skip (default: 0)")
    parser.add_argument("--limit", type=_non_negative_int, default=None, help="Maximum results to print")
    parser.add_argument("--indexes-dir", type=Path, help="Directory holding the built indexes")
    return parser


def index_main(argv: Sequence[str] | None = None) -> int:
    args = build_index_argument_parser().parse_args(argv)
    try:
        settings = load_settings(
            database_path=args.db,
            indexes_dir=args.indexes_dir,
            indexes=args.indexes,
            ids_per_chunk=args.chunk_size,
            join_strategy=args.join_strategy,
            test_mode=args.test,
        )
        _configure(settings)
        builder = IndexBuilder(settings)
        results = builder.build_all()
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except (IndexBuildError, SourceError) as exc:
        print(f"Index build failed: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    print("=== Catalog Index Build ===")
    for result in results:
        _print_result(result)
    return 0


def search_main(argv: Sequence[str] | None = None) -> int:
    args = build_search_argument_parser().parse_args(argv)
    try:
        settings = load_settings(indexes_dir=args.indexes_dir)
        _configure(settings)
        resource = ResourceType(args.resource)
        server = create_search_server(resource, settings, dismax=args.dismax)
        results = server.search(args.query, offset=args.offset, limit=args.limit)
    except QueryParseError as exc:
        print(f"Invalid query: {exc}", file=sys.stderr)
        return EXIT_QUERY_ERROR
    except (ConfigurationError, StorageError) as exc:
        print(f"Search failed: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    for rank, result in enumerate(results, start=results.offset + 1):
        line = {"rank": rank, "id": result.doc_id, "score": round(result.score, 4), "fields": result.document}
        print(orjson.dumps(line).decode())
    print(
        orjson.dumps(
            {
                "total_hits": results.total_hits,
                "last_updated": results.last_updated.isoformat() if results.last_updated else None,
            }
        ).decode()
    )
    return 0


def _configure(settings: Settings) -> None:
    configure_logging(settings.log_level, settings.log_json)


def _print_result(result: IndexBuildResult) -> None:
    print(
        f"- {result.index_name:<10} indexed {result.documents_indexed} docs "
        f"in {result.chunks} chunks ({result.elapsed_seconds:.2f}s, join strategy '{result.join_strategy}')"
    )
    print(f"  segment: {result.segment_id} in {result.directory}")
    for relation, seconds in sorted(result.relation_seconds.items()):
        print(f"  {relation:<14} {seconds:.2f}s")


if __name__ == "__main__":
    sys.exit(index_main())
