"""Command-line access to the spreadsheet functions."""

import argparse
import logging
import sys

from datasetiq_bridge.config import SOURCES, Settings
from datasetiq_bridge.data.errors import DataSetIQError
from datasetiq_bridge.data.fetcher import SeriesFetcher
from datasetiq_bridge.data.store import CredentialStore, get_store
from datasetiq_bridge.functions import SeriesFunctions


def _date_arg(raw: str | None) -> str | float | None:
    """Numbers on the command line are spreadsheet serial dates."""
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return raw


def _print_table(rows: list[list]) -> None:
    for row in rows:
        print(f"{row[0]!s:12} | {row[1]}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch DataSetIQ series data")
    parser.add_argument("--verbose", action="store_true", help="Log HTTP attempts")
    parser.add_argument(
        "--store",
        default="sqlite",
        choices=["sqlite", "memory"],
        help="Where the API key and series lists are kept",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("table", help="Date/Value table, most recent first")
    p.add_argument("series_id")
    p.add_argument("--freq", help="Frequency")
    p.add_argument("--start", help="Start date (YYYY-MM-DD or serial)")

    for name, help_text in (
        ("latest", "Most recent value"),
        ("yoy", "Year-over-year change"),
        ("preview", "Latest value and metadata"),
        ("ingest", "Request full-history ingestion"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("series_id")

    p = sub.add_parser("value", help="Value on a date")
    p.add_argument("series_id")
    p.add_argument("date", help="YYYY-MM-DD or serial")

    p = sub.add_parser("meta", help="Metadata field")
    p.add_argument("series_id")
    p.add_argument("field")

    p = sub.add_parser("search", help="Search series")
    p.add_argument("query")
    p.add_argument("--source", help="Restrict to one source")

    p = sub.add_parser("browse", help="List series from a source")
    p.add_argument("source")

    sub.add_parser("sources", help="List browsable sources")

    p = sub.add_parser("connect", help="Store and verify an API key")
    p.add_argument("api_key")
    sub.add_parser("disconnect", help="Forget the stored API key")

    p = sub.add_parser("favorites", help="Show or edit favorites")
    p.add_argument("--add", metavar="SERIES_ID")
    p.add_argument("--remove", metavar="SERIES_ID")
    sub.add_parser("recent", help="Show recently used series")

    return parser


def _seed_key(store: CredentialStore, settings: Settings) -> None:
    """Use DATASETIQ_API_KEY when nothing has been stored yet."""
    stored = store.get()
    if stored.supported and not stored.key and settings.has_api_key():
        store.set(settings.api_key)


def _run(args: argparse.Namespace, functions: SeriesFunctions) -> None:
    store = functions.store
    fetcher = functions.fetcher
    command = args.command

    if command == "table":
        result = functions.table(args.series_id, args.freq, _date_arg(args.start))
        if isinstance(result, str):
            print(result)
        else:
            _print_table(result)
    elif command == "latest":
        print(functions.latest(args.series_id))
    elif command == "value":
        print(functions.value(args.series_id, _date_arg(args.date)))
    elif command == "yoy":
        print(functions.yoy(args.series_id))
    elif command == "meta":
        print(functions.meta(args.series_id, args.field))
    elif command == "preview":
        preview = functions.preview(args.series_id)
        if preview.error:
            print(f"Error: {preview.error}")
        print(f"Latest: {preview.latest if preview.latest is not None else 'N/A'}")
        if preview.is_pending or preview.is_metadata_only:
            print(f"Status: {preview.status_message or 'Full data not yet ingested'}")
        for key, value in preview.meta.items():
            print(f"  {key:20} | {value}")
    elif command in ("search", "browse"):
        key = store.get().key
        if command == "search":
            results = fetcher.search(args.query, api_key=key, source=args.source)
        else:
            results = fetcher.browse(args.source, api_key=key)
        for r in results:
            print(f"{r.id:25} | {r.frequency or '':10} | {r.source or '':10} | {r.title}")
        if not results:
            print("No results.")
    elif command == "sources":
        for source_id, label in SOURCES.items():
            print(f"{source_id:10} | {label}")
    elif command == "connect":
        valid, error = functions.connect(args.api_key)
        print("✅ Connected" if valid else f"Not connected: {error}")
        if not valid:
            sys.exit(1)
    elif command == "disconnect":
        functions.disconnect()
        print("Disconnected. Enter your API key to reconnect.")
    elif command == "favorites":
        if args.add:
            store.add_favorite(args.add)
        if args.remove:
            store.remove_favorite(args.remove)
        for series_id in store.get_favorites():
            print(series_id)
    elif command == "recent":
        for series_id in store.get_recent():
            print(series_id)
    elif command == "ingest":
        result = fetcher.request_ingestion(args.series_id, api_key=store.get().key)
        print(result.message)
        if not result.queued:
            sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        settings = Settings()
        store = get_store(args.store, settings)
        _seed_key(store, settings)
        with SeriesFetcher(settings) as fetcher:
            _run(args, SeriesFunctions(store, fetcher))
    except DataSetIQError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
