from __future__ import annotations

import argparse
import logging
import sys

from search_sync.config import Settings, get_settings
from search_sync.db import get_engine
from search_sync.services.search.content_source import SqlContentSource
from search_sync.services.search.sync_job_runner import run_sync_job
from search_sync.services.search.types import SyncOptions


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="search-sync",
        description="Index published posts and pages into the search index",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Does not push content to the search index",
    )
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Deletes the search index before starting the indexation",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=settings.search_chunk_size,
        help="Number of documents per bulk request",
    )
    parser.add_argument(
        "--database-url",
        default=settings.content_database_url,
        help="SQLAlchemy URL of the content store",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="[search-sync] %(levelname)s %(message)s")

    try:
        settings = get_settings()
        args = _build_parser(settings).parse_args(argv)
        metrics = run_sync_job(
            settings.index_config(),
            SyncOptions(
                dry_run=args.dry_run,
                reset_index=args.delete,
                chunk_size=args.chunk_size,
            ),
            content_source=SqlContentSource(
                get_engine(args.database_url),
                page_layouts=settings.content_page_layouts,
            ),
            max_concurrency=settings.search_max_concurrency,
        )
    except Exception as exc:
        print(f"[search-sync] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    print(
        "[search-sync] completed "
        f"index={metrics['index']} "
        f"candidates={metrics['candidates']} "
        f"indexed={metrics['indexed']} "
        f"failed={metrics['failed']} "
        f"dry_run={metrics['dry_run']}",
        flush=True,
    )
    if metrics["failed"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
