from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
import sys
from time import perf_counter
from typing import TypedDict

from search_sync.config import get_settings
from search_sync.db import get_engine
from search_sync.services.search.client import HttpSearchIndexClient, SearchIndexClient
from search_sync.services.search.content_source import ContentSource, SqlContentSource
from search_sync.services.search.orchestrator import SyncOrchestrator
from search_sync.services.search.types import IndexConfig, SyncOptions, SyncRunSummary
from search_sync.services.search.uploader import BatchUploader


class SyncResult(TypedDict):
    index: str
    candidates: int
    indexed: int
    failed: int
    batches: int
    index_reset: bool
    dry_run: bool
    duration_ms: int


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="search-sync-runner",
        description="Run one search index synchronization and print metrics as JSON",
    )
    parser.add_argument(
        "--payload-json",
        default=None,
        help="Optional JSON object payload with runtime overrides (index/dry_run/reset_index/chunk_size)",
    )
    return parser


async def _run_with_client(
    client: SearchIndexClient,
    config: IndexConfig,
    options: SyncOptions,
    *,
    content_source: ContentSource,
    max_concurrency: int,
    logger: logging.Logger | None,
) -> SyncRunSummary:
    orchestrator = SyncOrchestrator(
        client,
        content_source,
        uploader=BatchUploader(client, max_concurrency=max_concurrency, logger=logger),
        logger=logger,
    )
    return await orchestrator.run(config, options)


async def run_sync(
    config: IndexConfig,
    options: SyncOptions,
    *,
    content_source: ContentSource,
    client: SearchIndexClient | None = None,
    max_concurrency: int = 1,
    logger: logging.Logger | None = None,
) -> SyncRunSummary:
    if client is not None:
        return await _run_with_client(
            client,
            config,
            options,
            content_source=content_source,
            max_concurrency=max_concurrency,
            logger=logger,
        )

    async with HttpSearchIndexClient.from_config(config) as owned_client:
        return await _run_with_client(
            owned_client,
            config,
            options,
            content_source=content_source,
            max_concurrency=max_concurrency,
            logger=logger,
        )


def run_sync_job(
    config: IndexConfig,
    options: SyncOptions,
    *,
    content_source: ContentSource,
    client: SearchIndexClient | None = None,
    max_concurrency: int = 1,
    logger: logging.Logger | None = None,
) -> SyncResult:
    start = perf_counter()
    summary = asyncio.run(
        run_sync(
            config,
            options,
            content_source=content_source,
            client=client,
            max_concurrency=max_concurrency,
            logger=logger,
        )
    )
    duration_ms = int((perf_counter() - start) * 1000)

    metrics: SyncResult = {
        "index": config.index,
        "candidates": summary.total_candidates,
        "indexed": summary.total_indexed,
        "failed": summary.total_failed,
        "batches": summary.batch_count,
        "index_reset": summary.index_was_reset,
        "dry_run": summary.dry_run,
        "duration_ms": duration_ms,
    }
    return metrics


def _resolve_payload(payload_json_raw: str | None) -> dict[str, object]:
    if payload_json_raw is None:
        return {}
    parsed = json.loads(payload_json_raw)
    if not isinstance(parsed, dict):
        raise ValueError("payload_json must be a JSON object")
    return parsed


def _payload_int(payload: dict[str, object], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value)
    raise ValueError(f"{key} must be an integer")


def _payload_bool(payload: dict[str, object], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if isinstance(value, bool):
        return value
    raise ValueError(f"{key} must be a boolean")


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="[search-sync-runner] %(levelname)s %(message)s")

    try:
        settings = get_settings()
        payload = _resolve_payload(args.payload_json)
        config = settings.index_config()
        if "index" in payload:
            config = replace(config, index=str(payload["index"]))
        options = SyncOptions(
            dry_run=_payload_bool(payload, "dry_run", False),
            reset_index=_payload_bool(payload, "reset_index", False),
            chunk_size=_payload_int(payload, "chunk_size", settings.search_chunk_size),
        )

        metrics = run_sync_job(
            config,
            options,
            content_source=SqlContentSource(
                get_engine(),
                page_layouts=settings.content_page_layouts,
            ),
            max_concurrency=settings.search_max_concurrency,
        )
    except Exception as exc:
        print(f"[search-sync-runner] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    print(json.dumps(metrics), flush=True)


if __name__ == "__main__":
    main()
