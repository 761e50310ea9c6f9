from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from search_sync.services.search.client import SearchIndexClient, SearchIndexClientError
from search_sync.services.search.content_source import ContentSource, load_corpus
from search_sync.services.search.errors import ConfigError, ConnectivityError
from search_sync.services.search.schema import IndexSchemaManager
from search_sync.services.search.transformer import transform_all
from search_sync.services.search.types import (
    BulkOperationResult,
    ContentRecord,
    IndexConfig,
    SearchDocument,
    SyncOptions,
    SyncRunSummary,
)
from search_sync.services.search.uploader import BatchUploader


def validate_config(config: IndexConfig, options: SyncOptions) -> None:
    missing = [
        name
        for name, value in (
            ("username", config.username),
            ("password", config.password),
            ("index", config.index),
        )
        if not value
    ]
    if missing:
        raise ConfigError(
            f"missing search index configuration: {', '.join(missing)}",
            operation="validate_config",
            index=config.index or None,
        )
    if options.chunk_size <= 0:
        raise ConfigError(
            f"chunk_size must be > 0, got {options.chunk_size}",
            operation="validate_config",
            index=config.index,
        )


class SyncOrchestrator:
    """Runs one synchronization of a content source into the search index.

    Steps run strictly in order and each gates the next:

    1. validate the config (no network before this passes)
    2. probe cluster health
    3. drop the index when ``reset_index`` is set
    4. ensure the index schema
    5. load the corpus
    6. transform every record, aborting on the first malformed one
    7. stop here on ``dry_run``
    8. bulk upload and aggregate results

    Fatal conditions raise a ``SyncError`` subclass. Nothing is retried.
    """

    def __init__(
        self,
        client: SearchIndexClient,
        content_source: ContentSource,
        *,
        schema_manager: IndexSchemaManager | None = None,
        uploader: BatchUploader | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._client = client
        self._content_source = content_source
        self._schema_manager = schema_manager or IndexSchemaManager(client, logger=self._logger)
        self._uploader = uploader or BatchUploader(client, logger=self._logger)

    async def run(self, config: IndexConfig, options: SyncOptions | None = None) -> SyncRunSummary:
        options = options or SyncOptions()
        validate_config(config, options)

        await self.check_connectivity(config)

        index_was_reset = False
        if options.reset_index:
            index_was_reset = await self._schema_manager.ensure_absent(config.index)

        await self._schema_manager.ensure_schema(config.index)

        records = await self.load_records()
        if not records:
            self._logger.info("No pages or posts to index.")
            return _summary(
                candidates=0,
                results=[],
                index_was_reset=index_was_reset,
                dry_run=options.dry_run,
            )

        documents = self.transform_records(records, config)

        if options.dry_run:
            self._logger.warning("Skipping indexing of %d documents due to dry run.", len(documents))
            return _summary(
                candidates=len(documents),
                results=[],
                index_was_reset=index_was_reset,
                dry_run=True,
            )

        results = await self._uploader.upload(documents, config.index, options.chunk_size)
        summary = _summary(
            candidates=len(documents),
            results=results,
            index_was_reset=index_was_reset,
            dry_run=False,
            batch_count=self._uploader.batch_count,
        )
        self._logger.info(
            "Indexing done: %d indexed, %d failed.",
            summary.total_indexed,
            summary.total_failed,
        )
        return summary

    async def check_connectivity(self, config: IndexConfig) -> None:
        self._logger.info("Testing search service access.")
        try:
            health = await self._client.cluster_health()
        except SearchIndexClientError as exc:
            self._logger.error("Search service might be unavailable: %s", exc)
            raise ConnectivityError(
                "cluster health probe failed",
                operation="cluster_health",
                index=config.index,
            ) from exc
        self._logger.info(
            "Status: %s, Nodes: %s",
            health.get("status"),
            health.get("number_of_nodes"),
        )

    async def load_records(self) -> list[ContentRecord]:
        records = await asyncio.to_thread(load_corpus, self._content_source)
        self._logger.info("%d pages and posts to index.", len(records))
        return records

    def transform_records(
        self,
        records: Sequence[ContentRecord],
        config: IndexConfig,
    ) -> list[SearchDocument]:
        return transform_all(records, config.default_author)


def _summary(
    *,
    candidates: int,
    results: Sequence[BulkOperationResult],
    index_was_reset: bool,
    dry_run: bool,
    batch_count: int = 0,
) -> SyncRunSummary:
    failures = tuple(result for result in results if not result.succeeded)
    return SyncRunSummary(
        total_candidates=candidates,
        total_indexed=len(results) - len(failures),
        total_failed=len(failures),
        index_was_reset=index_was_reset,
        dry_run=dry_run,
        batch_count=batch_count,
        failures=failures,
    )
