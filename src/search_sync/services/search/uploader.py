from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from search_sync.services.search.client import (
    SearchIndexClient,
    SearchIndexClientError,
    SearchIndexUnavailableError,
)
from search_sync.services.search.errors import BulkTransportError
from search_sync.services.search.types import (
    DEFAULT_CHUNK_SIZE,
    BulkOperationResult,
    SearchDocument,
)


def chunk_documents(
    documents: Sequence[SearchDocument],
    chunk_size: int,
) -> list[list[SearchDocument]]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")

    return [
        list(documents[start : start + chunk_size])
        for start in range(0, len(documents), chunk_size)
    ]


def build_bulk_operations(documents: Sequence[SearchDocument], index: str) -> list[dict[str, Any]]:
    operations: list[dict[str, Any]] = []
    for document in documents:
        operations.append({"index": {"_index": index, "_id": document.document_key}})
        operations.append(document.to_source())
    return operations


def _item_error_detail(error: Any) -> str:
    if isinstance(error, dict):
        reason = error.get("reason")
        error_type = error.get("type")
        if reason and error_type:
            return f"{error_type}: {reason}"
        return str(reason or error_type or error)
    return str(error)


def parse_bulk_response(
    documents: Sequence[SearchDocument],
    response: dict[str, Any],
) -> list[BulkOperationResult]:
    """Pair every document of a chunk with its item in the bulk response.

    The response lists items in request order. Documents without a matching
    item count as failures.
    """
    items = response.get("items")
    if not isinstance(items, list):
        items = []

    results: list[BulkOperationResult] = []
    for position, document in enumerate(documents):
        item = items[position] if position < len(items) else None
        outcome = item.get("index") if isinstance(item, dict) else None
        if not isinstance(outcome, dict):
            results.append(
                BulkOperationResult(
                    document_key=document.document_key,
                    succeeded=False,
                    status_code=None,
                    error_detail="missing from bulk response",
                )
            )
            continue

        status = outcome.get("status")
        status_code = status if isinstance(status, int) else None
        error = outcome.get("error")
        succeeded = error is None and status_code is not None and 200 <= status_code < 300
        results.append(
            BulkOperationResult(
                document_key=str(outcome.get("_id") or document.document_key),
                succeeded=succeeded,
                status_code=status_code,
                error_detail=None if succeeded else _item_error_detail(error or f"status {status}"),
            )
        )
    return results


class BatchUploader:
    def __init__(
        self,
        client: SearchIndexClient,
        *,
        max_concurrency: int = 1,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")

        self._client = client
        self._max_concurrency = max_concurrency
        self._logger = logger or logging.getLogger(__name__)
        self.batch_count = 0

    async def upload(
        self,
        documents: Sequence[SearchDocument],
        index: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> list[BulkOperationResult]:
        batches = chunk_documents(documents, chunk_size)
        self.batch_count = 0
        if not batches:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrency)
        aborted = asyncio.Event()

        async def _guarded(number: int, batch: list[SearchDocument]) -> list[BulkOperationResult]:
            async with semaphore:
                if aborted.is_set():
                    return []
                try:
                    return await self._upload_batch(batch, index=index, number=number, total=len(batches))
                except BulkTransportError:
                    aborted.set()
                    raise

        outcomes = await asyncio.gather(
            *(_guarded(number, batch) for number, batch in enumerate(batches, start=1)),
            return_exceptions=True,
        )

        # Results of batches that finished alongside a fatal one are dropped.
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        results: list[BulkOperationResult] = []
        for outcome in outcomes:
            results.extend(outcome)
        return results

    async def _upload_batch(
        self,
        batch: list[SearchDocument],
        *,
        index: str,
        number: int,
        total: int,
    ) -> list[BulkOperationResult]:
        self.batch_count += 1
        operations = build_bulk_operations(batch, index)
        try:
            response = await self._client.bulk(operations)
        except SearchIndexUnavailableError as exc:
            self._logger.error("Bulk request %d/%d could not reach the search service: %s", number, total, exc)
            raise BulkTransportError(
                f"bulk request {number}/{total} failed",
                operation="bulk",
                index=index,
            ) from exc
        except SearchIndexClientError as exc:
            self._logger.error("Bulk request %d/%d rejected: %s", number, total, exc)
            return [
                BulkOperationResult(
                    document_key=document.document_key,
                    succeeded=False,
                    status_code=exc.status_code,
                    error_detail=str(exc),
                )
                for document in batch
            ]

        results = parse_bulk_response(batch, response)
        succeeded = sum(1 for result in results if result.succeeded)
        for result in results:
            if not result.succeeded:
                self._logger.error(
                    "Failed to index %s: status=%s error=%s",
                    result.document_key,
                    result.status_code,
                    result.error_detail,
                )
        self._logger.info(
            "Batch %d/%d: successful indexing of %d of %d documents.",
            number,
            total,
            succeeded,
            len(batch),
        )
        return results
