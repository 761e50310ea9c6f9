from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Awaitable

from search_sync.services.search.client import (
    IndexNotFoundError,
    SearchIndexClient,
    SearchIndexClientError,
)
from search_sync.services.search.errors import SchemaError

INDEX_SETTINGS: dict[str, Any] = {
    "settings": {
        "analysis": {
            "filter": {
                "autocomplete_filter": {
                    "type": "edge_ngram",
                    "min_gram": 3,
                    "max_gram": 15,
                },
            },
            "analyzer": {
                "autocomplete": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "autocomplete_filter"],
                },
            },
        },
    },
}

INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        # english analyzer drops stop words; "docs" skips frequencies and positions
        "content": {
            "type": "text",
            "analyzer": "english",
            "index_options": "docs",
        },
        "title": {
            "type": "text",
            "analyzer": "autocomplete",
            "search_analyzer": "standard",
        },
        "tags": {"type": "keyword"},
        "categories": {"type": "keyword"},
    },
}


class SchemaState(str, Enum):
    ABSENT = "absent"
    CREATED = "created"
    CLOSED = "closed"
    OPEN = "open"
    READY = "ready"


class IndexSchemaManager:
    """Owns the lifecycle of the remote index: drop, create, settings and mappings.

    ``ensure_schema`` walks ABSENT -> CREATED -> CLOSED -> OPEN -> READY. An
    index that already exists enters at CREATED. Every step after the
    existence probe is fatal on failure.
    """

    def __init__(
        self,
        client: SearchIndexClient,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._logger = logger or logging.getLogger(__name__)
        self.state = SchemaState.ABSENT

    async def index_exists(self, index: str) -> bool:
        try:
            await self._client.get_mapping(index)
        except IndexNotFoundError:
            return False
        return True

    async def ensure_absent(self, index: str) -> bool:
        """Delete ``index`` if present. Never raises; returns whether a delete happened."""
        try:
            if not await self.index_exists(index):
                self._logger.info("Index %s does not exist, nothing to delete.", index)
                self.state = SchemaState.ABSENT
                return False
            self._logger.warning("Deleting index: %s", index)
            await self._client.delete_index(index)
        except SearchIndexClientError as exc:
            self._logger.error("Failed to delete index %s: %s", index, exc)
            return False

        self.state = SchemaState.ABSENT
        return True

    async def ensure_schema(self, index: str) -> SchemaState:
        try:
            exists = await self.index_exists(index)
        except SearchIndexClientError as exc:
            self._logger.warning("Could not probe index %s, assuming absent: %s", index, exc)
            exists = False

        if exists:
            self.state = SchemaState.CREATED
        else:
            self.state = SchemaState.ABSENT
            self._logger.info("Creating index: %s", index)
            await self._step("create", index, self._client.create_index(index))
            self.state = SchemaState.CREATED

        self._logger.info("Updating index: %s", index)
        await self._step("close", index, self._client.close_index(index))
        self.state = SchemaState.CLOSED
        await self._step("put_settings", index, self._client.put_settings(index, INDEX_SETTINGS))
        await self._step("open", index, self._client.open_index(index))
        self.state = SchemaState.OPEN
        await self._step("put_mapping", index, self._client.put_mapping(index, INDEX_MAPPINGS))
        self.state = SchemaState.READY
        return self.state

    async def _step(self, operation: str, index: str, call: Awaitable[Any]) -> None:
        try:
            await call
        except SearchIndexClientError as exc:
            self._logger.error("Unable to %s index %s: %s", operation, index, exc)
            raise SchemaError(
                f"schema step {operation!r} failed",
                operation=operation,
                index=index,
            ) from exc
