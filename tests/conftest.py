from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from search_sync.config import get_settings
from search_sync.db import get_engine
from search_sync.services.search.client import IndexNotFoundError
from search_sync.services.search.types import ContentRecord, IndexConfig, TagRef


class FakeSearchIndexClient:
    """In-memory stand-in for the search service that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.indices: dict[str, dict[str, dict[str, Any]]] = {}
        self.failures: dict[str, Exception] = {}
        self.item_failures: dict[str, int] = {}
        self.bulk_batches: list[list[str]] = []
        self.fail_bulk_calls: dict[int, Exception] = {}
        self.closed = False

    async def __aenter__(self) -> "FakeSearchIndexClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def cluster_health(self) -> dict[str, Any]:
        self._record("cluster_health")
        return {"status": "green", "number_of_nodes": 1}

    async def get_mapping(self, index: str) -> dict[str, Any]:
        self._record("get_mapping", index)
        if index not in self.indices:
            raise IndexNotFoundError(f"no such index [{index}]", status_code=404)
        return {index: {"mappings": {}}}

    async def create_index(self, index: str) -> dict[str, Any]:
        self._record("create_index", index)
        self.indices.setdefault(index, {})
        return {"acknowledged": True}

    async def delete_index(self, index: str) -> dict[str, Any]:
        self._record("delete_index", index)
        self.indices.pop(index, None)
        return {"acknowledged": True}

    async def close_index(self, index: str) -> dict[str, Any]:
        self._record("close_index", index)
        return {"acknowledged": True}

    async def open_index(self, index: str) -> dict[str, Any]:
        self._record("open_index", index)
        return {"acknowledged": True}

    async def put_settings(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        self._record("put_settings", index)
        return {"acknowledged": True}

    async def put_mapping(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        self._record("put_mapping", index)
        return {"acknowledged": True}

    async def bulk(self, operations: list[dict[str, Any]]) -> dict[str, Any]:
        self._record("bulk")
        call_number = len(self.bulk_batches) + 1
        actions = operations[0::2]
        sources = operations[1::2]
        self.bulk_batches.append([action["index"]["_id"] for action in actions])
        if call_number in self.fail_bulk_calls:
            raise self.fail_bulk_calls[call_number]

        items: list[dict[str, Any]] = []
        for action, source in zip(actions, sources):
            index = action["index"]["_index"]
            document_id = action["index"]["_id"]
            if document_id in self.item_failures:
                items.append(
                    {
                        "index": {
                            "_index": index,
                            "_id": document_id,
                            "status": self.item_failures[document_id],
                            "error": {"type": "mapper_parsing_exception", "reason": "failed to parse"},
                        }
                    }
                )
                continue

            stored = self.indices.setdefault(index, {})
            status = 200 if document_id in stored else 201
            stored[document_id] = source
            items.append({"index": {"_index": index, "_id": document_id, "status": status}})

        return {"errors": any("error" in item["index"] for item in items), "items": items}


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()


@pytest.fixture
def fake_client() -> FakeSearchIndexClient:
    return FakeSearchIndexClient()


@pytest.fixture
def index_config() -> IndexConfig:
    return IndexConfig(
        protocol="http",
        host="search.local",
        port=9200,
        username="elastic",
        password="secret",
        index="blog",
        default_author="Site Owner",
    )


@pytest.fixture
def make_record() -> Callable[..., ContentRecord]:
    base = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def _make(number: int, **overrides: Any) -> ContentRecord:
        values: dict[str, Any] = {
            "permalink": f"https://blog.example.com/{number:03d}/",
            "title": f"Post {number}",
            "raw": f"Body of post {number}",
            "excerpt": f"Excerpt {number}",
            "author": None,
            "date": base + timedelta(days=number),
            "updated": base + timedelta(days=number, hours=1),
            "tags": [TagRef(name="python", path="tags/python/")],
            "categories": [{"name": "notes", "path": "categories/notes/"}],
        }
        values.update(overrides)
        return ContentRecord(**values)

    return _make
