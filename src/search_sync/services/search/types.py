from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from search_sync.services.search.errors import BulkItemError

DEFAULT_CHUNK_SIZE = 50


@dataclass(frozen=True)
class TagRef:
    name: str
    path: str


@dataclass(frozen=True)
class ContentRecord:
    permalink: str
    title: str
    raw: str
    excerpt: str = ""
    author: str | None = None
    date: datetime | None = None
    updated: datetime | None = None
    # Anything other than a list or tuple reduces to None when transformed.
    tags: Any = ()
    categories: Any = ()
    published: bool = True
    layout: str = "post"
    kind: str = "post"


@dataclass(frozen=True)
class SearchDocument:
    document_key: str
    title: str
    content: str
    excerpt: str
    author: str
    url: str
    created_at: str
    updated_at: str
    tags: tuple[TagRef, ...] | None
    categories: tuple[TagRef, ...] | None

    def to_source(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "excerpt": self.excerpt,
            "author": self.author,
            "content": self.content,
            "url": self.url,
            "created": self.created_at,
            "updated": self.updated_at,
            "categories": _refs_to_source(self.categories),
            "tags": _refs_to_source(self.tags),
        }


def _refs_to_source(refs: tuple[TagRef, ...] | None) -> list[dict[str, str]] | None:
    if refs is None:
        return None
    return [{"name": ref.name, "path": ref.path} for ref in refs]


@dataclass(frozen=True)
class IndexConfig:
    protocol: str
    host: str
    port: int
    username: str
    password: str
    index: str
    default_author: str = ""
    verify_tls: bool = True
    timeout_seconds: float = 30.0

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


@dataclass(frozen=True)
class SyncOptions:
    dry_run: bool = False
    reset_index: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class BulkOperationResult:
    document_key: str
    succeeded: bool
    status_code: int | None
    error_detail: str | None = None


@dataclass(frozen=True)
class SyncRunSummary:
    total_candidates: int
    total_indexed: int
    total_failed: int
    index_was_reset: bool
    dry_run: bool
    batch_count: int = 0
    failures: tuple[BulkOperationResult, ...] = ()

    def raise_for_failures(self) -> None:
        if self.total_failed <= 0:
            return

        raise BulkItemError(self.failures)
