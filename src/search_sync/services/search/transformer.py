from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
import hashlib
from typing import Any, Iterable

from search_sync.services.search.errors import MalformedRecordError
from search_sync.services.search.types import ContentRecord, SearchDocument, TagRef


def document_key(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


def to_iso8601(value: Any, *, field: str, permalink: str | None = None) -> str:
    """Render a timestamp the way ``Date.toISOString`` does: UTC, milliseconds, ``Z``.

    Naive datetimes are taken to be UTC already.
    """
    if not isinstance(value, datetime):
        raise MalformedRecordError(
            f"record {permalink!r} has no valid {field!r} timestamp",
            permalink=permalink,
        )

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def reduce_refs(value: Any) -> tuple[TagRef, ...] | None:
    if not isinstance(value, (list, tuple)):
        return None
    return tuple(_to_tag_ref(item) for item in value)


def _to_tag_ref(item: Any) -> TagRef:
    if isinstance(item, TagRef):
        return item
    if isinstance(item, Mapping):
        return TagRef(name=_text(item.get("name")), path=_text(item.get("path")))
    return TagRef(name=_text(getattr(item, "name", None)), path=_text(getattr(item, "path", None)))


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def transform(record: ContentRecord, default_author: str) -> SearchDocument:
    url = record.permalink
    if not url:
        raise MalformedRecordError("record has no permalink", permalink=url or None)

    return SearchDocument(
        document_key=document_key(url),
        title=record.title,
        content=record.raw,
        excerpt=record.excerpt,
        author=record.author or default_author,
        url=url,
        created_at=to_iso8601(record.date, field="date", permalink=url),
        updated_at=to_iso8601(record.updated, field="updated", permalink=url),
        tags=reduce_refs(record.tags),
        categories=reduce_refs(record.categories),
    )


def transform_all(records: Iterable[ContentRecord], default_author: str) -> list[SearchDocument]:
    return [transform(record, default_author) for record in records]
