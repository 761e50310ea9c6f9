from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from search_sync.models import ContentRecordRow
from search_sync.services.search.types import ContentRecord

DEFAULT_PAGE_LAYOUTS = ("page",)


class ContentSource(Protocol):
    def published_articles(self) -> Sequence[ContentRecord]: ...

    def pages(self) -> Sequence[ContentRecord]: ...


def load_corpus(source: ContentSource) -> list[ContentRecord]:
    """Published articles followed by allow-listed pages."""
    return [*source.published_articles(), *source.pages()]


class InMemoryContentSource:
    def __init__(
        self,
        records: Iterable[ContentRecord],
        *,
        page_layouts: Iterable[str] = DEFAULT_PAGE_LAYOUTS,
    ) -> None:
        self._records = list(records)
        self._page_layouts = frozenset(page_layouts)

    def published_articles(self) -> list[ContentRecord]:
        return [
            record
            for record in self._records
            if record.kind == "post" and record.published
        ]

    def pages(self) -> list[ContentRecord]:
        return [
            record
            for record in self._records
            if record.kind == "page" and record.layout in self._page_layouts
        ]


def _to_record(row: ContentRecordRow) -> ContentRecord:
    return ContentRecord(
        permalink=row.permalink,
        title=row.title,
        raw=row.raw,
        excerpt=row.excerpt,
        author=row.author,
        date=row.date,
        updated=row.updated,
        tags=row.tags,
        categories=row.categories,
        published=row.published,
        layout=row.layout,
        kind=row.kind,
    )


class SqlContentSource:
    def __init__(
        self,
        engine: Engine,
        *,
        page_layouts: Iterable[str] = DEFAULT_PAGE_LAYOUTS,
    ) -> None:
        self._engine = engine
        self._page_layouts = tuple(page_layouts)

    def published_articles(self) -> list[ContentRecord]:
        statement = (
            select(ContentRecordRow)
            .where(ContentRecordRow.kind == "post")
            .where(ContentRecordRow.published.is_(True))
            .order_by(ContentRecordRow.date.asc(), ContentRecordRow.permalink.asc())
        )
        return self._fetch(statement)

    def pages(self) -> list[ContentRecord]:
        if not self._page_layouts:
            return []

        statement = (
            select(ContentRecordRow)
            .where(ContentRecordRow.kind == "page")
            .where(ContentRecordRow.layout.in_(self._page_layouts))
            .order_by(ContentRecordRow.date.asc(), ContentRecordRow.permalink.asc())
        )
        return self._fetch(statement)

    def _fetch(self, statement) -> list[ContentRecord]:
        with Session(self._engine) as session:
            return [_to_record(row) for row in session.scalars(statement).all()]
