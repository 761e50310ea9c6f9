from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from search_sync.db import Base


class ContentRecordRow(Base):
    __tablename__ = "content_records"

    permalink: Mapped[str] = mapped_column(String(512), primary_key=True)
    kind: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        server_default=text("'post'"),
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False, server_default=text("''"))
    raw: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    excerpt: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    author: Mapped[str | None] = mapped_column(String(256), nullable=True)
    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
    )
    layout: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        server_default=text("'post'"),
    )
    tags: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    categories: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
