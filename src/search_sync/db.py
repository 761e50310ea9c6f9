from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase

from search_sync.config import get_settings


class Base(DeclarativeBase):
    pass


@lru_cache
def get_engine(database_url: str | None = None) -> Engine:
    """Engine for the content store; one per URL, defaulting to the configured one."""
    settings = get_settings()
    return create_engine(
        database_url or settings.content_database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
    )
