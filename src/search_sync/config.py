from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path
from typing import Any

import yaml

from search_sync.services.search.types import DEFAULT_CHUNK_SIZE, IndexConfig


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_list(value: str | None, *, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_site_config(path: str | None) -> dict[str, Any]:
    """Read the site YAML file; returns ``{}`` when no path is configured."""
    if not path:
        return {}

    site_config_path = Path(path)
    if not site_config_path.is_file():
        raise FileNotFoundError(f"Site config not found: {site_config_path}")

    parsed = yaml.safe_load(site_config_path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Site config must be a mapping: {site_config_path}")
    return parsed


def _first(*values: Any) -> str:
    for value in values:
        if value is not None and str(value).strip():
            return str(value)
    return ""


@dataclass(frozen=True)
class Settings:
    search_protocol: str
    search_host: str
    search_port: int
    search_user: str
    search_password: str
    search_index: str
    search_default_author: str
    search_chunk_size: int
    search_max_concurrency: int
    search_timeout_seconds: float
    search_verify_tls: bool
    content_database_url: str
    content_page_layouts: tuple[str, ...]
    db_echo: bool

    def index_config(self) -> IndexConfig:
        return IndexConfig(
            protocol=self.search_protocol,
            host=self.search_host,
            port=self.search_port,
            username=self.search_user,
            password=self.search_password,
            index=self.search_index,
            default_author=self.search_default_author,
            verify_tls=self.search_verify_tls,
            timeout_seconds=self.search_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    site_config = load_site_config(os.getenv("SEARCH_SITE_CONFIG"))
    section = site_config.get("elasticsearch") or {}
    if not isinstance(section, dict):
        raise ValueError("Site config 'elasticsearch' section must be a mapping")

    return Settings(
        search_protocol=_first(section.get("esProt"), os.getenv("SEARCH_PROTOCOL"), "https"),
        search_host=_first(section.get("esHost"), os.getenv("SEARCH_HOST"), "localhost"),
        search_port=_to_int(
            _first(section.get("esPort"), os.getenv("SEARCH_PORT"), "9200"),
            default=9200,
            minimum=1,
        ),
        search_user=_first(section.get("esUser"), os.getenv("SEARCH_USER")),
        search_password=_first(section.get("esPass"), os.getenv("SEARCH_PASSWORD")),
        search_index=_first(section.get("index"), os.getenv("SEARCH_INDEX")),
        search_default_author=_first(
            section.get("author"),
            os.getenv("SEARCH_DEFAULT_AUTHOR"),
            site_config.get("author"),
        ),
        search_chunk_size=_to_int(
            os.getenv("SEARCH_CHUNK_SIZE"),
            default=DEFAULT_CHUNK_SIZE,
            minimum=1,
        ),
        search_max_concurrency=_to_int(os.getenv("SEARCH_MAX_CONCURRENCY"), default=1, minimum=1),
        search_timeout_seconds=float(os.getenv("SEARCH_TIMEOUT_SECONDS", "30")),
        search_verify_tls=_to_bool(os.getenv("SEARCH_VERIFY_TLS"), default=True),
        content_database_url=os.getenv("CONTENT_DATABASE_URL", "sqlite+pysqlite:///content.db"),
        content_page_layouts=_to_list(os.getenv("CONTENT_PAGE_LAYOUTS"), default=("page",)),
        db_echo=_to_bool(os.getenv("CONTENT_DB_ECHO"), default=False),
    )
