from __future__ import annotations

import json
from typing import Any, Protocol

import httpx

from search_sync.services.search.types import IndexConfig


class SearchIndexClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IndexNotFoundError(SearchIndexClientError):
    pass


class SearchIndexUnavailableError(SearchIndexClientError):
    pass


class SearchIndexClient(Protocol):
    async def cluster_health(self) -> dict[str, Any]: ...

    async def get_mapping(self, index: str) -> dict[str, Any]: ...

    async def create_index(self, index: str) -> dict[str, Any]: ...

    async def delete_index(self, index: str) -> dict[str, Any]: ...

    async def close_index(self, index: str) -> dict[str, Any]: ...

    async def open_index(self, index: str) -> dict[str, Any]: ...

    async def put_settings(self, index: str, body: dict[str, Any]) -> dict[str, Any]: ...

    async def put_mapping(self, index: str, body: dict[str, Any]) -> dict[str, Any]: ...

    async def bulk(self, operations: list[dict[str, Any]]) -> dict[str, Any]: ...


class HttpSearchIndexClient:
    """Elasticsearch-compatible REST client over ``httpx.AsyncClient``.

    Usage:
        async with HttpSearchIndexClient.from_config(config) as client:
            await client.cluster_health()
    """

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        timeout_seconds: float = 30.0,
        verify_tls: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, password)
        self._timeout_seconds = timeout_seconds
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            verify=verify_tls,
        )

    @classmethod
    def from_config(
        cls,
        config: IndexConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> HttpSearchIndexClient:
        return cls(
            base_url=config.base_url,
            username=config.username,
            password=config.password,
            timeout_seconds=config.timeout_seconds,
            verify_tls=config.verify_tls,
            http_client=http_client,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpSearchIndexClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def cluster_health(self) -> dict[str, Any]:
        return await self._request("GET", "/_cluster/health")

    async def get_mapping(self, index: str) -> dict[str, Any]:
        return await self._request("GET", f"/{index}/_mapping")

    async def create_index(self, index: str) -> dict[str, Any]:
        return await self._request("PUT", f"/{index}")

    async def delete_index(self, index: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/{index}")

    async def close_index(self, index: str) -> dict[str, Any]:
        return await self._request("POST", f"/{index}/_close")

    async def open_index(self, index: str) -> dict[str, Any]:
        return await self._request("POST", f"/{index}/_open")

    async def put_settings(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/{index}/_settings", json_body=body)

    async def put_mapping(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/{index}/_mapping", json_body=body)

    async def bulk(self, operations: list[dict[str, Any]]) -> dict[str, Any]:
        if not operations:
            return {"errors": False, "items": []}

        # The bulk endpoint rejects bodies without a trailing newline.
        payload = "".join(json.dumps(line, ensure_ascii=False) + "\n" for line in operations)
        return await self._request(
            "POST",
            "/_bulk",
            content=payload.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                json=json_body,
                content=content,
                headers=headers,
                auth=self._auth,
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise SearchIndexUnavailableError(
                f"{method} {path} failed: {exc}"
            ) from exc

        if response.status_code == 404:
            raise IndexNotFoundError(
                f"{method} {path} returned 404: {_error_reason(response)}",
                status_code=404,
            )
        if response.is_error:
            raise SearchIndexClientError(
                f"{method} {path} returned {response.status_code}: {_error_reason(response)}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchIndexClientError(
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise SearchIndexClientError(
                f"{method} {path} returned a non-object payload",
                status_code=response.status_code,
            )
        return payload


def _error_reason(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or "<empty>"

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        reason = error.get("reason") or error.get("type")
        if reason:
            return str(reason)
    if isinstance(error, str) and error:
        return error
    return json.dumps(payload)
