"""Entity store API client with bearer authentication and retry logic."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from commission_sync.config import get_settings
from commission_sync.errors import NotFoundError, StoreError

logger = structlog.get_logger(__name__)


class EntityAPIClient:
    """Async client for the entity store HTTP API.

    Collections live under ``/api/v1/entities/{entity}``; the caller behind a
    user token is resolved with ``/api/v1/auth/me``.

    Usage:
        async with EntityAPIClient() as store:
            orders = await store.filter("Pedido", {"status": "pago"})
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.store_api_url).rstrip("/")
        if token is None and settings.store_api_token is not None:
            token = settings.store_api_token.get_secret_value()
        self._token = token
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._max_retries = max_retries if max_retries is not None else settings.store_max_retries

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "EntityAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        bearer = token or self._token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    # === Generic Request Method ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        token: str | None = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """Make a request, retrying transport errors with exponential backoff."""
        client = await self._get_client()
        try:
            return await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(token),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, json, token, retry_count + 1)
            raise StoreError(f"Request failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        try:
            error_detail = response.json() if response.content else {}
        except ValueError:
            error_detail = {"raw": response.text[:500] if response.text else "empty response"}
        raise StoreError(
            f"Store API error: {response.status_code}",
            status_code=response.status_code,
            details=error_detail,
        )

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list or paged response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            items = result.get("items")
            if isinstance(items, list):
                return items
        return []

    # === Entity Endpoints ===

    async def list(self, entity: str) -> list[dict[str, Any]]:
        response = await self._request("GET", f"/api/v1/entities/{entity}")
        self._raise_for_status(response)
        return self._extract_items(response.json() if response.content else [])

    async def filter(self, entity: str, query: dict[str, Any]) -> list[dict[str, Any]]:
        params = {key: "" if value is None else value for key, value in query.items()}
        response = await self._request("GET", f"/api/v1/entities/{entity}", params=params)
        self._raise_for_status(response)
        return self._extract_items(response.json() if response.content else [])

    async def get(self, entity: str, record_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", f"/api/v1/entities/{entity}/{record_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        result = response.json() if response.content else None
        return result if isinstance(result, dict) else None

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("POST", f"/api/v1/entities/{entity}", json=data)
        self._raise_for_status(response)
        result = response.json() if response.content else {}
        if not isinstance(result, dict):
            raise StoreError(f"Invalid create response for {entity}")
        logger.debug("entity_created", entity=entity, record_id=result.get("id"))
        return result

    async def update(
        self, entity: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        response = await self._request(
            "PATCH", f"/api/v1/entities/{entity}/{record_id}", json=data
        )
        if response.status_code == 404:
            raise NotFoundError(f"{entity} {record_id} not found")
        self._raise_for_status(response)
        result = response.json() if response.content else {}
        return result if isinstance(result, dict) else {}

    # === Authentication ===

    async def authenticate(self, token: str) -> dict[str, Any] | None:
        """Resolve the user behind a caller's bearer token."""
        response = await self._request("GET", "/api/v1/auth/me", token=token)
        if response.status_code in (401, 403):
            return None
        self._raise_for_status(response)
        result = response.json() if response.content else None
        return result if isinstance(result, dict) else None
