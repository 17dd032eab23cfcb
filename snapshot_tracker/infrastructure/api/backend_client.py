"""
Portfolio backend HTTP client.
Thin JSON transport over httpx; every failure surfaces as TransportError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from snapshot_tracker.domain.errors import TransportError

logger = logging.getLogger(__name__)


class BackendClient:
    def __init__(
        self,
        api_base_url: str,
        api_token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.api_token = (api_token or "").strip() or None
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.api_base_url}{path}"
        try:
            response = await self._get_client().request(
                method,
                url,
                headers=self._headers(),
                params=params,
                json=json,
            )
        except httpx.HTTPError as exc:
            logger.warning("Backend %s %s failed: %s", method, path, exc)
            raise TransportError(f"{method} {path} failed: {exc}", url=url) from exc

        if response.status_code >= 400:
            logger.warning("Backend %s %s returned %s", method, path, response.status_code)
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                url=url,
            ) from exc

    async def get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        return await self.request_json("GET", path, params=params)

    async def post_json(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return await self.request_json("POST", path, params=params, json=json)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
