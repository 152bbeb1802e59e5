"""
HTTP client for the dropdown endpoints of the onboarding backend.

Only the lookups that feed selection fields live here; every row comes back
as the backend's dropdown DTO ``{id, key, value}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from onboarding_portal.config import AppConfig

logger = logging.getLogger(__name__)

DropdownRow = Dict[str, Any]


class LookupClientError(LookupError):
    """Transport or HTTP status failure while fetching dropdown rows."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LookupClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15,
        search_path: str = "/group/searchGL",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.search_path = search_path
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> "LookupClient":
        return cls(
            config.api_base_url,
            token=config.api_token,
            timeout=config.api_timeout_s,
            search_path=config.group_lead_search_path,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the shared async client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_rows(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[DropdownRow]:
        client = self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LookupClientError(
                f"GET {path} returned {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise LookupClientError(f"GET {path} failed: {exc}") from exc

        payload = response.json()
        if not isinstance(payload, list):
            raise LookupClientError(f"GET {path} returned {type(payload).__name__}, expected a list")
        return [row for row in payload if isinstance(row, dict) and "id" in row]

    async def get_group_leads(self) -> List[DropdownRow]:
        return await self._get_rows("/group/loadGL")

    async def get_lookup_items(self, category: str) -> List[DropdownRow]:
        """Items of a lookup category, e.g. ``DEPARTMENT``."""
        return await self._get_rows(f"/lookup/getCategoryItemByName/{category}")

    async def search_group_leads(self, term: str) -> List[DropdownRow]:
        logger.debug("Searching group leads for %r", term)
        return await self._get_rows(self.search_path, params={"searchTerm": term})
