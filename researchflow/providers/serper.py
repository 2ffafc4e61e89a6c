"""Google search through the Serper.dev API."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..constants import DEFAULT_REQUEST_TIMEOUT
from ..errors import ConfigurationError
from .base import SearchResult

logger = logging.getLogger(__name__)


class SerperSearchClient:
    """Search client backed by ``https://google.serper.dev``."""

    base_url = "https://google.serper.dev"

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        country: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Serper API key not configured")
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout)
        self._country = country
        self._transport = transport

    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        body = {"q": query, "num": limit, "hl": "en"}
        if self._country:
            body["gl"] = self._country

        logger.info(f"[Serper] Searching: {query!r} (limit={limit})")
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.post(
                "/search",
                json=body,
                headers={"X-API-KEY": self._api_key, "Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()

        return [
            SearchResult(
                url=item.get("link", ""),
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
                position=item.get("position", index + 1),
            )
            for index, item in enumerate(data.get("organic") or [])
            if item.get("link")
        ]
