"""Page extraction through the Jina reader (``r.jina.ai``)."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable, Optional, Sequence
from urllib.parse import urlparse

import httpx

from ..constants import BLOCKED_DOMAINS, DEFAULT_REQUEST_TIMEOUT
from .base import ExtractionResult

logger = logging.getLogger(__name__)

_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_HEADINGS = re.compile(r"^#.+$", re.MULTILINE)


def filter_urls(urls: Iterable[str], blocked: Sequence[str] = BLOCKED_DOMAINS) -> list[str]:
    """Drop malformed URLs and social/video sites that extract poorly."""
    kept = []
    for url in urls:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if parsed.scheme not in ("http", "https") or not host:
            continue
        if any(host == d or host.endswith("." + d) for d in blocked):
            continue
        kept.append(url)
    return kept


def make_excerpt(text: str, limit: int = 500) -> str:
    clean = _HEADINGS.sub("", text).strip()
    return clean[:limit] + ("..." if len(clean) > limit else "")


class JinaExtractionClient:
    """Convert web pages to Markdown for LLM consumption.

    Works without a key on the free tier; ``api_key`` raises the rate limit.
    Extraction failures are reported through ``success=False`` rather than
    raised, so one dead link never fails a whole batch.
    """

    base_url = "https://r.jina.ai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        rate_limit_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout)
        self.rate_limit_delay = rate_limit_delay
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "text/plain",
            "User-Agent": "Mozilla/5.0 (compatible; researchflow/0.1)",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def extract(self, url: str) -> ExtractionResult:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await self._extract(client, url)

    async def _extract(self, client: httpx.AsyncClient, url: str) -> ExtractionResult:
        try:
            response = await client.get(f"{self.base_url}/{url}", headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(f"[Jina] Extraction failed for {url}: {exc}")
            return ExtractionResult(url=url, success=False, error=str(exc))

        markdown = response.text
        match = _H1.search(markdown)
        if match:
            title = match.group(1).strip()
        else:
            first_line = markdown.strip().split("\n", 1)[0] if markdown.strip() else ""
            title = first_line[:100] or "Untitled"
        return ExtractionResult(
            url=url, title=title, content=markdown, excerpt=make_excerpt(markdown)
        )

    async def extract_multiple(self, urls: Sequence[str]) -> list[ExtractionResult]:
        results = []
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for index, url in enumerate(urls):
                logger.info(f"[Jina] Extracting ({index + 1}/{len(urls)}): {url}")
                results.append(await self._extract(client, url))
                if index < len(urls) - 1 and self.rate_limit_delay:
                    await asyncio.sleep(self.rate_limit_delay)
        return results
