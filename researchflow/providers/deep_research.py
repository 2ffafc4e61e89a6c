"""Autonomous research jobs on the Gemini Interactions API."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..constants import DEEP_RESEARCH_AGENT, DEFAULT_REQUEST_TIMEOUT
from ..errors import ConfigurationError
from .base import AgentJob

logger = logging.getLogger(__name__)


class GeminiDeepResearchClient:
    """Start and inspect background deep-research interactions.

    A job runs for many minutes on Google's side; callers start it once and
    poll :meth:`get_job` until it reports ``completed`` or ``failed``.
    """

    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: Optional[str],
        agent: str = DEEP_RESEARCH_AGENT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Gemini API key not configured")
        self._api_key = api_key
        self.agent = agent
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"x-goog-api-key": self._api_key},
        )

    async def create_job(self, prompt: str) -> AgentJob:
        async with self._client() as client:
            response = await client.post(
                "/interactions",
                json={"input": prompt, "agent": self.agent, "background": True},
            )
            response.raise_for_status()
            job = AgentJob.model_validate(response.json())
        logger.info(f"[DeepResearch] Started interaction {job.id}")
        return job

    async def get_job(self, job_id: str) -> AgentJob:
        async with self._client() as client:
            response = await client.get(f"/interactions/{job_id}")
            response.raise_for_status()
            return AgentJob.model_validate(response.json())
