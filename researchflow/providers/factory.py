"""Build capability clients from provider settings."""

from __future__ import annotations

import logging
from typing import Optional

from ..config import ProviderSettings
from ..contracts import RetryOptions
from ..errors import ConfigurationError
from .base import AgentJobClient, ExtractionClient, InferenceClient, SearchClient
from .deep_research import GeminiDeepResearchClient
from .jina import JinaExtractionClient
from .llm import build_gemini_client, build_groq_client
from .resolver import ProviderCandidate, ProviderFallbackResolver
from .serper import SerperSearchClient

logger = logging.getLogger(__name__)


def inference_candidates(
    settings: ProviderSettings, overrides: Optional[RetryOptions] = None
) -> list[ProviderCandidate[InferenceClient]]:
    """Order Gemini and Groq by preference, letting retry overrides win.

    An overridden model only applies to the overridden provider; the
    fallback keeps its own stored default.
    """
    primary = settings.llm_provider
    primary_model: Optional[str] = None
    if overrides is not None and overrides.provider:
        primary = overrides.provider
        primary_model = overrides.model
    elif overrides is not None and overrides.model:
        primary_model = overrides.model

    gemini_model = primary_model if primary == "gemini" and primary_model else settings.gemini_model
    groq_model = primary_model if primary == "groq" and primary_model else settings.groq_model

    gemini = ProviderCandidate(
        "gemini",
        lambda: build_gemini_client(settings.gemini_api_key, gemini_model),
        credential=settings.gemini_api_key,
    )
    groq = ProviderCandidate(
        "groq",
        lambda: build_groq_client(settings.groq_api_key, groq_model),
        credential=settings.groq_api_key,
    )
    return [gemini, groq] if primary == "gemini" else [groq, gemini]


class ProviderFactory:
    """Resolve the clients a stage needs from freshly read settings."""

    def inference(
        self, settings: ProviderSettings, overrides: Optional[RetryOptions] = None
    ) -> InferenceClient:
        primary, secondary = inference_candidates(settings, overrides)
        return ProviderFallbackResolver("inference").resolve(primary, secondary)

    def search(self, settings: ProviderSettings) -> SearchClient:
        candidate = ProviderCandidate(
            "serper",
            lambda: SerperSearchClient(settings.serper_api_key),
            credential=settings.serper_api_key,
        )
        return ProviderFallbackResolver("search").resolve(candidate)

    def extraction(self, settings: ProviderSettings) -> ExtractionClient:
        candidate = ProviderCandidate(
            "jina",
            lambda: JinaExtractionClient(settings.jina_api_key),
            requires_credential=False,
        )
        return ProviderFallbackResolver("extraction").resolve(candidate)

    def agent_jobs(self, settings: ProviderSettings) -> AgentJobClient:
        candidate = ProviderCandidate(
            "gemini-deep-research",
            lambda: GeminiDeepResearchClient(settings.gemini_api_key),
            credential=settings.gemini_api_key,
        )
        return ProviderFallbackResolver("autonomous agent").resolve(candidate)

    def require_inference(self, settings: ProviderSettings) -> None:
        if not settings.has_inference():
            raise ConfigurationError("No LLM API keys found. Please check your settings.")
