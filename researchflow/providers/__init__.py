"""Capability providers: search, extraction, inference and agent jobs."""

from .base import (
    AgentJob,
    AgentJobClient,
    AnalysisResult,
    AnalyzedInsight,
    ChatMessage,
    ExtractionClient,
    ExtractionResult,
    GapAnalysis,
    InferenceClient,
    SearchClient,
    SearchResult,
)
from .factory import ProviderFactory, inference_candidates
from .resolver import ProviderCandidate, ProviderFallbackResolver

__all__ = [
    "AgentJob",
    "AgentJobClient",
    "AnalysisResult",
    "AnalyzedInsight",
    "ChatMessage",
    "ExtractionClient",
    "ExtractionResult",
    "GapAnalysis",
    "InferenceClient",
    "SearchClient",
    "SearchResult",
    "ProviderCandidate",
    "ProviderFactory",
    "ProviderFallbackResolver",
    "inference_candidates",
]
