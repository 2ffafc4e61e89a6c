"""Capability provider interfaces and their result models."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Type, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class SearchResult(BaseModel):
    url: str
    title: str = ""
    snippet: str = ""
    position: int = 0


class ExtractionResult(BaseModel):
    url: str
    title: str = ""
    content: str = ""
    excerpt: str = ""
    success: bool = True
    error: Optional[str] = None


class ChatMessage(BaseModel):
    role: str
    content: str


class AnalyzedInsight(BaseModel):
    title: str
    content: str = ""
    category: str = "general"
    confidence: float = 0.5


class AnalysisResult(BaseModel):
    insights: List[AnalyzedInsight] = Field(default_factory=list)
    summary: str = ""
    trends: List[str] = Field(default_factory=list)


class GapAnalysis(BaseModel):
    has_gaps: bool = Field(default=False, alias="hasGaps")
    gaps: List[str] = Field(default_factory=list)
    suggested_queries: List[str] = Field(default_factory=list, alias="suggestedQueries")

    model_config = {"populate_by_name": True}


class AgentJobPart(BaseModel):
    text: Optional[str] = None
    thought: Optional[dict[str, Any]] = None


class AgentJobOutput(BaseModel):
    role: str = "model"
    parts: List[AgentJobPart] = Field(default_factory=list)


class AgentJob(BaseModel):
    """State of an autonomous, remotely executing research job."""

    id: str
    status: str = "processing"
    outputs: List[AgentJobOutput] = Field(default_factory=list)
    error: Optional[dict[str, Any]] = None


class SearchClient(Protocol):
    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Run a web search."""


class ExtractionClient(Protocol):
    async def extract(self, url: str) -> ExtractionResult:
        """Fetch ``url`` as clean text. Failures are reported, not raised."""

    async def extract_multiple(self, urls: Sequence[str]) -> list[ExtractionResult]:
        """Extract several URLs in order."""


class InferenceClient(Protocol):
    provider: str

    async def chat(self, messages: Sequence[ChatMessage], temperature: float = 0.5) -> str:
        """Return the model's reply to ``messages``."""

    async def analyze_content(self, topic: str, corpus: str) -> AnalysisResult:
        """Extract insights, a summary and trends from ``corpus``."""

    async def identify_gaps(self, query: str, corpus: str) -> GapAnalysis:
        """Report whether ``corpus`` leaves the query under-researched."""

    async def synthesize_report(self, query: str, corpus: str, iterations: int) -> str:
        """Write a final report from accumulated research."""

    async def generate_json(self, prompt: str, output_type: Type[T]) -> T:
        """Ask for a reply validated as ``output_type``."""


class AgentJobClient(Protocol):
    async def create_job(self, prompt: str) -> AgentJob:
        """Start a background research job."""

    async def get_job(self, job_id: str) -> AgentJob:
        """Fetch the current state of a job."""
