"""LLM inference on top of pydantic-ai agents."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Type, TypeVar, Union

from pydantic_ai import Agent
from pydantic_ai.exceptions import UnexpectedModelBehavior, UserError
from pydantic_ai.models import Model

from ..constants import DEFAULT_GEMINI_MODEL, DEFAULT_GROQ_MODEL
from ..errors import ConfigurationError, ProviderResponseError
from .base import AnalysisResult, ChatMessage, GapAnalysis

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTENT_LIMIT = 30_000
GAP_CONTENT_LIMIT = 8_000

ANALYST_PROMPT = """You are a Senior Research Analyst. Analyze the provided content and extract:
1. Key insights with titles, detailed content, categories, and confidence scores (0-1)
2. A comprehensive summary
3. Identified trends"""

GAP_PROMPT = """You are a Research Gap Analyst. Analyze the provided research content and identify:
1. Whether there are significant gaps in the information
2. What specific information is missing
3. Suggested search queries to fill those gaps

Be concise. Only suggest gaps if they are significant and would meaningfully improve the research.
Limit to maximum 3 gaps and 3 follow-up queries."""

REPORT_PROMPT = """You are a Senior Research Analyst creating a final research report.
Synthesize all the gathered information into a comprehensive, well-structured report.

Requirements:
- Use clear headings and subheadings
- Include key statistics and facts
- Cite sources where possible (use [Source: URL] format)
- Highlight conflicting viewpoints if any
- Provide actionable conclusions
- Use Markdown formatting"""

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Follow the user's instructions exactly."
)


def truncate_content(content: str, limit: int = CONTENT_LIMIT) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "\n...[Content truncated]..."


class AgentInferenceClient:
    """Inference client that drives a pydantic-ai :class:`Agent`.

    ``model`` is anything pydantic-ai accepts: a ``Model`` instance or a
    ``"provider:model"`` string. Structured replies come from the agent's
    ``output_type``; a reply that never validates is a
    :class:`ProviderResponseError`.
    """

    def __init__(self, model: Union[Model, str], provider: str = "custom") -> None:
        self.model = model
        self.provider = provider

    async def _run(
        self,
        prompt: str,
        output_type: Any = str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.5,
    ) -> Any:
        agent = Agent(self.model, output_type=output_type, system_prompt=system_prompt)
        try:
            result = await agent.run(prompt, model_settings={"temperature": temperature})
        except UnexpectedModelBehavior as exc:
            raise ProviderResponseError(
                f"Malformed response from {self.provider}: {exc}"
            ) from exc
        return result.output

    async def chat(self, messages: Sequence[ChatMessage], temperature: float = 0.5) -> str:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        turns = [m for m in messages if m.role != "system"]
        if len(turns) == 1:
            prompt = turns[0].content
        else:
            prompt = "\n\n".join(f"{m.role}: {m.content}" for m in turns)
        return await self._run(
            prompt, system_prompt=system or DEFAULT_SYSTEM_PROMPT, temperature=temperature
        )

    async def generate_text(self, prompt: str, temperature: float = 0.5) -> str:
        return await self._run(prompt, temperature=temperature)

    async def generate_json(self, prompt: str, output_type: Type[T]) -> T:
        return await self._run(prompt, output_type=output_type)

    async def analyze_content(self, topic: str, corpus: str) -> AnalysisResult:
        return await self._run(
            f"Research Topic: {topic}\n\nContent to analyze:\n{truncate_content(corpus)}",
            output_type=AnalysisResult,
            system_prompt=ANALYST_PROMPT,
            temperature=0.3,
        )

    async def identify_gaps(self, query: str, corpus: str) -> GapAnalysis:
        try:
            return await self._run(
                f"Original Research Query: {query}\n\n"
                f"Current Research Content:\n{corpus[:GAP_CONTENT_LIMIT]}",
                output_type=GapAnalysis,
                system_prompt=GAP_PROMPT,
                temperature=0.3,
            )
        except ProviderResponseError as exc:
            logger.warning(f"[{self.provider}] No usable gap analysis, stopping iteration: {exc}")
            return GapAnalysis()

    async def synthesize_report(self, query: str, corpus: str, iterations: int) -> str:
        return await self._run(
            f"Research Query: {query}\n\n"
            f"This report is based on {iterations} research iteration(s).\n\n"
            f"Research Content:\n{truncate_content(corpus)}",
            system_prompt=REPORT_PROMPT,
            temperature=0.5,
        )


def groq_model_name(model: Optional[str]) -> str:
    """Keep ``model`` only when it names a model Groq serves."""
    if model and ("llama" in model or "mixtral" in model):
        return model
    return DEFAULT_GROQ_MODEL


def gemini_model_name(model: Optional[str]) -> str:
    if not model or "gemini-2.5-flash-preview-05-20" in model:
        return DEFAULT_GEMINI_MODEL
    return model


def build_gemini_client(api_key: Optional[str], model: Optional[str] = None) -> AgentInferenceClient:
    if not api_key:
        raise ConfigurationError("Gemini API key not configured")
    try:
        from pydantic_ai.models.google import GoogleModel
        from pydantic_ai.providers.google import GoogleProvider

        llm = GoogleModel(gemini_model_name(model), provider=GoogleProvider(api_key=api_key))
    except (ImportError, UserError) as exc:
        raise ConfigurationError(f"Cannot build Gemini model: {exc}") from exc
    return AgentInferenceClient(llm, provider="gemini")


def build_groq_client(api_key: Optional[str], model: Optional[str] = None) -> AgentInferenceClient:
    if not api_key:
        raise ConfigurationError("Groq API key not configured")
    try:
        from pydantic_ai.models.groq import GroqModel
        from pydantic_ai.providers.groq import GroqProvider

        llm = GroqModel(groq_model_name(model), provider=GroqProvider(api_key=api_key))
    except (ImportError, UserError) as exc:
        raise ConfigurationError(f"Cannot build Groq model: {exc}") from exc
    return AgentInferenceClient(llm, provider="groq")
