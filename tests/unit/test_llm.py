"""Inference client tests driven by a pydantic-ai FunctionModel."""

from typing import Any, List

import pytest
from pydantic import BaseModel
from pydantic_ai.messages import ModelMessage, ModelResponse, TextPart, ToolCallPart
from pydantic_ai.models.function import AgentInfo, FunctionModel

from researchflow.errors import ConfigurationError, ProviderResponseError
from researchflow.providers.llm import (
    AgentInferenceClient,
    build_groq_client,
    gemini_model_name,
    groq_model_name,
)
from researchflow.providers.base import ChatMessage


def structured(args: Any, seen: list = None) -> FunctionModel:
    """Model that answers every request by calling the output tool with ``args``."""

    def respond(messages: List[ModelMessage], info: AgentInfo) -> ModelResponse:
        if seen is not None:
            seen.extend(part for message in messages for part in message.parts)
        return ModelResponse(parts=[ToolCallPart(info.output_tools[0].name, args)])

    return FunctionModel(respond)


def texting(text: str) -> FunctionModel:
    def respond(messages: List[ModelMessage], info: AgentInfo) -> ModelResponse:
        return ModelResponse(parts=[TextPart(text)])

    return FunctionModel(respond)


class Item(BaseModel):
    description: str


@pytest.mark.asyncio
async def test_chat_returns_text():
    client = AgentInferenceClient(texting("hello"), provider="test")
    reply = await client.chat(
        [ChatMessage(role="system", content="be brief"), ChatMessage(role="user", content="hi")]
    )
    assert reply == "hello"


@pytest.mark.asyncio
async def test_analyze_content_returns_structured_output():
    seen = []
    output = {
        "insights": [{"title": "Growth", "content": "Up 20%", "confidence": 0.8}],
        "summary": "Strong",
        "trends": ["EV"],
    }
    client = AgentInferenceClient(structured(output, seen), provider="test")

    result = await client.analyze_content("EV market", "source text")

    assert result.summary == "Strong"
    assert result.insights[0].title == "Growth"
    assert result.insights[0].category == "general"
    assert any("Senior Research Analyst" in str(getattr(p, "content", "")) for p in seen)


@pytest.mark.asyncio
async def test_analyze_content_rejects_malformed_output():
    client = AgentInferenceClient(structured({"insights": "nope"}), provider="test")
    with pytest.raises(ProviderResponseError):
        await client.analyze_content("EV market", "source text")


@pytest.mark.asyncio
async def test_identify_gaps_uses_camel_case_keys():
    output = {"hasGaps": True, "gaps": ["pricing"], "suggestedQueries": ["EV pricing 2025"]}
    gaps = await AgentInferenceClient(structured(output)).identify_gaps("EV", "text")
    assert gaps.has_gaps
    assert gaps.suggested_queries == ["EV pricing 2025"]


@pytest.mark.asyncio
async def test_identify_gaps_without_usable_output_reports_no_gaps():
    gaps = await AgentInferenceClient(structured({"gaps": 3})).identify_gaps("EV", "text")
    assert not gaps.has_gaps
    assert gaps.suggested_queries == []


@pytest.mark.asyncio
async def test_generate_json_validates_shape():
    client = AgentInferenceClient(structured({"response": [{"description": "Call"}]}))
    items = await client.generate_json("give items", List[Item])
    assert items == [Item(description="Call")]

    bad = AgentInferenceClient(structured({"response": [{"wrong": 1}]}))
    with pytest.raises(ProviderResponseError):
        await bad.generate_json("give items", List[Item])


def test_model_name_helpers():
    assert groq_model_name("gemini-2.0-flash") == "llama-3.3-70b-versatile"
    assert groq_model_name("mixtral-8x7b") == "mixtral-8x7b"
    assert gemini_model_name(None) == "gemini-2.0-flash"
    assert gemini_model_name("gemini-2.5-pro") == "gemini-2.5-pro"


def test_builders_require_keys():
    with pytest.raises(ConfigurationError):
        build_groq_client(None)
