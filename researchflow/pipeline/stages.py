"""Stage handlers of the research and lead pipelines."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import ConfigurationError, InputError
from ..persistence import ActionItem, Insight, LeadRecord, StepStatus
from ..providers.base import AnalysisResult
from ..providers.llm import truncate_content
from .context import StageContext
from .discovery import select_discoverer, summary_urls

logger = logging.getLogger(__name__)

MAX_ACTIONS = 10
MAX_LEADS = 10


class ActionDraft(BaseModel):
    """Action as proposed by the model."""

    description: str
    priority: str = "MEDIUM"
    effort: int = 3

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> str:
        value = str(value or "MEDIUM").upper()
        return value if value in ("HIGH", "MEDIUM", "LOW") else "MEDIUM"

    @field_validator("effort", mode="before")
    @classmethod
    def _clamp_effort(cls, value: Any) -> int:
        try:
            return min(max(int(value), 1), 5)
        except (TypeError, ValueError):
            return 3


class LeadDraft(BaseModel):
    """Lead as proposed by the model; missing fields get placeholders."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    pain_points: List[str] = Field(default_factory=list, alias="painPoints")
    suggested_dm: Optional[str] = Field(default=None, alias="suggestedDM")
    suggested_email: Optional[str] = Field(default=None, alias="suggestedEmail")

    def to_record(self, run_id: str) -> LeadRecord:
        data = {k: v for k, v in self.model_dump().items() if v is not None}
        return LeadRecord(run_id=run_id, **data)


def uses_search(ctx: StageContext) -> bool:
    options = ctx.retry_options
    if options is not None and options.skip_discovery:
        return False
    return ctx.request.strategy.kind in ("standard", "iterative")


async def fetch_config(ctx: StageContext) -> Any:
    """Check credentials up front and record which providers are usable."""

    async def work():
        settings = await ctx.settings()
        ctx.providers.require_inference(settings)
        if not ctx.event.is_leads_request:
            if uses_search(ctx) and not settings.serper_api_key:
                raise ConfigurationError(
                    "Serper API key not configured. Please add it in Settings."
                )
            if ctx.request.strategy.kind == "autonomous" and not settings.gemini_api_key:
                raise ConfigurationError(
                    "Autonomous research requires a Gemini API key."
                )
        return {
            "configured": settings.configured(),
            "llm_provider": settings.llm_provider,
        }

    return await ctx.run_step("fetch-config", work)


async def discover(ctx: StageContext) -> Any:
    return await select_discoverer(ctx).run(ctx)


async def analyze(ctx: StageContext) -> Any:
    """Distill the discovered sources into insights and a summary."""

    async def work():
        settings = await ctx.settings()
        sources = await ctx.store.list_sources(
            ctx.run_id, urls=summary_urls(ctx.outputs.get("discover"))
        )
        if not sources:
            raise InputError("No sources found to analyze")

        llm = ctx.providers.inference(settings, ctx.retry_options)
        limit = ctx.config.discovery.content_limit
        corpus = truncate_content(
            "\n\n---\n\n".join(
                f"Source: {s.title} ({s.url})\n{s.content}" for s in sources
            ),
            limit,
        )
        result = await llm.analyze_content(ctx.request.prompt, corpus)
        await ctx.store.add_insights(
            Insight(
                run_id=ctx.run_id,
                title=i.title,
                content=i.content,
                category=i.category,
                confidence=i.confidence,
                order=position,
            )
            for position, i in enumerate(result.insights)
        )
        logger.info(
            f"Analysis of {len(sources)} source(s) produced "
            f"{len(result.insights)} insight(s) for run_id={ctx.run_id}"
        )
        return result

    return await ctx.run_step("analyze", work)


def _analysis(ctx: StageContext) -> AnalysisResult:
    return AnalysisResult.model_validate(ctx.outputs.get("analyze") or {})


def _insight_lines(analysis: AnalysisResult) -> str:
    return "\n".join(f"- {i.title}: {i.content}" for i in analysis.insights)


async def generate_actions(ctx: StageContext) -> Any:
    async def work():
        settings = await ctx.settings()
        llm = ctx.providers.inference(settings, ctx.retry_options)
        analysis = _analysis(ctx)
        prompt = (
            f"Based on this research about \"{ctx.request.prompt}\":\n\n"
            f"Summary: {analysis.summary}\n\n"
            f"Key Insights:\n{_insight_lines(analysis)}\n\n"
            f"Generate up to {MAX_ACTIONS} actionable next steps, each with a "
            "priority (HIGH, MEDIUM or LOW) and an effort estimate from 1 to 5."
        )
        drafts = await llm.generate_json(prompt, List[ActionDraft])
        actions = [
            ActionItem(run_id=ctx.run_id, **draft.model_dump())
            for draft in drafts[:MAX_ACTIONS]
        ]
        await ctx.store.add_actions(actions)
        return actions

    return await ctx.run_step("generate-actions", work)


async def _lead_context(ctx: StageContext) -> Dict[str, Any]:
    """Topic, analysis and target run for lead generation.

    A lead trigger works from a finished research run: its prompt and its
    ``analyze`` checkpoint. Leads are always keyed to the research run.
    """
    if not ctx.event.is_leads_request:
        return {
            "run_id": ctx.run_id,
            "topic": ctx.request.prompt,
            "analysis": _analysis(ctx),
        }

    source_run_id = ctx.leads_request.source_run_id
    source = await ctx.store.get_run(source_run_id)
    if source is None:
        raise InputError(f"Source run {source_run_id} not found")
    step = await ctx.store.get_step(source_run_id, "analyze")
    if step is None or step.status != StepStatus.DONE:
        raise InputError(f"Run {source_run_id} has no finished analysis to generate leads from")
    return {
        "run_id": source_run_id,
        "topic": source.payload.get("prompt", ""),
        "analysis": AnalysisResult.model_validate(step.result or {}),
    }


async def generate_leads(ctx: StageContext) -> Any:
    async def work():
        settings = await ctx.settings()
        llm = ctx.providers.inference(settings, ctx.retry_options)
        lead_ctx = await _lead_context(ctx)
        analysis: AnalysisResult = lead_ctx["analysis"]
        prompt = (
            f"You are a B2B lead researcher. Using this research about "
            f"\"{lead_ctx['topic']}\":\n\n"
            f"Summary: {analysis.summary}\n\n"
            f"Key Insights:\n{_insight_lines(analysis)}\n\n"
            f"Identify up to {MAX_LEADS} potential leads (companies or people). "
            "For each lead give whatever contact details, industry, location, "
            "pain points, decision maker and outreach email you can infer."
        )
        drafts = await llm.generate_json(prompt, List[LeadDraft])
        target = lead_ctx["run_id"]
        leads = [draft.to_record(target) for draft in drafts[:MAX_LEADS]]
        await ctx.store.add_leads(leads)
        if ctx.event.is_leads_request:
            stored = await ctx.store.list_leads(target)
            summary = await ctx.store.record_lead_total(target, len(stored))
        else:
            summary = await ctx.store.upsert_lead_summary(
                target, len(leads), key=f"{ctx.run_id}/generate-leads"
            )
        logger.info(
            f"Generated {len(leads)} lead(s) for run_id={target}, "
            f"{summary.total_found} in total"
        )
        return {"run_id": target, "generated": len(leads), "total_found": summary.total_found}

    return await ctx.run_step("generate-leads", work)


async def finalize(ctx: StageContext) -> Any:
    """Write the run's summary."""

    async def work():
        if ctx.event.is_leads_request:
            leads = ctx.outputs.get("generate-leads") or {}
            summary = f"Generated {leads.get('generated', 0)} lead(s)"
        else:
            summary = _analysis(ctx).summary
        await ctx.store.update_run(ctx.run_id, summary=summary)
        return {"summary": summary}

    return await ctx.run_step("finalize", work)
