"""Source discovery strategies.

Every strategy gathers :class:`SourceItem` records for a run, persists them
through the store's deduplicating ``add_sources`` and returns a light
summary (url, title, excerpt) that later stages use to reload content.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..contracts import AutonomousDiscovery, IterativeDiscovery, StandardDiscovery
from ..errors import InputError, ProviderResponseError
from ..persistence import SourceItem
from ..polling import PollLoop
from ..providers.base import AgentJob, SearchResult
from ..providers.jina import filter_urls, make_excerpt
from .context import StageContext, step_name

logger = logging.getLogger(__name__)

NO_SOURCES = "no sources found"


def source_summary(items: Sequence[SourceItem]) -> List[Dict[str, str]]:
    return [{"url": s.url, "title": s.title, "excerpt": s.excerpt} for s in items]


def summary_urls(summary: Optional[Sequence[Dict[str, Any]]]) -> Optional[List[str]]:
    """URLs named by a discovery result, or ``None`` when there is none."""
    if not summary:
        return None
    return [entry["url"] for entry in summary if entry.get("url")]


def snippet_sources(run_id: str, results: Sequence[SearchResult]) -> List[SourceItem]:
    return [
        SourceItem(
            run_id=run_id,
            url=r.url,
            title=r.title or r.url,
            content=r.snippet,
            excerpt=r.snippet,
        )
        for r in results
    ]


async def persist_sources(ctx: StageContext, items: Sequence[SourceItem]) -> List[SourceItem]:
    """Truncate, store and return ``items``; zero items is an input error."""
    if not items:
        raise InputError(NO_SOURCES)
    limit = ctx.config.discovery.content_limit
    trimmed = [
        item.model_copy(update={"content": item.content[:limit]}) for item in items
    ]
    inserted = await ctx.store.add_sources(trimmed)
    logger.info(
        f"Stored {inserted} new source(s) of {len(trimmed)} for run_id={ctx.run_id}"
    )
    return trimmed


async def search_and_extract(
    ctx: StageContext, query: str, limit: int
) -> List[SourceItem]:
    """Search, drop blocked domains, and extract the remaining pages."""
    settings = await ctx.settings()
    search = ctx.providers.search(settings)
    extractor = ctx.providers.extraction(settings)

    results = await search.search(query, limit)
    allowed = set(filter_urls([r.url for r in results]))
    results = [r for r in results if r.url in allowed]
    if not results:
        return []

    extractions = await extractor.extract_multiple([r.url for r in results])
    items = [
        SourceItem(
            run_id=ctx.run_id,
            url=e.url,
            title=e.title or e.url,
            content=e.content,
            excerpt=e.excerpt or make_excerpt(e.content),
        )
        for e in extractions
        if e.success and e.content
    ]
    if not items:
        logger.warning(
            f"No page could be extracted for run_id={ctx.run_id}; using search snippets"
        )
        items = snippet_sources(ctx.run_id, results)
    return items


class StandardDiscoverer:
    """One search, then extraction of every allowed result."""

    def __init__(self, strategy: StandardDiscovery) -> None:
        self.strategy = strategy

    async def run(self, ctx: StageContext) -> Any:
        limit = self.strategy.search_limit or ctx.config.discovery.search_limit

        async def work():
            items = await search_and_extract(ctx, ctx.request.prompt, limit)
            return source_summary(await persist_sources(ctx, items))

        return await ctx.run_step(step_name("discover"), work)


class IterativeDiscoverer:
    """Search/extract rounds steered by gap analysis, then a synthesized report.

    Each round is its own checkpoint, so a restarted run picks up after the
    last finished round instead of searching again.
    """

    def __init__(self, strategy: IterativeDiscovery) -> None:
        self.strategy = strategy

    async def run(self, ctx: StageContext) -> Any:
        cfg = ctx.config.discovery
        max_iterations = self.strategy.max_iterations or cfg.max_iterations
        per_iteration = self.strategy.results_per_iteration or cfg.iteration_limit

        query = ctx.request.prompt
        completed = 0
        for iteration in range(1, max_iterations + 1):
            last = iteration == max_iterations

            async def round_work(query=query, iteration=iteration, last=last):
                return await self._round(ctx, query, iteration, per_iteration, last)

            state = await ctx.run_step(step_name("discover", iteration), round_work)
            completed = iteration
            await ctx.tracker.advance(ctx.run_id, 10 + (20 * iteration) // (max_iterations + 1))
            if not state.get("next_query"):
                break
            query = state["next_query"]

        async def synthesize():
            return await self._synthesize(ctx, completed)

        return await ctx.run_step(step_name("discover"), synthesize)

    async def _round(
        self, ctx: StageContext, query: str, iteration: int, limit: int, last: bool
    ) -> Dict[str, Any]:
        items = await search_and_extract(ctx, query, limit)
        if items:
            await persist_sources(ctx, items)
        logger.info(
            f"Iteration {iteration} for run_id={ctx.run_id} found {len(items)} source(s)"
        )

        next_query = None
        if not last:
            settings = await ctx.settings()
            llm = ctx.providers.inference(settings, ctx.retry_options)
            sources = await ctx.store.list_sources(ctx.run_id)
            corpus = "\n\n".join(f"{s.title}\n{s.content}" for s in sources)
            gaps = await llm.identify_gaps(ctx.request.prompt, corpus)
            if gaps.has_gaps and gaps.suggested_queries:
                next_query = gaps.suggested_queries[0]
        return {
            "query": query,
            "urls": [item.url for item in items],
            "next_query": next_query,
        }

    async def _synthesize(self, ctx: StageContext, iterations: int) -> Any:
        sources = [
            s
            for s in await ctx.store.list_sources(ctx.run_id)
            if not s.url.startswith("synthesis://")
        ]
        if not sources:
            raise InputError(NO_SOURCES)

        settings = await ctx.settings()
        llm = ctx.providers.inference(settings, ctx.retry_options)
        corpus = "\n\n---\n\n".join(
            f"Source: {s.title} ({s.url})\n{s.content}" for s in sources
        )
        report = await llm.synthesize_report(ctx.request.prompt, corpus, iterations)
        final = SourceItem(
            run_id=ctx.run_id,
            url=f"synthesis://{ctx.run_id}/final-report",
            title=f"Research Report: {ctx.request.prompt[:80]}",
            content=report,
            excerpt=make_excerpt(report),
        )
        await persist_sources(ctx, [final])
        return source_summary([*sources, final])


def agent_job_sources(run_id: str, job: AgentJob) -> List[SourceItem]:
    """Turn the outputs of a finished agent job into sources.

    Intermediate text parts become ``step-N`` items, reasoning parts
    ``thought-N`` items, and the text of the last output is the final report.
    """
    base = f"interaction://{job.id}"
    items: List[SourceItem] = []
    report_parts: List[str] = []
    for index, output in enumerate(job.outputs):
        is_last = index == len(job.outputs) - 1
        for part in output.parts:
            if part.thought:
                text = str(part.thought.get("summary") or part.thought.get("text") or "")
                if text:
                    items.append(
                        SourceItem(
                            run_id=run_id,
                            url=f"{base}/thought-{index + 1}",
                            title=f"Research Thought {index + 1}",
                            content=text,
                            excerpt=make_excerpt(text),
                        )
                    )
            if part.text:
                if is_last:
                    report_parts.append(part.text)
                else:
                    items.append(
                        SourceItem(
                            run_id=run_id,
                            url=f"{base}/step-{index + 1}",
                            title=f"Research Step {index + 1}",
                            content=part.text,
                            excerpt=make_excerpt(part.text),
                        )
                    )
    report = "\n\n".join(report_parts)
    if report:
        items.append(
            SourceItem(
                run_id=run_id,
                url=f"{base}/final-report",
                title="Deep Research Report",
                content=report,
                excerpt=make_excerpt(report),
            )
        )
    return items


class AutonomousDiscoverer:
    """Hand the research to a remote agent and poll it until it finishes."""

    def __init__(self, strategy: AutonomousDiscovery) -> None:
        self.strategy = strategy

    async def run(self, ctx: StageContext) -> Any:
        async def start_job():
            settings = await ctx.settings()
            client = ctx.providers.agent_jobs(settings)
            job = await client.create_job(ctx.request.prompt)
            logger.info(f"Started agent job {job.id} for run_id={ctx.run_id}")
            return {"job_id": job.id}

        started = await ctx.run_step("discover-start-agent", start_job)
        job_id = started["job_id"]

        async def collect():
            settings = await ctx.settings()
            client = ctx.providers.agent_jobs(settings)
            loop = PollLoop(
                ctx.run_id,
                tracker=ctx.tracker,
                is_cancelled=ctx.is_cancelled,
                config=ctx.config.poll,
                sleep=ctx.sleep,
            )
            job = await loop.poll_until_terminal(
                lambda: client.get_job(job_id),
                interval_seconds=self.strategy.interval_seconds,
                max_attempts=self.strategy.max_attempts,
            )
            if job.status not in ("completed", "done"):
                detail = (job.error or {}).get("message", "Unknown error")
                raise ProviderResponseError(f"Deep research {job.status}: {detail}")
            items = agent_job_sources(ctx.run_id, job)
            return source_summary(await persist_sources(ctx, items))

        return await ctx.run_step(step_name("discover"), collect)


class ReuseDiscoverer:
    """Reuse the sources a previous attempt of this run already stored."""

    async def run(self, ctx: StageContext) -> Any:
        async def reuse():
            sources = await ctx.store.list_sources(ctx.run_id)
            if not sources:
                raise InputError("No existing sources found to retry analysis with.")
            return source_summary(sources)

        return await ctx.run_step("discover-reuse", reuse)


_DISCOVERERS = {
    "standard": StandardDiscoverer,
    "iterative": IterativeDiscoverer,
    "autonomous": AutonomousDiscoverer,
}


def select_discoverer(ctx: StageContext):
    """Pick the discoverer for the run's strategy and retry options."""
    options = ctx.retry_options
    if options is not None and options.skip_discovery:
        return ReuseDiscoverer()
    strategy = ctx.request.strategy
    return _DISCOVERERS[strategy.kind](strategy)
