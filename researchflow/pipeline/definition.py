"""Declarative stage lists for the research and lead pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from . import stages
from .context import StageContext

StageHandler = Callable[[StageContext], Awaitable[Any]]
StagePredicate = Callable[[StageContext], bool]


@dataclass(frozen=True)
class Stage:
    """A named pipeline stage and the progress it reaches when done."""

    name: str
    progress: int
    handler: StageHandler
    when: Optional[StagePredicate] = None

    def applies(self, ctx: StageContext) -> bool:
        return self.when is None or self.when(ctx)


@dataclass(frozen=True)
class PipelineDefinition:
    name: str
    stages: List[Stage] = field(default_factory=list)

    def stages_for(self, ctx: StageContext) -> List[Stage]:
        return [stage for stage in self.stages if stage.applies(ctx)]

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]


def _wants_leads(ctx: StageContext) -> bool:
    return ctx.request.wants_leads


RESEARCH_PIPELINE = PipelineDefinition(
    "research",
    [
        Stage("fetch-config", 10, stages.fetch_config),
        Stage("discover", 30, stages.discover),
        Stage("analyze", 70, stages.analyze),
        Stage("generate-actions", 90, stages.generate_actions),
        Stage("generate-leads", 95, stages.generate_leads, when=_wants_leads),
        Stage("finalize", 100, stages.finalize),
    ],
)

LEADS_PIPELINE = PipelineDefinition(
    "leads",
    [
        Stage("fetch-config", 10, stages.fetch_config),
        Stage("generate-leads", 90, stages.generate_leads),
        Stage("finalize", 100, stages.finalize),
    ],
)
