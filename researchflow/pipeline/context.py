"""Per-run state shared by pipeline stages."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import ProviderSettings, ResearchFlowConfig
from ..contracts import LeadsRequest, ResearchRequest, RetryOptions, TriggerEvent
from ..persistence import ResearchStore
from ..progress import ProgressTracker
from ..providers import ProviderFactory
from ..steps import StepExecutor, WorkFn

SettingsLoader = Callable[[Optional[str]], Awaitable[ProviderSettings]]


def step_name(stage: str, iteration: Optional[int] = None) -> str:
    """Name of the checkpoint for ``stage`` (and loop ``iteration``)."""
    if iteration is None:
        return stage
    return f"{stage}-iteration-{iteration}"


@dataclass
class StageContext:
    """Everything a stage needs to do its work for one run."""

    run_id: str
    event: TriggerEvent
    store: ResearchStore
    executor: StepExecutor
    tracker: ProgressTracker
    providers: ProviderFactory
    config: ResearchFlowConfig
    settings_loader: SettingsLoader
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def retry_options(self) -> Optional[RetryOptions]:
        return self.event.retry_options

    @property
    def request(self) -> ResearchRequest:
        return self.event.research_request()

    @property
    def leads_request(self) -> LeadsRequest:
        return self.event.leads_request()

    @property
    def user_id(self) -> Optional[str]:
        return self.event.payload.get("user_id")

    async def settings(self) -> ProviderSettings:
        """Read provider settings fresh; never cached between stages."""
        return await self.settings_loader(self.user_id)

    async def run_step(self, name: str, work_fn: WorkFn) -> Any:
        return await self.executor.execute(self.run_id, name, work_fn)

    async def is_cancelled(self) -> bool:
        run = await self.store.get_run(self.run_id)
        return bool(run and run.cancel_requested)
