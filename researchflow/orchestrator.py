"""Run lifecycle: create or resume a run and walk its pipeline."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Set

from pydantic import ValidationError

from .config import ResearchFlowConfig, load_config, load_provider_settings
from .contracts import TriggerEvent
from .errors import AlreadyRunning, InputError, RunCancelled
from .persistence import ResearchStore, RunStatus, WorkflowRun, get_store
from .persistence.models import utcnow
from .pipeline import LEADS_PIPELINE, RESEARCH_PIPELINE, PipelineDefinition, StageContext
from .pipeline.context import SettingsLoader
from .progress import ProgressTracker
from .providers import ProviderFactory
from .steps import StepExecutor

logger = logging.getLogger(__name__)


class ResearchOrchestrator:
    """Drive research runs from trigger to a terminal status.

    One call to :meth:`start` runs one pipeline to completion inside the
    calling task. Triggering a ``run_id`` that already exists resumes it:
    failed checkpoints are reset and finished ones return their cached
    result, so only the remaining work is done.
    """

    def __init__(
        self,
        store: Optional[ResearchStore] = None,
        providers: Optional[ProviderFactory] = None,
        config: Optional[ResearchFlowConfig] = None,
        settings_loader: Optional[SettingsLoader] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or load_config()
        self.store = store or get_store(config=self.config)
        self.providers = providers or ProviderFactory()
        self.settings_loader = settings_loader or load_provider_settings
        self.tracker = ProgressTracker(self.store)
        self.executor = StepExecutor(self.store, self.config.retry)
        self._sleep = sleep
        self._in_flight: Set[str] = set()

    def pipeline_for(self, event: TriggerEvent) -> PipelineDefinition:
        return LEADS_PIPELINE if event.is_leads_request else RESEARCH_PIPELINE

    async def start(self, event: TriggerEvent) -> WorkflowRun:
        """Create (or resume) the run for ``event`` and execute its stages.

        Raises:
            AlreadyRunning: Another run for the same job id is active.
            InputError: The payload does not describe a valid request.
        """
        self._validate(event)
        if event.run_id in self._in_flight:
            raise AlreadyRunning(event.job_id, event.run_id)
        self._in_flight.add(event.run_id)
        try:
            run = await self._open_run(event)
            if run.status == RunStatus.COMPLETED:
                logger.info(f"Run {run.run_id} already completed; ignoring trigger")
                return run
            return await self._walk(run, event)
        finally:
            self._in_flight.discard(event.run_id)

    async def cancel(self, run_id: str) -> None:
        """Ask a run to stop at its next stage boundary or poll wake-up."""
        await self.store.request_cancel(run_id)
        logger.info(f"Cancellation requested for run_id={run_id}")

    def _validate(self, event: TriggerEvent) -> None:
        try:
            if event.is_leads_request:
                event.leads_request()
            else:
                event.research_request()
        except ValidationError as exc:
            raise InputError(f"Invalid payload for {event.name}: {exc}") from exc

    async def _open_run(self, event: TriggerEvent) -> WorkflowRun:
        existing = await self.store.get_run(event.run_id)
        if existing is not None and existing.status == RunStatus.COMPLETED:
            return existing
        if existing is None:
            active = await self.store.get_active_run(event.job_id)
            if active is not None:
                raise AlreadyRunning(event.job_id, active.run_id)
            await self.store.create_run(
                WorkflowRun(
                    run_id=event.run_id,
                    job_id=event.job_id,
                    kind=self.pipeline_for(event).name,
                    payload=event.payload,
                )
            )
            logger.info(f"Created run_id={event.run_id} for job_id={event.job_id}")

        stale_before = utcnow() - timedelta(seconds=self.config.run_lease_seconds)
        run = await self.store.claim_run(event.run_id, stale_before)
        if run is None:
            logger.warning(f"Run {event.run_id} is already executing; ignoring trigger")
            raise AlreadyRunning(event.job_id, event.run_id)
        if existing is not None:
            reset = await self.store.reset_failed_steps(event.run_id)
            logger.info(
                f"Resuming run_id={event.run_id} ({reset} step(s) reset for retry)"
            )
        return run

    async def _walk(self, run: WorkflowRun, event: TriggerEvent) -> WorkflowRun:
        pipeline = self.pipeline_for(event)
        ctx = StageContext(
            run_id=run.run_id,
            event=event,
            store=self.store,
            executor=self.executor,
            tracker=self.tracker,
            providers=self.providers,
            config=self.config,
            settings_loader=self.settings_loader,
            sleep=self._sleep,
        )

        try:
            for stage in pipeline.stages_for(ctx):
                if await ctx.is_cancelled():
                    raise RunCancelled(run.run_id)
                logger.debug(f"Stage {stage.name} starting for run_id={run.run_id}")
                ctx.outputs[stage.name] = await stage.handler(ctx)
                await self.tracker.advance(run.run_id, stage.progress)
        except RunCancelled as exc:
            logger.info(f"Run {run.run_id} cancelled")
            return await self.store.update_run(
                run.run_id, status=RunStatus.CANCELLED, error_message=str(exc)
            )
        except Exception as exc:
            logger.error(f"Run {run.run_id} failed: {exc}")
            return await self.store.update_run(
                run.run_id, status=RunStatus.FAILED, error_message=str(exc)
            )

        logger.info(f"Run {run.run_id} completed")
        return await self.store.update_run(
            run.run_id,
            status=RunStatus.COMPLETED,
            progress=100,
            completed_at=utcnow(),
        )
