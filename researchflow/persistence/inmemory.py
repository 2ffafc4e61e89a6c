"""In-memory implementation of the research store."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from ..errors import AlreadyRunning, RunNotFound
from .models import (
    ActionItem,
    Insight,
    LeadRecord,
    LeadSummary,
    RunStatus,
    SourceItem,
    StepRecord,
    StepStatus,
    WorkflowRun,
    utcnow,
)
from .repository import ResearchStore


class InMemoryResearchStore(ResearchStore):
    """Store run state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never hold a live reference to stored state.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, WorkflowRun] = {}
        self._steps: Dict[Tuple[str, str], StepRecord] = {}
        self._sources: Dict[str, Dict[str, SourceItem]] = {}
        self._insights: Dict[str, Dict[int, Insight]] = {}
        self._actions: Dict[str, Dict[str, ActionItem]] = {}
        self._leads: Dict[str, Dict[Tuple[str, str], LeadRecord]] = {}
        self._lead_summaries: Dict[str, LeadSummary] = {}
        self._lead_increments: Set[Tuple[str, str]] = set()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        async with self._lock:
            if run.run_id in self._runs:
                raise AlreadyRunning(run.job_id, run.run_id)
            for existing in self._runs.values():
                if (
                    existing.job_id == run.job_id
                    and not existing.status.is_terminal
                ):
                    raise AlreadyRunning(run.job_id, existing.run_id)
            self._runs[run.run_id] = run.model_copy(deep=True)
            return run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self) -> list[WorkflowRun]:
        return [r.model_copy(deep=True) for r in self._runs.values()]

    async def get_active_run(self, job_id: str) -> WorkflowRun | None:
        for run in self._runs.values():
            if run.job_id == job_id and not run.status.is_terminal:
                return run.model_copy(deep=True)
        return None

    async def update_run(self, run_id: str, **fields: Any) -> WorkflowRun:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise RunNotFound(run_id)
            status = fields.get("status")
            if status is not None and not status.is_terminal:
                for other in self._runs.values():
                    if (
                        other.job_id == run.job_id
                        and other.run_id != run_id
                        and not other.status.is_terminal
                    ):
                        raise AlreadyRunning(run.job_id, other.run_id)
            updated = run.model_copy(update={**fields, "updated_at": utcnow()})
            self._runs[run_id] = updated
            return updated.model_copy(deep=True)

    async def claim_run(self, run_id: str, stale_before: datetime) -> WorkflowRun | None:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise RunNotFound(run_id)
            if run.status == RunStatus.COMPLETED or (
                run.status == RunStatus.IN_PROGRESS and run.updated_at >= stale_before
            ):
                return None
            for other in self._runs.values():
                if (
                    other.job_id == run.job_id
                    and other.run_id != run_id
                    and not other.status.is_terminal
                ):
                    raise AlreadyRunning(run.job_id, other.run_id)
            claimed = run.model_copy(
                update={
                    "status": RunStatus.IN_PROGRESS,
                    "error_message": None,
                    "cancel_requested": False,
                    "completed_at": None,
                    "updated_at": utcnow(),
                }
            )
            self._runs[run_id] = claimed
            return claimed.model_copy(deep=True)

    async def request_cancel(self, run_id: str) -> None:
        await self.update_run(run_id, cancel_requested=True)

    # ------------------------------------------------------------------
    # Steps
    async def get_step(self, run_id: str, step_name: str) -> StepRecord | None:
        step = self._steps.get((run_id, step_name))
        return step.model_copy(deep=True) if step else None

    async def list_steps(self, run_id: str) -> list[StepRecord]:
        return [
            s.model_copy(deep=True)
            for (rid, _), s in self._steps.items()
            if rid == run_id
        ]

    async def start_step(self, run_id: str, step_name: str) -> StepRecord:
        async with self._lock:
            step = self._steps.get((run_id, step_name))
            if step is None:
                step = StepRecord(run_id=run_id, step_name=step_name)
                self._steps[(run_id, step_name)] = step
            step.status = StepStatus.RUNNING
            step.attempts += 1
            step.error_message = None
            step.started_at = utcnow()
            return step.model_copy(deep=True)

    async def complete_step(self, run_id: str, step_name: str, result: Any) -> None:
        async with self._lock:
            step = self._steps.get((run_id, step_name))
            if step is None:
                step = StepRecord(run_id=run_id, step_name=step_name, attempts=1)
                self._steps[(run_id, step_name)] = step
            if step.status == StepStatus.DONE:
                return
            step.status = StepStatus.DONE
            step.result = result
            step.completed_at = utcnow()

    async def fail_step(self, run_id: str, step_name: str, error: str) -> None:
        async with self._lock:
            step = self._steps.get((run_id, step_name))
            if step is None or step.status == StepStatus.DONE:
                return
            step.status = StepStatus.FAILED
            step.error_message = error
            step.completed_at = utcnow()

    async def reset_failed_steps(self, run_id: str) -> int:
        count = 0
        async with self._lock:
            for (rid, _), step in self._steps.items():
                if rid == run_id and step.status in (
                    StepStatus.FAILED,
                    StepStatus.RUNNING,
                ):
                    step.status = StepStatus.NOT_STARTED
                    count += 1
        return count

    # ------------------------------------------------------------------
    # Outputs
    async def add_sources(self, items: Iterable[SourceItem]) -> int:
        inserted = 0
        async with self._lock:
            for item in items:
                bucket = self._sources.setdefault(item.run_id, {})
                if item.url in bucket:
                    continue
                bucket[item.url] = item.model_copy()
                inserted += 1
        return inserted

    async def list_sources(
        self, run_id: str, urls: Optional[Iterable[str]] = None
    ) -> list[SourceItem]:
        sources = list(self._sources.get(run_id, {}).values())
        if urls is not None:
            wanted = set(urls)
            sources = [s for s in sources if s.url in wanted]
        return [s.model_copy() for s in sources]

    async def add_insights(self, items: Iterable[Insight]) -> int:
        return await self._add_unique(self._insights, items, lambda i: i.order)

    async def list_insights(self, run_id: str) -> list[Insight]:
        values = self._insights.get(run_id, {}).values()
        return sorted((i.model_copy() for i in values), key=lambda i: i.order)

    async def add_actions(self, items: Iterable[ActionItem]) -> int:
        return await self._add_unique(self._actions, items, lambda a: a.description)

    async def list_actions(self, run_id: str) -> list[ActionItem]:
        return [a.model_copy() for a in self._actions.get(run_id, {}).values()]

    async def add_leads(self, items: Iterable[LeadRecord]) -> int:
        return await self._add_unique(
            self._leads, items, lambda lead: (lead.company, lead.name)
        )

    async def list_leads(self, run_id: str) -> list[LeadRecord]:
        return [lead.model_copy() for lead in self._leads.get(run_id, {}).values()]

    async def upsert_lead_summary(
        self, run_id: str, increment: int, key: Optional[str] = None
    ) -> LeadSummary:
        async with self._lock:
            summary = self._lead_summaries.get(run_id) or LeadSummary(run_id=run_id)
            if key is not None:
                if (run_id, key) in self._lead_increments:
                    return summary.model_copy()
                self._lead_increments.add((run_id, key))
            summary = summary.model_copy(
                update={
                    "total_found": summary.total_found + increment,
                    "updated_at": utcnow(),
                }
            )
            self._lead_summaries[run_id] = summary
            return summary.model_copy()

    async def record_lead_total(self, run_id: str, total: int) -> LeadSummary:
        async with self._lock:
            summary = LeadSummary(run_id=run_id, total_found=total)
            self._lead_summaries[run_id] = summary
            return summary.model_copy()

    async def get_lead_summary(self, run_id: str) -> LeadSummary | None:
        summary = self._lead_summaries.get(run_id)
        return summary.model_copy() if summary else None

    async def _add_unique(self, table: Dict[str, Dict[Any, Any]], items, key) -> int:
        inserted = 0
        async with self._lock:
            for item in items:
                bucket = table.setdefault(item.run_id, {})
                natural_key = key(item)
                if natural_key in bucket:
                    continue
                bucket[natural_key] = item.model_copy()
                inserted += 1
        return inserted


