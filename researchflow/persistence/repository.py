"""Repository abstraction for run state and research outputs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from .models import (
    ActionItem,
    Insight,
    LeadRecord,
    LeadSummary,
    SourceItem,
    StepRecord,
    WorkflowRun,
)


class ResearchStore(Protocol):
    """Protocol for persistence backends.

    Every write is scoped to a single run id. Output collections use
    create-many-with-dedup semantics on their natural key, so a step that
    crashed half way can safely write the same rows again.
    """

    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        """Persist a new run. Raises ``AlreadyRunning`` if the job is busy."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve the run by id."""

    async def list_runs(self) -> list[WorkflowRun]:
        """Return all persisted runs, oldest first."""

    async def get_active_run(self, job_id: str) -> WorkflowRun | None:
        """Return the non-terminal run holding ``job_id``, if any."""

    async def update_run(self, run_id: str, **fields: Any) -> WorkflowRun:
        """Update status, progress, error message or other run fields."""

    async def claim_run(self, run_id: str, stale_before: datetime) -> WorkflowRun | None:
        """Atomically move a run to IN_PROGRESS for one executor.

        Succeeds for PENDING, FAILED and CANCELLED runs, and for IN_PROGRESS
        runs not updated since ``stale_before`` (an abandoned executor).
        Returns ``None`` when another executor holds the run. Raises
        ``AlreadyRunning`` if a different run holds the job id.
        """

    async def request_cancel(self, run_id: str) -> None:
        """Set the cooperative cancellation flag."""

    async def get_step(self, run_id: str, step_name: str) -> StepRecord | None:
        """Return the checkpoint for ``step_name``."""

    async def list_steps(self, run_id: str) -> list[StepRecord]:
        """Return checkpoints in creation order."""

    async def start_step(self, run_id: str, step_name: str) -> StepRecord:
        """Mark the step RUNNING and increment its attempt count."""

    async def complete_step(self, run_id: str, step_name: str, result: Any) -> None:
        """Persist the result and mark the step DONE."""

    async def fail_step(self, run_id: str, step_name: str, error: str) -> None:
        """Mark the step FAILED with ``error``."""

    async def reset_failed_steps(self, run_id: str) -> int:
        """Move FAILED steps back to NOT_STARTED; returns how many."""

    async def add_sources(self, items: Iterable[SourceItem]) -> int:
        """Insert sources, skipping URLs already stored for the run."""

    async def list_sources(
        self, run_id: str, urls: Optional[Iterable[str]] = None
    ) -> list[SourceItem]:
        """Return sources for the run, optionally limited to ``urls``."""

    async def add_insights(self, items: Iterable[Insight]) -> int:
        """Insert insights, skipping duplicates by order."""

    async def list_insights(self, run_id: str) -> list[Insight]:
        """Return insights ordered by ``order``."""

    async def add_actions(self, items: Iterable[ActionItem]) -> int:
        """Insert action items, skipping duplicates by description."""

    async def list_actions(self, run_id: str) -> list[ActionItem]:
        """Return action items for the run."""

    async def add_leads(self, items: Iterable[LeadRecord]) -> int:
        """Insert leads, skipping duplicates by company and name."""

    async def list_leads(self, run_id: str) -> list[LeadRecord]:
        """Return leads for the run."""

    async def upsert_lead_summary(
        self, run_id: str, increment: int, key: Optional[str] = None
    ) -> LeadSummary:
        """Create the summary or add ``increment`` to its counter.

        An increment carrying a ``key`` is applied at most once per run, so a
        replayed step cannot count its leads twice.
        """

    async def record_lead_total(self, run_id: str, total: int) -> LeadSummary:
        """Create the summary or overwrite its counter with ``total``."""

    async def get_lead_summary(self, run_id: str) -> LeadSummary | None:
        """Return the lead summary for the run."""
