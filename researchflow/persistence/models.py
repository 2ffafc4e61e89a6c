"""Data models for persisted run state and research outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class StepStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


class WorkflowRun(BaseModel):
    """One execution of a pipeline for one job id."""

    run_id: str
    job_id: str
    kind: str = "research"
    status: RunStatus = RunStatus.PENDING
    progress: int = 0
    payload: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    summary: Optional[str] = None
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class StepRecord(BaseModel):
    """Checkpoint of an individual step execution."""

    run_id: str
    step_name: str
    status: StepStatus = StepStatus.NOT_STARTED
    attempts: int = 0
    result: Any = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SourceItem(BaseModel):
    """A search, extraction or agent artifact gathered during discovery."""

    run_id: str
    url: str
    title: str = ""
    content: str = ""
    excerpt: str = ""


class Insight(BaseModel):
    run_id: str
    title: str
    content: str = ""
    category: str = "general"
    confidence: float = 0.5
    order: int = 0


class ActionItem(BaseModel):
    run_id: str
    description: str
    priority: Literal["HIGH", "MEDIUM", "LOW"] = "MEDIUM"
    effort: int = 3


class LeadRecord(BaseModel):
    run_id: str
    name: str = "Unknown Contact"
    company: str = "Unknown Company"
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    pain_points: list[str] = Field(default_factory=list)
    suggested_dm: str = "Relevant Decision Maker"
    suggested_email: str = "Not available"


class LeadSummary(BaseModel):
    """Aggregate lead counter, one per run."""

    run_id: str
    total_found: int = 0
    updated_at: datetime = Field(default_factory=utcnow)
