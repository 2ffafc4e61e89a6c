"""SQLModel implementation of the research store.

Works with any async SQLAlchemy URL; ``sqlite+aiosqlite`` and
``postgresql+asyncpg`` are the supported drivers.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional

from sqlalchemy import JSON, Column, Text, UniqueConstraint, and_, or_, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlmodel import Field, SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

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


class RunRow(SQLModel, table=True):
    """Represents an instance of a pipeline execution."""

    __tablename__ = "research_runs"

    run_id: str = Field(primary_key=True)
    job_id: str = Field(index=True)
    # Set while the run is non-terminal; the unique index allows one active
    # run per job id because NULLs never collide.
    active_job_id: Optional[str] = Field(default=None, unique=True)
    kind: str = "research"
    status: str = Field(default=RunStatus.PENDING.value)
    progress: int = 0
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text))
    summary: Optional[str] = Field(default=None, sa_column=Column(Text))
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class StepRow(SQLModel, table=True):
    """Tracks execution details for a single step."""

    __tablename__ = "run_steps"
    __table_args__ = (UniqueConstraint("run_id", "step_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    step_name: str
    status: str = Field(default=StepStatus.NOT_STARTED.value)
    attempts: int = 0
    result: Any = Field(default=None, sa_column=Column(JSON))
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SourceRow(SQLModel, table=True):
    __tablename__ = "sources"
    __table_args__ = (UniqueConstraint("run_id", "url"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    url: str
    title: str = ""
    content: str = Field(default="", sa_column=Column(Text))
    excerpt: str = Field(default="", sa_column=Column(Text))


class InsightRow(SQLModel, table=True):
    __tablename__ = "insights"
    __table_args__ = (UniqueConstraint("run_id", "position"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    position: int = 0
    title: str
    content: str = Field(default="", sa_column=Column(Text))
    category: str = "general"
    confidence: float = 0.5


class ActionRow(SQLModel, table=True):
    __tablename__ = "action_items"
    __table_args__ = (UniqueConstraint("run_id", "description"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    description: str
    priority: str = "MEDIUM"
    effort: int = 3


class LeadRow(SQLModel, table=True):
    __tablename__ = "leads"
    __table_args__ = (UniqueConstraint("run_id", "company", "name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    name: str
    company: str
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    pain_points: list = Field(default_factory=list, sa_column=Column(JSON))
    suggested_dm: str = "Relevant Decision Maker"
    suggested_email: str = "Not available"


class LeadSummaryRow(SQLModel, table=True):
    __tablename__ = "lead_summaries"

    run_id: str = Field(primary_key=True)
    total_found: int = 0
    updated_at: datetime = Field(default_factory=utcnow)


class LeadIncrementRow(SQLModel, table=True):
    """Increments already applied to a lead summary, by applying step."""

    __tablename__ = "lead_summary_increments"

    run_id: str = Field(primary_key=True)
    key: str = Field(primary_key=True)


def _run_from_row(row: RunRow) -> WorkflowRun:
    return WorkflowRun.model_validate(row, from_attributes=True)


def _step_from_row(row: StepRow) -> StepRecord:
    return StepRecord.model_validate(row, from_attributes=True)


class SQLResearchStore(ResearchStore):
    """Persist run state and outputs with SQLModel over an async engine."""

    def __init__(self, database_url: str) -> None:
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.database_url = database_url
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def init_db(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            self._initialized = True

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        if not self._initialized:
            await self.init_db()
        async with self.engine.begin() as conn:
            yield conn

    def _insert(self, table):
        """Dialect ``INSERT`` supporting ``ON CONFLICT`` clauses."""
        if self.engine.dialect.name == "postgresql":
            return postgresql_insert(table.__table__)
        return sqlite_insert(table.__table__)

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        row = RunRow(
            **run.model_dump(exclude={"status"}),
            status=run.status.value,
            active_job_id=None if run.status.is_terminal else run.job_id,
        )
        try:
            async with self.session() as session:
                session.add(row)
                await session.commit()
        except IntegrityError:
            active = await self.get_active_run(run.job_id)
            raise AlreadyRunning(run.job_id, active.run_id if active else "unknown")
        return _run_from_row(row)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        async with self.session() as session:
            row = await session.get(RunRow, run_id)
            return _run_from_row(row) if row else None

    async def list_runs(self) -> list[WorkflowRun]:
        async with self.session() as session:
            rows = await session.exec(select(RunRow).order_by(col(RunRow.created_at)))
            return [_run_from_row(r) for r in rows.all()]

    async def get_active_run(self, job_id: str) -> WorkflowRun | None:
        async with self.session() as session:
            rows = await session.exec(
                select(RunRow).where(RunRow.active_job_id == job_id)
            )
            row = rows.first()
            return _run_from_row(row) if row else None

    async def update_run(self, run_id: str, **fields: Any) -> WorkflowRun:
        async with self.session() as session:
            row = await session.get(RunRow, run_id)
            if row is None:
                raise RunNotFound(run_id)
            job_id = row.job_id
            for key, value in fields.items():
                if key == "status":
                    status = RunStatus(value)
                    row.status = status.value
                    row.active_job_id = None if status.is_terminal else job_id
                else:
                    setattr(row, key, value)
            row.updated_at = utcnow()
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                active = await self.get_active_run(job_id)
                raise AlreadyRunning(job_id, active.run_id if active else "unknown")
            return _run_from_row(row)

    async def claim_run(self, run_id: str, stale_before: datetime) -> WorkflowRun | None:
        claimable = or_(
            col(RunRow.status).in_(
                [RunStatus.PENDING.value, RunStatus.FAILED.value, RunStatus.CANCELLED.value]
            ),
            and_(
                RunRow.status == RunStatus.IN_PROGRESS.value,
                col(RunRow.updated_at) < stale_before,
            ),
        )
        stmt = (
            update(RunRow)
            .where(RunRow.run_id == run_id, claimable)
            .values(
                status=RunStatus.IN_PROGRESS.value,
                active_job_id=RunRow.job_id,
                error_message=None,
                cancel_requested=False,
                completed_at=None,
                updated_at=utcnow(),
            )
        )
        try:
            async with self.transaction() as conn:
                result = await conn.execute(stmt)
        except IntegrityError:
            run = await self.get_run(run_id)
            active = await self.get_active_run(run.job_id) if run else None
            raise AlreadyRunning(
                run.job_id if run else "unknown", active.run_id if active else "unknown"
            )
        if result.rowcount != 1:
            if await self.get_run(run_id) is None:
                raise RunNotFound(run_id)
            return None
        return await self.get_run(run_id)

    async def request_cancel(self, run_id: str) -> None:
        await self.update_run(run_id, cancel_requested=True)

    # ------------------------------------------------------------------
    # Steps
    async def _step_row(
        self, session: AsyncSession, run_id: str, step_name: str
    ) -> StepRow | None:
        rows = await session.exec(
            select(StepRow).where(
                StepRow.run_id == run_id, StepRow.step_name == step_name
            )
        )
        return rows.first()

    async def get_step(self, run_id: str, step_name: str) -> StepRecord | None:
        async with self.session() as session:
            row = await self._step_row(session, run_id, step_name)
            return _step_from_row(row) if row else None

    async def list_steps(self, run_id: str) -> list[StepRecord]:
        async with self.session() as session:
            rows = await session.exec(
                select(StepRow).where(StepRow.run_id == run_id).order_by(col(StepRow.id))
            )
            return [_step_from_row(r) for r in rows.all()]

    async def start_step(self, run_id: str, step_name: str) -> StepRecord:
        async with self.session() as session:
            row = await self._step_row(session, run_id, step_name)
            if row is None:
                row = StepRow(run_id=run_id, step_name=step_name)
            row.status = StepStatus.RUNNING.value
            row.attempts += 1
            row.error_message = None
            row.started_at = utcnow()
            session.add(row)
            await session.commit()
            return _step_from_row(row)

    async def complete_step(self, run_id: str, step_name: str, result: Any) -> None:
        async with self.session() as session:
            row = await self._step_row(session, run_id, step_name)
            if row is None:
                row = StepRow(run_id=run_id, step_name=step_name, attempts=1)
            elif row.status == StepStatus.DONE.value:
                return
            row.status = StepStatus.DONE.value
            row.result = result
            row.completed_at = utcnow()
            session.add(row)
            await session.commit()

    async def fail_step(self, run_id: str, step_name: str, error: str) -> None:
        async with self.session() as session:
            row = await self._step_row(session, run_id, step_name)
            if row is None or row.status == StepStatus.DONE.value:
                return
            row.status = StepStatus.FAILED.value
            row.error_message = error
            row.completed_at = utcnow()
            session.add(row)
            await session.commit()

    async def reset_failed_steps(self, run_id: str) -> int:
        async with self.session() as session:
            rows = await session.exec(
                select(StepRow).where(
                    StepRow.run_id == run_id,
                    col(StepRow.status).in_(
                        [StepStatus.FAILED.value, StepStatus.RUNNING.value]
                    ),
                )
            )
            reset = rows.all()
            for row in reset:
                row.status = StepStatus.NOT_STARTED.value
                session.add(row)
            await session.commit()
            return len(reset)

    # ------------------------------------------------------------------
    # Outputs
    async def _insert_missing(self, table, key_columns, rows: list) -> int:
        """Insert ``rows``, letting the natural-key constraint skip duplicates."""
        if not rows:
            return 0
        inserted = 0
        async with self.transaction() as conn:
            for row in rows:
                stmt = (
                    self._insert(table)
                    .values(**row.model_dump(exclude={"id"}))
                    .on_conflict_do_nothing(index_elements=["run_id", *key_columns])
                )
                result = await conn.execute(stmt)
                inserted += max(result.rowcount, 0)
        return inserted

    async def add_sources(self, items: Iterable[SourceItem]) -> int:
        rows = [SourceRow(**item.model_dump()) for item in items]
        return await self._insert_missing(SourceRow, ("url",), rows)

    async def list_sources(
        self, run_id: str, urls: Optional[Iterable[str]] = None
    ) -> list[SourceItem]:
        stmt = select(SourceRow).where(SourceRow.run_id == run_id)
        if urls is not None:
            stmt = stmt.where(col(SourceRow.url).in_(list(urls)))
        async with self.session() as session:
            rows = await session.exec(stmt.order_by(col(SourceRow.id)))
            return [
                SourceItem.model_validate(r, from_attributes=True) for r in rows.all()
            ]

    async def add_insights(self, items: Iterable[Insight]) -> int:
        rows = [
            InsightRow(**item.model_dump(exclude={"order"}), position=item.order)
            for item in items
        ]
        return await self._insert_missing(InsightRow, ("position",), rows)

    async def list_insights(self, run_id: str) -> list[Insight]:
        async with self.session() as session:
            rows = await session.exec(
                select(InsightRow)
                .where(InsightRow.run_id == run_id)
                .order_by(col(InsightRow.position))
            )
            return [
                Insight(
                    run_id=r.run_id,
                    title=r.title,
                    content=r.content,
                    category=r.category,
                    confidence=r.confidence,
                    order=r.position,
                )
                for r in rows.all()
            ]

    async def add_actions(self, items: Iterable[ActionItem]) -> int:
        rows = [ActionRow(**item.model_dump()) for item in items]
        return await self._insert_missing(ActionRow, ("description",), rows)

    async def list_actions(self, run_id: str) -> list[ActionItem]:
        async with self.session() as session:
            rows = await session.exec(
                select(ActionRow).where(ActionRow.run_id == run_id).order_by(col(ActionRow.id))
            )
            return [
                ActionItem.model_validate(r, from_attributes=True) for r in rows.all()
            ]

    async def add_leads(self, items: Iterable[LeadRecord]) -> int:
        rows = [LeadRow(**item.model_dump()) for item in items]
        return await self._insert_missing(LeadRow, ("company", "name"), rows)

    async def list_leads(self, run_id: str) -> list[LeadRecord]:
        async with self.session() as session:
            rows = await session.exec(
                select(LeadRow).where(LeadRow.run_id == run_id).order_by(col(LeadRow.id))
            )
            return [
                LeadRecord.model_validate(r, from_attributes=True) for r in rows.all()
            ]

    async def _write_lead_summary(
        self, conn: AsyncConnection, run_id: str, initial: int, on_conflict
    ) -> None:
        now = utcnow()
        stmt = self._insert(LeadSummaryRow).values(
            run_id=run_id, total_found=initial, updated_at=now
        )
        await conn.execute(
            stmt.on_conflict_do_update(
                index_elements=["run_id"],
                set_={"total_found": on_conflict, "updated_at": now},
            )
        )

    async def upsert_lead_summary(
        self, run_id: str, increment: int, key: Optional[str] = None
    ) -> LeadSummary:
        total = LeadSummaryRow.__table__.c.total_found
        async with self.transaction() as conn:
            apply = True
            if key is not None:
                claimed = await conn.execute(
                    self._insert(LeadIncrementRow)
                    .values(run_id=run_id, key=key)
                    .on_conflict_do_nothing(index_elements=["run_id", "key"])
                )
                apply = claimed.rowcount == 1
            if apply:
                await self._write_lead_summary(conn, run_id, increment, total + increment)
        return await self.get_lead_summary(run_id) or LeadSummary(run_id=run_id)

    async def record_lead_total(self, run_id: str, total: int) -> LeadSummary:
        async with self.transaction() as conn:
            await self._write_lead_summary(conn, run_id, total, total)
        return await self.get_lead_summary(run_id) or LeadSummary(run_id=run_id)

    async def get_lead_summary(self, run_id: str) -> LeadSummary | None:
        async with self.session() as session:
            row = await session.get(LeadSummaryRow, run_id)
            return LeadSummary.model_validate(row, from_attributes=True) if row else None
