"""Persistence layer for research runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ResearchFlowConfig, load_config
from .inmemory import InMemoryResearchStore
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
)
from .repository import ResearchStore
from .sql import SQLResearchStore

_store_instance: ResearchStore | None = None


def _async_url(database_url: str) -> str:
    """Map plain ``sqlite://`` / ``postgres://`` URLs onto async drivers."""
    if database_url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + database_url[len("sqlite://"):]
    for prefix in ("postgres://", "postgresql://"):
        if database_url.startswith(prefix):
            return "postgresql+asyncpg://" + database_url[len(prefix):]
    return database_url


def get_store(
    database_url: Optional[str] = None, config: Optional[ResearchFlowConfig] = None
) -> ResearchStore:
    """Factory function to obtain a research store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``RESEARCHFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("RESEARCHFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _store_instance = InMemoryResearchStore()
        return _store_instance

    url = _async_url(database_url)
    if url.startswith("sqlite+aiosqlite://") or url.startswith("postgresql+asyncpg://"):
        _store_instance = SQLResearchStore(url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


def reset_store() -> None:
    """Forget the cached store instance."""
    global _store_instance
    _store_instance = None


__all__ = [
    "ActionItem",
    "Insight",
    "LeadRecord",
    "LeadSummary",
    "RunStatus",
    "SourceItem",
    "StepRecord",
    "StepStatus",
    "WorkflowRun",
    "ResearchStore",
    "InMemoryResearchStore",
    "SQLResearchStore",
    "get_store",
    "reset_store",
]
