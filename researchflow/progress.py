"""Monotonic progress tracking for runs."""

from __future__ import annotations

import logging

from .constants import MAX_PROGRESS
from .errors import RunNotFound
from .persistence import ResearchStore

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Persist a percentage that only ever moves forward.

    A late retry reporting a lower value than a faster path already did is
    clamped to the stored value, so observers never see progress regress.
    """

    def __init__(self, store: ResearchStore) -> None:
        self._store = store

    async def advance(self, run_id: str, value: int) -> int:
        run = await self._store.get_run(run_id)
        if run is None:
            raise RunNotFound(run_id)
        target = max(run.progress, min(int(value), MAX_PROGRESS))
        if target != run.progress:
            await self._store.update_run(run_id, progress=target)
            logger.debug(f"Progress for run_id={run_id}: {run.progress} -> {target}")
        return target

    async def current(self, run_id: str) -> int:
        run = await self._store.get_run(run_id)
        if run is None:
            raise RunNotFound(run_id)
        return run.progress
