"""Consume triggers and run each one in its own task."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from .constants import TRIGGER_TOPIC
from .contracts import TriggerEvent
from .errors import AlreadyRunning, InputError
from .orchestrator import ResearchOrchestrator
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class RunWorker:
    """Listen on the trigger topic and execute runs concurrently.

    At most ``max_concurrent`` runs execute at once; further triggers wait
    on the transport until a slot frees up.
    """

    def __init__(
        self,
        transport: BaseTransport,
        orchestrator: ResearchOrchestrator,
        max_concurrent: Optional[int] = None,
        topic: str = TRIGGER_TOPIC,
    ) -> None:
        self._transport = transport
        self._orchestrator = orchestrator
        self.topic = topic
        self.max_concurrent = max_concurrent or orchestrator.config.max_concurrent_runs
        self._slots = asyncio.Semaphore(self.max_concurrent)
        self._tasks: Set[asyncio.Task] = set()

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Process triggers until ``lifespan`` seconds pass (forever if None).

        Runs still executing when the subscription ends are awaited.
        """
        try:
            async for raw_message, event in self._transport.subscribe(
                self.topic, lifespan=lifespan
            ):
                await self._slots.acquire()
                task = asyncio.create_task(self._handle(raw_message, event))
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
        finally:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _handle(self, raw_message: Any, event: TriggerEvent) -> None:
        try:
            run = await self._orchestrator.start(event)
            logger.info(
                f"Run {run.run_id} finished with status={run.status.value} "
                f"progress={run.progress}"
            )
        except (AlreadyRunning, InputError) as exc:
            logger.warning(f"Rejected {event.name} for run_id={event.run_id}: {exc}")
        finally:
            await self._transport.ack(raw_message)
            self._slots.release()

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Run task crashed: {task.exception()!r}")
