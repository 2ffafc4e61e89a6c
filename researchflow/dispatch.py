"""Publish run triggers onto a transport."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from .constants import LEADS_REQUESTED, RESEARCH_INITIATED, TRIGGER_TOPIC
from .contracts import LeadsRequest, ResearchRequest, RetryOptions, TriggerEvent
from .errors import RunNotFound
from .persistence import ResearchStore
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class TriggerDispatcher:
    """Service responsible for starting, retrying and extending runs."""

    def __init__(self, transport: BaseTransport, topic: str = TRIGGER_TOPIC) -> None:
        self._transport = transport
        self.topic = topic

    async def _publish(self, event: TriggerEvent) -> TriggerEvent:
        await self._transport.publish(self.topic, event)
        logger.info(
            f"Dispatched {event.name} for run_id={event.run_id} job_id={event.job_id}"
        )
        return event

    async def dispatch_research(
        self,
        request: ResearchRequest,
        job_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> TriggerEvent:
        """Publish a new research run; ids are generated when not given."""
        run_id = run_id or str(uuid.uuid4())
        event = TriggerEvent(
            name=RESEARCH_INITIATED,
            run_id=run_id,
            job_id=job_id or run_id,
            payload=request.model_dump(mode="json"),
        )
        return await self._publish(event)

    async def dispatch_retry(
        self,
        store: ResearchStore,
        run_id: str,
        options: Optional[RetryOptions] = None,
    ) -> TriggerEvent:
        """Re-trigger an existing run so it resumes from its checkpoints."""
        run = await store.get_run(run_id)
        if run is None:
            raise RunNotFound(run_id)
        name = LEADS_REQUESTED if run.kind == "leads" else RESEARCH_INITIATED
        event = TriggerEvent(
            name=name,
            run_id=run.run_id,
            job_id=run.job_id,
            payload=run.payload,
            retry_options=options,
        )
        return await self._publish(event)

    async def dispatch_leads(
        self,
        request: LeadsRequest,
        job_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> TriggerEvent:
        """Publish lead generation for a finished research run."""
        run_id = run_id or str(uuid.uuid4())
        event = TriggerEvent(
            name=LEADS_REQUESTED,
            run_id=run_id,
            job_id=job_id or f"{request.source_run_id}-leads",
            payload=request.model_dump(mode="json"),
        )
        return await self._publish(event)
