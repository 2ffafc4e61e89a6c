"""In-memory transport for tests and single-process use."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import TriggerEvent
from .base import BaseTransport

RawEvent = Tuple[str, TriggerEvent]


class InMemoryTransport(BaseTransport[RawEvent]):
    """In-process queues keyed by topic."""

    def __init__(self, poll_interval: float = 0.1) -> None:
        self._queues: Dict[str, Deque[RawEvent]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self.poll_interval = poll_interval
        self.acked: list[str] = []

    async def publish(self, topic: str, event: TriggerEvent) -> None:
        raw = (event.to_json(), event)
        async with self._lock:
            self._queues[topic].append(raw)

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawEvent, TriggerEvent]]:
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            async with self._lock:
                raw = self._queues[topic].popleft() if self._queues[topic] else None
            if raw is not None:
                yield raw, raw[1]
                continue

            await asyncio.sleep(self.poll_interval)

    async def ack(self, raw_message: RawEvent) -> None:
        self.acked.append(raw_message[1].event_id)
