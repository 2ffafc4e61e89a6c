"""Redis transport for cross-process triggers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

from pydantic import ValidationError

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..contracts import TriggerEvent
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Redis lists used as work queues (``LPUSH`` / ``BRPOP``)."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        if redis is None and client is None:
            raise ImportError("redis package is required for RedisTransport")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = client

    @staticmethod
    def queue_name(topic: str) -> str:
        return f"researchflow:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, event: TriggerEvent) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.queue_name(topic), event.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, TriggerEvent]]:
        if not self._redis:
            await self.connect()

        queue = self.queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            result = await self._redis.brpop(queue, timeout=1)
            if not result:
                continue

            _, payload = result
            try:
                event = TriggerEvent.from_json(payload)
            except ValidationError as exc:
                logger.warning(f"Dropping malformed trigger on {queue}: {exc}")
                continue
            yield payload, event

    async def ack(self, raw_message: str) -> None:
        """No-op: ``BRPOP`` already removed the message."""
        pass
