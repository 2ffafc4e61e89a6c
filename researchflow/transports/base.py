"""Queue interface that carries run triggers from dispatchers to workers."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..contracts import TriggerEvent

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Topic queue of :class:`TriggerEvent` objects.

    Delivery is at least once: a trigger may reach a worker twice, for
    example after a worker restarts before acking. The orchestrator's run
    claim turns such duplicates into ``AlreadyRunning`` or a no-op resume, so
    transports never deduplicate.
    """

    async def connect(self) -> None:
        """Open the broker connection, if the backend has one."""

    async def disconnect(self) -> None:
        """Release the broker connection, if the backend has one."""

    @abc.abstractmethod
    async def publish(self, topic: str, event: TriggerEvent) -> None:
        """Queue ``event`` on ``topic``."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, TriggerEvent]]:
        """Yield ``(raw, event)`` pairs as triggers arrive on ``topic``.

        ``raw`` is the backend's handle, passed back to :meth:`ack`.
        Undecodable payloads are skipped. With ``lifespan`` set, iteration
        stops after that many seconds; otherwise it never ends.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Mark a trigger as handled, whether it ran or was rejected."""
        raise NotImplementedError
