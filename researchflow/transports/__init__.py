"""Trigger bus backends.

``inmemory`` keeps trigger queues inside one process, which suits tests and
runs executed with ``run start --wait``. ``redis`` shares them between the
CLI that dispatches triggers and any number of ``worker start`` processes.
"""

from __future__ import annotations

from typing import Optional

from ..config import ResearchFlowConfig, load_config
from ..errors import ConfigurationError
from .base import BaseTransport
from .inmemory import InMemoryTransport


def _redis_transport(config: ResearchFlowConfig) -> BaseTransport:
    from .redis import RedisTransport

    conf = config.transport.redis
    return RedisTransport(host=conf.host, port=conf.port, db=conf.db, password=conf.password)


def get_transport(
    backend: Optional[str] = None, config: Optional[ResearchFlowConfig] = None
) -> BaseTransport:
    """Build the trigger transport shared by dispatchers and workers.

    ``backend`` wins over the configured ``transport.backend``, which
    :func:`load_config` already resolves against ``RESEARCHFLOW_TRANSPORT``.
    """
    config = config or load_config()
    name = (backend or config.transport.backend).lower()
    if name == "inmemory":
        return InMemoryTransport()
    if name == "redis":
        return _redis_transport(config)
    raise ConfigurationError(f"Unknown trigger transport: {name}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
