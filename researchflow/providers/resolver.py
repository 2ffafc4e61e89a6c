"""Primary/secondary provider selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from ..errors import ConfigurationError, NoProviderAvailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProviderCandidate(Generic[T]):
    """A way to build one capability client.

    ``factory`` is only invoked when the candidate is configured, i.e. when
    it needs no credential or its credential is non-empty.
    """

    name: str
    factory: Callable[[], T]
    credential: Optional[str] = None
    requires_credential: bool = True

    @property
    def configured(self) -> bool:
        return not self.requires_credential or bool(self.credential)


class ProviderFallbackResolver:
    """Obtain a working client from an ordered list of candidates.

    Only construction is tried here: a candidate without its credential is
    skipped silently and a factory raising :class:`ConfigurationError` moves
    on to the next one. Call-time failures belong to the caller's retry
    policy. The resolver knows nothing about what the clients do.
    """

    def __init__(self, capability: str) -> None:
        self.capability = capability

    def resolve(
        self,
        primary: ProviderCandidate[T],
        secondary: Optional[ProviderCandidate[T]] = None,
    ) -> T:
        return self.resolve_first([c for c in (primary, secondary) if c is not None])

    def resolve_first(self, candidates: list[ProviderCandidate[T]]) -> T:
        tried: list[str] = []
        for index, candidate in enumerate(candidates):
            tried.append(candidate.name)
            if not candidate.configured:
                logger.debug(f"Skipping {self.capability} provider {candidate.name}: not configured")
                continue
            try:
                client = candidate.factory()
            except ConfigurationError as exc:
                logger.warning(
                    f"Could not build {self.capability} provider {candidate.name}: {exc}"
                )
                continue
            if index > 0:
                logger.info(
                    f"Falling back to {self.capability} provider {candidate.name} "
                    f"(skipped: {', '.join(tried[:-1])})"
                )
            return client
        raise NoProviderAvailable(self.capability, tried)
