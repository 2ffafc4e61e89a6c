"""Sleep-based polling of long-running external operations."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .config import PollConfig
from .errors import PollTimeoutExceeded, RunCancelled
from .progress import ProgressTracker

logger = logging.getLogger(__name__)

CheckFn = Callable[[], Awaitable[Any]]
CancelCheck = Callable[[], Awaitable[bool]]

TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled", "done"})


def status_of(result: Any) -> str:
    """Read the status from a dict or object result."""
    if isinstance(result, str):
        return result.lower()
    if isinstance(result, dict):
        return str(result.get("status", "")).lower()
    return str(getattr(result, "status", "")).lower()


class PollLoop:
    """Wait for an external job to reach a terminal state.

    Every wait is an ``asyncio.sleep`` so a polling run only holds its own
    task, never a thread. The cancellation flag is read after each wake and
    progress is pushed forward by ``min(baseline + attempts * increment,
    ceiling)``.
    """

    def __init__(
        self,
        run_id: str,
        tracker: Optional[ProgressTracker] = None,
        is_cancelled: Optional[CancelCheck] = None,
        config: Optional[PollConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        is_terminal: Callable[[Any], bool] = lambda r: status_of(r) in TERMINAL_STATUSES,
    ) -> None:
        self.run_id = run_id
        self.config = config or PollConfig()
        self._tracker = tracker
        self._is_cancelled = is_cancelled
        self._sleep = sleep
        self._is_terminal = is_terminal

    def progress_for(self, attempts: int) -> int:
        cfg = self.config
        return min(cfg.progress_baseline + attempts * cfg.progress_increment, cfg.progress_ceiling)

    async def poll_until_terminal(
        self,
        check_fn: CheckFn,
        interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> Any:
        """Return the first terminal result of ``check_fn``.

        Raises:
            RunCancelled: The run's cancellation flag was set.
            PollTimeoutExceeded: ``max_attempts`` checks found no terminal status.
        """
        interval = self.config.interval_seconds if interval_seconds is None else interval_seconds
        limit = self.config.max_attempts if max_attempts is None else max_attempts

        last_status: Optional[str] = None
        for attempt in range(1, limit + 1):
            await self._sleep(interval)
            if self._is_cancelled is not None and await self._is_cancelled():
                logger.info(f"Polling cancelled for run_id={self.run_id}")
                raise RunCancelled(self.run_id)

            result = await check_fn()
            last_status = status_of(result)
            logger.debug(
                f"Poll {attempt}/{limit} for run_id={self.run_id}: status={last_status}"
            )
            if self._tracker is not None:
                await self._tracker.advance(self.run_id, self.progress_for(attempt))
            if self._is_terminal(result):
                return result

        raise PollTimeoutExceeded(limit, last_status)
