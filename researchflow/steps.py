"""Exactly-once-effective step execution."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from .classifier import classify_error
from .config import RetryConfig
from .persistence import ResearchStore, StepStatus
from .utils import retry as retry_utils

logger = logging.getLogger(__name__)

WorkFn = Callable[[], Awaitable[Any]]


def to_jsonable(value: Any) -> Any:
    """Convert pydantic models (also nested in lists/dicts) to JSON data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


class StepExecutor:
    """Run named units of work with checkpointing and in-place retries.

    If the checkpoint for ``(run_id, step_name)`` is already DONE, the cached
    result is returned and the work function is never invoked, which is what
    lets a restarted run resume after its last completed step. Work functions
    must make their own side effects idempotent (the store's
    create-many-with-dedup helpers do that); the checkpoint write is always
    the last thing a successful step does.
    """

    def __init__(
        self,
        store: ResearchStore,
        retry: Optional[RetryConfig] = None,
    ) -> None:
        self._store = store
        self.retry = retry or RetryConfig()

    async def execute(self, run_id: str, step_name: str, work_fn: WorkFn) -> Any:
        """Run ``work_fn`` once-effectively under the given step name."""
        existing = await self._store.get_step(run_id, step_name)
        if existing is not None and existing.status == StepStatus.DONE:
            logger.debug(f"Step {step_name} cached for run_id={run_id}")
            return existing.result

        attempt = 0
        while True:
            record = await self._store.start_step(run_id, step_name)
            attempt += 1
            try:
                result = to_jsonable(await work_fn())
            except Exception as exc:
                classification = classify_error(exc)
                if classification.retryable and attempt < self.retry.max_attempts:
                    logger.warning(
                        f"Step {step_name} attempt {record.attempts} failed for "
                        f"run_id={run_id} ({classification.matched_rule}): {exc}. Retrying."
                    )
                    await retry_utils.schedule_retry(attempt, self.retry)
                    continue
                await self._store.fail_step(run_id, step_name, str(exc))
                logger.error(
                    f"Step {step_name} failed for run_id={run_id} after "
                    f"{attempt} attempt(s) ({classification.kind.value}): {exc}"
                )
                raise

            await self._store.complete_step(run_id, step_name, result)
            logger.info(f"Step {step_name} completed for run_id={run_id}")
            return result
