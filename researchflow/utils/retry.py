from __future__ import annotations

import asyncio
import random

from ..config import RetryConfig


def compute_backoff(
    attempt: int, base: float = 1.0, cap: float = 30.0, jitter: float = 1.0
) -> float:
    """Compute exponential backoff with jitter.

    The delay doubles with every attempt (``base * 2 ** (attempt - 1)``), is
    capped at ``cap`` and gets up to ``jitter`` seconds of random noise.
    """
    delay = min(base * 2 ** max(attempt - 1, 0), cap)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, policy: RetryConfig | None = None) -> float:
    """Sleep for computed backoff delay before retrying."""
    policy = policy or RetryConfig()
    delay = compute_backoff(attempt, policy.base_delay, policy.max_delay, policy.jitter)
    await asyncio.sleep(delay)
    return delay
