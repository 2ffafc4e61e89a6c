"""Backoff computation tests."""

import pytest

from researchflow.config import RetryConfig
from researchflow.utils import retry as retry_utils
from researchflow.utils.retry import compute_backoff


def test_backoff_doubles_and_caps():
    assert compute_backoff(1, base=1.0, cap=30.0, jitter=0.0) == 1.0
    assert compute_backoff(2, base=1.0, cap=30.0, jitter=0.0) == 2.0
    assert compute_backoff(3, base=1.0, cap=30.0, jitter=0.0) == 4.0
    assert compute_backoff(10, base=1.0, cap=30.0, jitter=0.0) == 30.0


def test_backoff_jitter_bounds():
    for _ in range(20):
        delay = compute_backoff(2, base=1.0, cap=30.0, jitter=1.0)
        assert 2.0 <= delay <= 3.0


@pytest.mark.asyncio
async def test_schedule_retry_sleeps_computed_delay(monkeypatch):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    monkeypatch.setattr(retry_utils.asyncio, "sleep", fake_sleep)
    delay = await retry_utils.schedule_retry(
        3, RetryConfig(base_delay=0.5, max_delay=10.0, jitter=0.0)
    )
    assert delay == 2.0
    assert slept == [2.0]
