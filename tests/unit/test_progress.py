"""Progress tracker tests."""

import pytest

from researchflow.errors import RunNotFound
from researchflow.persistence import WorkflowRun
from researchflow.progress import ProgressTracker


@pytest.mark.asyncio
async def test_progress_never_regresses(store):
    await store.create_run(WorkflowRun(run_id="r1", job_id="j1"))
    tracker = ProgressTracker(store)

    assert await tracker.advance("r1", 30) == 30
    assert await tracker.advance("r1", 12) == 30
    assert await tracker.advance("r1", 250) == 100
    assert await tracker.current("r1") == 100


@pytest.mark.asyncio
async def test_progress_unknown_run(store):
    with pytest.raises(RunNotFound):
        await ProgressTracker(store).advance("missing", 10)
