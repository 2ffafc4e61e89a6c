"""Research runs against the SQL store on a SQLite file."""

import asyncio

import pytest
import pytest_asyncio

from conftest import FakeLLM, FakeProviders, FakeSearch, make_event, search_results

from researchflow.errors import AlreadyRunning, TransientError
from researchflow.persistence import RunStatus, SQLResearchStore, StepStatus, WorkflowRun


@pytest_asyncio.fixture
async def store(tmp_path):
    sql_store = SQLResearchStore(f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}")
    await sql_store.init_db()
    yield sql_store
    await sql_store.dispose()


class FailingAnalysis(FakeLLM):
    def __init__(self):
        super().__init__()
        self.failing = True

    async def analyze_content(self, topic, corpus):
        if self.failing:
            raise TransientError("503 service unavailable")
        return await super().analyze_content(topic, corpus)


@pytest.mark.asyncio
async def test_standard_run_completes(store, make_orchestrator):
    providers = FakeProviders(
        search=FakeSearch(default=search_results("https://a.example", "https://b.example"))
    )

    run = await make_orchestrator(providers).start(make_event())

    assert run.status == RunStatus.COMPLETED
    assert run.progress == 100
    steps = await store.list_steps("run-1")
    assert [s.step_name for s in steps] == [
        "fetch-config",
        "discover",
        "analyze",
        "generate-actions",
        "finalize",
    ]
    assert all(s.status == StepStatus.DONE for s in steps)
    assert len(await store.list_sources("run-1")) == 2
    assert [i.title for i in await store.list_insights("run-1")] == ["Growth", "Risk"]
    assert (await store.get_run("run-1")).summary == "Summary of EV charging market"


@pytest.mark.asyncio
async def test_zero_sources_fails_run(store, make_orchestrator):
    run = await make_orchestrator(FakeProviders(search=FakeSearch(default=[]))).start(
        make_event()
    )

    assert run.status == RunStatus.FAILED
    assert run.error_message == "no sources found"
    assert run.progress == 10
    assert await store.get_active_run("job-1") is None


@pytest.mark.asyncio
async def test_resume_skips_finished_steps_and_keeps_outputs(store, make_orchestrator):
    search = FakeSearch(default=search_results("https://a.example"))
    llm = FailingAnalysis()
    orchestrator = make_orchestrator(FakeProviders(search=search, llm=llm))

    failed = await orchestrator.start(make_event())
    assert failed.status == RunStatus.FAILED
    assert (await store.get_step("run-1", "analyze")).status == StepStatus.FAILED

    llm.failing = False
    resumed = await orchestrator.start(make_event())

    assert resumed.status == RunStatus.COMPLETED
    assert search.queries == ["EV charging market"]
    assert len(await store.list_sources("run-1")) == 1
    assert (await store.get_step("run-1", "discover")).attempts == 1


@pytest.mark.asyncio
async def test_second_active_run_for_job_is_rejected(store, make_orchestrator):
    await store.create_run(
        WorkflowRun(run_id="other", job_id="job-1", status=RunStatus.IN_PROGRESS)
    )

    with pytest.raises(AlreadyRunning):
        await make_orchestrator(FakeProviders()).start(make_event())
    assert await store.get_run("run-1") is None


@pytest.mark.asyncio
async def test_duplicate_trigger_runs_once(store, make_orchestrator):
    search = FakeSearch(default=search_results("https://a.example"))
    first = make_orchestrator(FakeProviders(search=search))
    second = make_orchestrator(FakeProviders(search=search))

    results = await asyncio.gather(
        first.start(make_event()), second.start(make_event()), return_exceptions=True
    )

    # the losing trigger is either rejected or finds the run already completed
    for result in results:
        assert isinstance(result, (AlreadyRunning, WorkflowRun))
        if isinstance(result, WorkflowRun):
            assert result.status == RunStatus.COMPLETED
    assert search.queries == ["EV charging market"]
    assert (await store.get_step("run-1", "discover")).attempts == 1
    assert (await store.get_run("run-1")).status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_lead_generation_counts_once(store, make_orchestrator):
    providers = FakeProviders(search=FakeSearch(default=search_results("https://a.example")))

    run = await make_orchestrator(providers).start(make_event(scope="lead_generation"))

    assert run.status == RunStatus.COMPLETED
    assert len(await store.list_leads("run-1")) == 2
    assert (await store.get_lead_summary("run-1")).total_found == 2
