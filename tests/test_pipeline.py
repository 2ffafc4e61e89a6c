"""End-to-end research runs through the orchestrator."""

import asyncio

import pytest

from conftest import FakeExtraction, FakeLLM, FakeProviders, FakeSearch, make_event, search_results

from researchflow.config import ProviderSettings
from researchflow.contracts import RetryOptions
from researchflow.errors import AlreadyRunning, InputError, TransientError
from researchflow.persistence import RunStatus, StepStatus, WorkflowRun


@pytest.mark.asyncio
async def test_zero_sources_fails_run_without_progress(store, make_orchestrator):
    orchestrator = make_orchestrator(FakeProviders(search=FakeSearch(default=[])))

    run = await orchestrator.start(make_event())

    assert run.status == RunStatus.FAILED
    assert run.error_message == "no sources found"
    assert run.progress == 10
    assert await store.list_insights("run-1") == []
    assert (await store.get_step("run-1", "discover")).status == StepStatus.FAILED


@pytest.mark.asyncio
async def test_standard_run_completes(store, make_orchestrator):
    providers = FakeProviders(
        search=FakeSearch(default=search_results("https://a.example", "https://b.example"))
    )
    orchestrator = make_orchestrator(providers)

    run = await orchestrator.start(make_event())

    assert run.status == RunStatus.COMPLETED
    assert run.progress == 100
    assert run.completed_at is not None
    assert run.summary == "Summary of EV charging market"
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
    actions = await store.list_actions("run-1")
    assert [(a.priority, a.effort) for a in actions] == [("HIGH", 2), ("LOW", 3)]


@pytest.mark.asyncio
async def test_blocked_domains_are_not_extracted(store, make_orchestrator):
    extraction = FakeExtraction()
    providers = FakeProviders(
        search=FakeSearch(default=search_results("https://www.reddit.com/r/ev", "https://a.example")),
        extraction=extraction,
    )

    run = await make_orchestrator(providers).start(make_event())

    assert run.status == RunStatus.COMPLETED
    assert extraction.calls == ["https://a.example"]


@pytest.mark.asyncio
async def test_snippets_used_when_every_extraction_fails(store, make_orchestrator):
    providers = FakeProviders(
        search=FakeSearch(default=search_results("https://a.example")),
        extraction=FakeExtraction(failing=("https://a.example",)),
    )

    run = await make_orchestrator(providers).start(make_event())

    assert run.status == RunStatus.COMPLETED
    (source,) = await store.list_sources("run-1")
    assert source.content == "snippet 1"


@pytest.mark.asyncio
async def test_missing_inference_key_fails_at_fetch_config(store, make_orchestrator):
    orchestrator = make_orchestrator(
        FakeProviders(), provider_settings=ProviderSettings(serper_api_key="s")
    )

    run = await orchestrator.start(make_event())

    assert run.status == RunStatus.FAILED
    assert "No LLM API keys found" in run.error_message
    assert run.progress == 0


@pytest.mark.asyncio
async def test_second_active_run_for_job_is_rejected(store, make_orchestrator):
    await store.create_run(
        WorkflowRun(run_id="other", job_id="job-1", status=RunStatus.IN_PROGRESS)
    )
    orchestrator = make_orchestrator(FakeProviders())

    with pytest.raises(AlreadyRunning):
        await orchestrator.start(make_event(run_id="run-1", job_id="job-1"))
    assert await store.get_run("run-1") is None


@pytest.mark.asyncio
async def test_invalid_payload_is_rejected(make_orchestrator):
    event = make_event()
    event.payload = {"scope": "general"}
    with pytest.raises(InputError):
        await make_orchestrator(FakeProviders()).start(event)


class FlakyLLM(FakeLLM):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def analyze_content(self, topic, corpus):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientError("rate limit exceeded")
        return await super().analyze_content(topic, corpus)


@pytest.mark.asyncio
async def test_transient_failure_is_retried_in_place(store, make_orchestrator):
    llm = FlakyLLM(failures=2)
    providers = FakeProviders(search=FakeSearch(default=search_results("https://a.example")), llm=llm)

    run = await make_orchestrator(providers).start(make_event())

    assert run.status == RunStatus.COMPLETED
    assert llm.calls == 3
    assert (await store.get_step("run-1", "analyze")).attempts == 3


@pytest.mark.asyncio
async def test_retrigger_resumes_after_last_done_step(store, make_orchestrator):
    search = FakeSearch(default=search_results("https://a.example"))
    llm = FlakyLLM(failures=5)
    providers = FakeProviders(search=search, llm=llm)
    orchestrator = make_orchestrator(providers)

    failed = await orchestrator.start(make_event())
    assert failed.status == RunStatus.FAILED
    assert "rate limit" in failed.error_message
    assert failed.progress == 30

    llm.failures = 0
    resumed = await orchestrator.start(make_event())

    assert resumed.status == RunStatus.COMPLETED
    assert resumed.error_message is None
    assert search.queries == ["EV charging market"]
    assert len(await store.list_sources("run-1")) == 1


@pytest.mark.asyncio
async def test_completed_run_is_not_rerun(store, make_orchestrator):
    search = FakeSearch(default=search_results("https://a.example"))
    orchestrator = make_orchestrator(FakeProviders(search=search))

    await orchestrator.start(make_event())
    again = await orchestrator.start(make_event())

    assert again.status == RunStatus.COMPLETED
    assert search.queries == ["EV charging market"]


@pytest.mark.asyncio
async def test_retry_with_skip_discovery_reuses_sources(store, make_orchestrator):
    search = FakeSearch(default=search_results("https://a.example"))
    llm = FlakyLLM(failures=5)
    providers = FakeProviders(search=search, llm=llm)
    orchestrator = make_orchestrator(providers)
    await orchestrator.start(make_event())

    llm.failures = 0
    options = RetryOptions(skip_discovery=True, provider="groq", model="llama-3.1-8b")
    run = await orchestrator.start(make_event(retry_options=options))

    assert run.status == RunStatus.COMPLETED
    assert search.queries == ["EV charging market"]
    assert (await store.get_step("run-1", "discover-reuse")).status == StepStatus.DONE
    assert options in providers.overrides


@pytest.mark.asyncio
async def test_cancel_between_stages(store, make_orchestrator):
    providers = FakeProviders(search=FakeSearch(default=search_results("https://a.example")))
    orchestrator = make_orchestrator(providers)

    class CancellingLLM(FakeLLM):
        async def analyze_content(self, topic, corpus):
            await orchestrator.cancel("run-1")
            return await super().analyze_content(topic, corpus)

    providers.llm = CancellingLLM()
    run = await orchestrator.start(make_event())

    assert run.status == RunStatus.CANCELLED
    assert await store.get_step("run-1", "generate-actions") is None
    assert run.progress == 70


class SlowSearch(FakeSearch):
    async def search(self, query, limit=10):
        await asyncio.sleep(0.05)
        return await super().search(query, limit)


@pytest.mark.asyncio
async def test_duplicate_trigger_does_not_run_twice(store, make_orchestrator):
    search = SlowSearch(default=search_results("https://a.example"))
    orchestrator = make_orchestrator(FakeProviders(search=search))

    results = await asyncio.gather(
        orchestrator.start(make_event()),
        orchestrator.start(make_event()),
        return_exceptions=True,
    )

    completed = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, AlreadyRunning)]
    assert len(completed) == 1 and len(rejected) == 1
    assert completed[0].status == RunStatus.COMPLETED
    assert search.queries == ["EV charging market"]
    assert (await store.get_step("run-1", "discover")).attempts == 1


@pytest.mark.asyncio
async def test_duplicate_trigger_on_another_executor_is_rejected(store, make_orchestrator):
    search = SlowSearch(default=search_results("https://a.example"))
    first = make_orchestrator(FakeProviders(search=search))
    second = make_orchestrator(FakeProviders(search=search))

    running = asyncio.create_task(first.start(make_event()))
    while (await store.get_step("run-1", "discover")) is None:
        await asyncio.sleep(0.001)

    with pytest.raises(AlreadyRunning):
        await second.start(make_event())
    assert (await store.get_step("run-1", "discover")).status == StepStatus.RUNNING

    run = await running
    assert run.status == RunStatus.COMPLETED
    assert search.queries == ["EV charging market"]
