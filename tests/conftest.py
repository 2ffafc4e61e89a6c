"""Shared fixtures and capability fakes."""

from typing import Any, Dict, List, Optional

import pytest
from pydantic import TypeAdapter

from researchflow.config import (
    PollConfig,
    ProviderSettings,
    ResearchFlowConfig,
    RetryConfig,
)
from researchflow.contracts import ResearchRequest, TriggerEvent
from researchflow.orchestrator import ResearchOrchestrator
from researchflow.persistence import InMemoryResearchStore, reset_store
from researchflow.providers import (
    AgentJob,
    AnalysisResult,
    AnalyzedInsight,
    ExtractionResult,
    GapAnalysis,
    ProviderFactory,
    SearchResult,
)


class FakeSearch:
    def __init__(self, results: Optional[Dict[str, List[SearchResult]]] = None, default=None):
        self.results = results or {}
        self.default = default if default is not None else []
        self.queries: List[str] = []

    async def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        self.queries.append(query)
        return list(self.results.get(query, self.default))[:limit]


class FakeExtraction:
    def __init__(self, failing: tuple = ()):
        self.failing = set(failing)
        self.calls: List[str] = []

    async def extract(self, url: str) -> ExtractionResult:
        self.calls.append(url)
        if url in self.failing:
            return ExtractionResult(url=url, success=False, error="boom")
        return ExtractionResult(
            url=url, title=f"Page {url}", content=f"Content of {url}", excerpt="excerpt"
        )

    async def extract_multiple(self, urls) -> List[ExtractionResult]:
        return [await self.extract(url) for url in urls]


class FakeLLM:
    provider = "fake"

    def __init__(self, gaps: Optional[List[GapAnalysis]] = None):
        self.gaps = list(gaps or [])
        self.prompts: List[str] = []
        self.leads: List[Dict[str, Any]] = [
            {"name": "Ana", "company": "Acme", "painPoints": ["cost"]},
            {"name": "Bo", "company": "Globex", "suggestedDM": "CTO"},
        ]
        self.actions: List[Dict[str, Any]] = [
            {"description": "Call suppliers", "priority": "high", "effort": 2},
            {"description": "Draft report", "priority": "LOW"},
        ]

    async def chat(self, messages, temperature: float = 0.5) -> str:
        return "reply"

    async def analyze_content(self, topic: str, corpus: str) -> AnalysisResult:
        self.prompts.append(corpus)
        return AnalysisResult(
            insights=[
                AnalyzedInsight(title="Growth", content="Market grows", confidence=0.9),
                AnalyzedInsight(title="Risk", content="Regulation"),
            ],
            summary=f"Summary of {topic}",
            trends=["up"],
        )

    async def identify_gaps(self, query: str, corpus: str) -> GapAnalysis:
        return self.gaps.pop(0) if self.gaps else GapAnalysis()

    async def synthesize_report(self, query: str, corpus: str, iterations: int) -> str:
        return f"Report after {iterations} iteration(s)"

    async def generate_json(self, prompt: str, output_type):
        self.prompts.append(prompt)
        data = self.actions if "actionable" in prompt else self.leads
        return TypeAdapter(output_type).validate_python(data)


class FakeAgentJobs:
    def __init__(self, statuses: List[str], outputs=None, error=None):
        self.statuses = list(statuses)
        self.outputs = outputs or []
        self.error = error
        self.created: List[str] = []
        self.polls = 0

    async def create_job(self, prompt: str) -> AgentJob:
        self.created.append(prompt)
        return AgentJob(id=f"job-{len(self.created)}", status="processing")

    async def get_job(self, job_id: str) -> AgentJob:
        self.polls += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        outputs = self.outputs if status == "completed" else []
        return AgentJob(id=job_id, status=status, outputs=outputs, error=self.error)


class FakeProviders(ProviderFactory):
    """Factory returning fakes; settings still gate inference."""

    def __init__(self, search=None, extraction=None, llm=None, agent_jobs=None):
        self.search_client = search or FakeSearch()
        self.extraction_client = extraction or FakeExtraction()
        self.llm = llm or FakeLLM()
        self.agent_client = agent_jobs
        self.overrides: List[Any] = []

    def inference(self, settings, overrides=None):
        self.overrides.append(overrides)
        return self.llm

    def search(self, settings):
        return self.search_client

    def extraction(self, settings):
        return self.extraction_client

    def agent_jobs(self, settings):
        return self.agent_client


def make_event(run_id="run-1", job_id="job-1", retry_options=None, **request) -> TriggerEvent:
    request.setdefault("prompt", "EV charging market")
    return TriggerEvent(
        run_id=run_id,
        job_id=job_id,
        payload=ResearchRequest(**request).model_dump(mode="json"),
        retry_options=retry_options,
    )


def search_results(*urls: str) -> List[SearchResult]:
    return [
        SearchResult(url=url, title=f"Result {i}", snippet=f"snippet {i}", position=i)
        for i, url in enumerate(urls, start=1)
    ]


@pytest.fixture(autouse=True)
def _isolated_store(monkeypatch):
    for name in ("RESEARCHFLOW_DATABASE_URL", "DATABASE_URL", "RESEARCHFLOW_TRANSPORT"):
        monkeypatch.delenv(name, raising=False)
    reset_store()
    yield
    reset_store()


@pytest.fixture
def store():
    return InMemoryResearchStore()


@pytest.fixture
def config():
    return ResearchFlowConfig(
        retry=RetryConfig(max_attempts=3, base_delay=0.0, jitter=0.0),
        poll=PollConfig(interval_seconds=0.0, max_attempts=5),
    )


@pytest.fixture
def settings():
    return ProviderSettings(gemini_api_key="gemini-key", serper_api_key="serper-key")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(store, config, settings, sleeps):
    def build(providers, provider_settings=None):
        current = provider_settings or settings

        async def loader(user_id=None):
            return current

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        return ResearchOrchestrator(
            store=store,
            providers=providers,
            config=config,
            settings_loader=loader,
            sleep=fake_sleep,
        )

    return build
