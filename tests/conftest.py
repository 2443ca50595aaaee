import json

import pytest
from fastapi.testclient import TestClient

from evaluator.models.analysis import Provider
from evaluator.services.llm import ProviderFailure, ProviderRegistry
from evaluator.storage.memory import AnalysisStore


class FakeAdapter:
    """scripted stand-in for a provider adapter; records calls on a shared timeline"""

    def __init__(
        self,
        provider: Provider,
        fragments: list[str] | None = None,
        failure: str | None = None,
        timeline: list | None = None,
    ):
        self.provider = provider
        self.fragments = fragments if fragments is not None else ["partial ", "answer"]
        self.failure = failure
        self.timeline = timeline if timeline is not None else []
        self.calls: list[dict] = []
        self.closed = False

    @property
    def configured(self) -> bool:
        return True

    async def complete(self, system: str, user: str) -> str:
        return "".join(self.fragments)

    async def stream(self, system: str, user: str):
        self.calls.append({"system": system, "user": user})
        for fragment in self.fragments:
            yield fragment
        if self.failure:
            yield ProviderFailure(self.failure)

    async def analyze(self, text, mode, context=None, previous_analysis=None, critique=None) -> str:
        return "".join(self.fragments)

    async def stream_analysis(self, text, mode, context=None, previous_analysis=None, critique=None):
        self.calls.append({
            "text": text,
            "mode": mode,
            "context": context,
            "previous_analysis": previous_analysis,
            "critique": critique,
        })
        self.timeline.append(("start", text))
        for fragment in self.fragments:
            yield fragment
        if self.failure:
            yield ProviderFailure(self.failure)
        self.timeline.append(("end", text))

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    def __init__(self, timeline: list):
        self.timeline = timeline
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.timeline.append(("sleep", seconds))


def parse_frames(body: str) -> list[dict]:
    return [
        json.loads(frame[len("data: "):])
        for frame in body.split("\n\n")
        if frame.startswith("data: ")
    ]


@pytest.fixture
def timeline() -> list:
    return []


@pytest.fixture
def adapters(timeline) -> dict[Provider, FakeAdapter]:
    return {p: FakeAdapter(p, timeline=timeline) for p in Provider}


@pytest.fixture
def registry(adapters) -> ProviderRegistry:
    return ProviderRegistry(adapters)


@pytest.fixture
def store() -> AnalysisStore:
    return AnalysisStore()


@pytest.fixture
def sleeper(timeline) -> RecordingSleep:
    return RecordingSleep(timeline)


@pytest.fixture
def client(registry, store, sleeper):
    from evaluator.main import app
    from evaluator.services.analysis import AnalysisOrchestrator, get_orchestrator
    from evaluator.services.llm import get_registry
    from evaluator.storage.memory import get_store

    app.dependency_overrides[get_orchestrator] = lambda: AnalysisOrchestrator(
        registry, store, sequential_providers=["zhi1"], inter_chunk_delay=10.0, sleep=sleeper,
    )
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
