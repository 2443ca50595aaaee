import asyncio
import enum
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing

from evaluator.config import settings
from evaluator.models.analysis import (
    AnalysisEvent,
    AnalysisRecord,
    AnalysisRequest,
    AnalysisStatus,
)
from evaluator.services.llm import ProviderAdapter, ProviderFailure, ProviderRegistry, get_registry
from evaluator.storage.memory import AnalysisStore, get_store

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.STARTING},
    RunState.STARTING: {RunState.STREAMING, RunState.COMPLETED, RunState.ERROR},
    RunState.STREAMING: {RunState.STREAMING, RunState.COMPLETED, RunState.ERROR},
    RunState.COMPLETED: set(),
    RunState.ERROR: set(),
}


class Strategy(str, enum.Enum):
    SEQUENTIAL = "sequential"
    JOINED = "joined"


def chunk_header(index: int, total: int) -> str:
    return f"=== CHUNK {index} OF {total} ===\n\n"


class AnalysisRun:
    """event bookkeeping for one run; owns the correlation id and accumulated text"""

    def __init__(self, request: AnalysisRequest, run_id: str | None = None):
        self.id = run_id or uuid.uuid4().hex
        self.request = request
        self.state = RunState.IDLE
        self.content = ""
        self.error: str | None = None

    def _move(self, state: RunState):
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"run {self.id}: illegal transition {self.state.value} -> {state.value}")
        self.state = state

    def _event(self, status: AnalysisStatus, content: str) -> AnalysisEvent:
        return AnalysisEvent(
            id=self.id,
            status=status,
            content=content,
            mode=self.request.mode,
            provider=self.request.provider,
        )

    def start(self) -> AnalysisEvent:
        self._move(RunState.STARTING)
        return self._event(AnalysisStatus.STARTING, "")

    def fragment(self, text: str) -> AnalysisEvent:
        self._move(RunState.STREAMING)
        self.content += text
        return self._event(AnalysisStatus.STREAMING, text)

    def complete(self) -> AnalysisEvent:
        self._move(RunState.COMPLETED)
        return self._event(AnalysisStatus.COMPLETED, self.content)

    def fail(self, message: str) -> AnalysisEvent:
        self._move(RunState.ERROR)
        self.error = message
        return self._event(AnalysisStatus.ERROR, message)

    def record(self) -> AnalysisRecord:
        if self.state not in (RunState.COMPLETED, RunState.ERROR):
            raise RuntimeError(f"run {self.id} has not finished")
        return AnalysisRecord(
            id=self.id,
            status=AnalysisStatus(self.state.value),
            content=self.content,
            error=self.error,
            mode=self.request.mode,
            provider=self.request.provider,
        )


class AnalysisOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: AnalysisStore,
        sequential_providers: list[str] | None = None,
        inter_chunk_delay: float | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self.registry = registry
        self.store = store
        self.sequential_providers = set(
            settings.sequential_providers if sequential_providers is None else sequential_providers
        )
        self.inter_chunk_delay = (
            settings.inter_chunk_delay_seconds if inter_chunk_delay is None else inter_chunk_delay
        )
        self._sleep = sleep

    def strategy(self, request: AnalysisRequest) -> Strategy:
        if request.provider.value in self.sequential_providers and len(request.units()) > 1:
            return Strategy.SEQUENTIAL
        return Strategy.JOINED

    async def run(self, request: AnalysisRequest, run_id: str | None = None) -> AsyncIterator[AnalysisEvent]:
        """one starting event, incremental streaming events, one terminal event"""
        adapter = self.registry.get(request.provider)
        run = AnalysisRun(request, run_id)
        strategy = self.strategy(request)
        logger.info(
            "analysis %s: provider=%s mode=%s units=%d strategy=%s revision=%s",
            run.id, request.provider.value, request.mode.value,
            len(request.units()), strategy.value, request.is_revision,
        )
        yield run.start()

        failure: str | None = None
        try:
            async with aclosing(self._fragments(request, adapter, strategy)) as fragments:
                async for fragment in fragments:
                    if isinstance(fragment, ProviderFailure):
                        failure = str(fragment)
                        break
                    yield run.fragment(fragment)
        except Exception as exc:
            logger.exception("analysis %s failed", run.id)
            failure = str(exc) or type(exc).__name__

        if failure is None:
            terminal = run.complete()
            logger.info("analysis %s completed: %d chars", run.id, len(run.content))
        else:
            terminal = run.fail(failure)
            logger.warning("analysis %s ended with error: %s", run.id, failure)
        self.store.save(run.record())
        yield terminal

    async def _fragments(
        self, request: AnalysisRequest, adapter: ProviderAdapter, strategy: Strategy,
    ) -> AsyncIterator[str]:
        units = request.units()
        if strategy is Strategy.JOINED:
            async for fragment in self._stream_unit(request, adapter, "\n\n".join(units)):
                yield fragment
            return

        total = len(units)
        for index, unit in enumerate(units, start=1):
            if index > 1:
                yield "\n\n"
            yield chunk_header(index, total)
            async for fragment in self._stream_unit(request, adapter, unit):
                yield fragment
                if isinstance(fragment, ProviderFailure):
                    return
            if index < total:
                logger.info("waiting %.1fs before chunk %d of %d", self.inter_chunk_delay, index + 1, total)
                await self._sleep(self.inter_chunk_delay)

    async def _stream_unit(
        self, request: AnalysisRequest, adapter: ProviderAdapter, text: str,
    ) -> AsyncIterator[str]:
        stream = adapter.stream_analysis(
            text,
            request.mode.value,
            context=request.context,
            previous_analysis=request.previous_analysis,
            critique=request.critique,
        )
        async with aclosing(stream) as fragments:
            async for fragment in fragments:
                yield fragment


def get_orchestrator() -> AnalysisOrchestrator:
    return AnalysisOrchestrator(get_registry(), get_store())
