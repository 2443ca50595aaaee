import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from evaluator.config import settings
from evaluator.models.analysis import AnalysisEvent, AnalysisRecord, AnalysisRequest
from evaluator.services.analysis import AnalysisOrchestrator, get_orchestrator
from evaluator.services.sse import event_stream_response
from evaluator.storage.memory import AnalysisStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter()


async def _resume(first: AnalysisEvent, rest: AsyncIterator[AnalysisEvent]) -> AsyncIterator[AnalysisEvent]:
    try:
        yield first
        async for event in rest:
            yield event
    finally:
        await rest.aclose()


@router.post("/analyze")
async def analyze(
    body: AnalysisRequest,
    request: Request,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> Response:
    # pull the starting event here so setup failures still get a JSON status
    events = orchestrator.run(body)
    try:
        first = await anext(events)
    except Exception:
        logger.exception("analysis setup failed")
        await events.aclose()
        return JSONResponse({"error": "analysis failed"}, status_code=500)
    return event_stream_response(_resume(first, events), request)


@router.get("/analyses")
async def recent_analyses(
    limit: int = settings.recent_analyses_limit,
    store: AnalysisStore = Depends(get_store),
) -> list[AnalysisRecord]:
    return store.recent(limit)


@router.get("/analyses/{analysis_id}")
async def get_analysis(
    analysis_id: str,
    store: AnalysisStore = Depends(get_store),
) -> AnalysisRecord:
    record = store.get(analysis_id)
    if not record:
        raise HTTPException(404, "analysis not found")
    return record
