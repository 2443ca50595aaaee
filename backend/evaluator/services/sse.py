import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from fastapi import Request
from fastapi.responses import StreamingResponse

from evaluator.models.analysis import AnalysisEvent
from evaluator.models.chat import ChatEvent

logger = logging.getLogger(__name__)

KEEP_ALIVE = ": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # nginx
}


def format_event(event: AnalysisEvent | ChatEvent) -> str:
    return f"data: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


async def relay(
    events: AsyncIterator[AnalysisEvent | ChatEvent],
    request: Request | None = None,
) -> AsyncIterator[str]:
    """frames for one run. every yielded frame goes out as its own ASGI body message,
    which the server writes to the socket before pulling the next one."""
    yield KEEP_ALIVE
    async with aclosing(events) as stream:
        async for event in stream:
            if request is not None and await request.is_disconnected():
                # closing the event generator closes the upstream request too
                logger.info("client went away, dropping run %s", event.id)
                return
            yield format_event(event)
            if event.status.terminal:
                return


def event_stream_response(
    events: AsyncIterator[AnalysisEvent | ChatEvent],
    request: Request | None = None,
) -> StreamingResponse:
    return StreamingResponse(
        relay(events, request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
