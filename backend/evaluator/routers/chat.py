import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from evaluator.config import settings
from evaluator.models.chat import ChatRequest
from evaluator.services.chat import stream_chat
from evaluator.services.llm import ProviderRegistry, get_registry
from evaluator.services.sse import event_stream_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
) -> Response:
    try:
        adapter = registry.get(settings.chat_provider)
    except KeyError:
        logger.exception("chat provider misconfigured")
        return JSONResponse({"error": "chat failed"}, status_code=500)
    return event_stream_response(stream_chat(body, adapter), request)
