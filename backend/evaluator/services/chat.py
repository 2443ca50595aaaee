import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing

from evaluator.models.analysis import AnalysisStatus
from evaluator.models.chat import ChatEvent, ChatRequest
from evaluator.services.llm import ProviderAdapter, ProviderFailure
from evaluator.services.prompts import CHAT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


def build_chat_prompt(request: ChatRequest) -> str:
    ctx = request.context
    if ctx is None:
        return request.message
    parts = []
    if ctx.input_text:
        parts.append(f"INPUT TEXT:\n{ctx.input_text}")
    if ctx.analysis_output:
        label = f" ({ctx.analysis_mode})" if ctx.analysis_mode else ""
        parts.append(f"ANALYSIS OUTPUT{label}:\n{ctx.analysis_output}")
    parts.append(f"USER MESSAGE:\n{request.message}")
    return "\n\n".join(parts)


async def stream_chat(request: ChatRequest, adapter: ProviderAdapter) -> AsyncIterator[ChatEvent]:
    chat_id = uuid.uuid4().hex
    yield ChatEvent(id=chat_id, status=AnalysisStatus.STARTING)

    content = ""
    failure: str | None = None
    try:
        async with aclosing(adapter.stream(CHAT_SYSTEM_PROMPT, build_chat_prompt(request))) as fragments:
            async for fragment in fragments:
                if isinstance(fragment, ProviderFailure):
                    failure = str(fragment)
                    break
                content += fragment
                yield ChatEvent(id=chat_id, status=AnalysisStatus.STREAMING, content=fragment)
    except Exception as exc:
        logger.exception("chat %s failed", chat_id)
        failure = str(exc) or type(exc).__name__

    if failure is None:
        yield ChatEvent(id=chat_id, status=AnalysisStatus.COMPLETED, content=content)
    else:
        yield ChatEvent(id=chat_id, status=AnalysisStatus.ERROR, content=failure)
