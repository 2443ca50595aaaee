from __future__ import annotations

from pydantic import Field

from evaluator.models.analysis import AnalysisStatus
from evaluator.models.document import CamelModel


class ChatContext(CamelModel):
    input_text: str | None = None
    analysis_output: str | None = None
    analysis_mode: str | None = None


class ChatRequest(CamelModel):
    message: str = Field(min_length=1)
    context: ChatContext | None = None


class ChatEvent(CamelModel):
    id: str
    status: AnalysisStatus
    content: str = ""
