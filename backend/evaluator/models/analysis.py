from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import Field, model_validator

from evaluator.models.document import CamelModel


class AnalysisMode(str, enum.Enum):
    COGNITIVE_SHORT = "cognitive-short"
    COGNITIVE_LONG = "cognitive-long"
    PSYCHOLOGICAL_SHORT = "psychological-short"
    PSYCHOLOGICAL_LONG = "psychological-long"
    PSYCHOPATHOLOGICAL_SHORT = "psychopathological-short"
    PSYCHOPATHOLOGICAL_LONG = "psychopathological-long"


class Provider(str, enum.Enum):
    ZHI1 = "zhi1"
    ZHI2 = "zhi2"
    ZHI3 = "zhi3"
    ZHI4 = "zhi4"

    @property
    def label(self) -> str:
        return f"ZHI {self.value[-1]}"


class AnalysisStatus(str, enum.Enum):
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.ERROR)


class AnalysisRequest(CamelModel):
    text: str = ""
    mode: AnalysisMode
    provider: Provider
    chunks: list[str] | None = None
    context: str | None = None
    previous_analysis: str | None = None
    critique: str | None = None

    @model_validator(mode="after")
    def _require_input(self) -> AnalysisRequest:
        if not self.text.strip() and not self.units():
            raise ValueError("text is required")
        return self

    def units(self) -> list[str]:
        """non-empty chunks supersede text"""
        chunks = [c for c in (self.chunks or []) if c.strip()]
        if chunks:
            return chunks
        return [self.text] if self.text.strip() else []

    @property
    def is_revision(self) -> bool:
        return bool(self.previous_analysis and self.critique)


class AnalysisEvent(CamelModel):
    id: str
    status: AnalysisStatus
    content: str = ""
    mode: AnalysisMode
    provider: Provider


class AnalysisRecord(CamelModel):
    id: str
    status: AnalysisStatus
    content: str
    mode: AnalysisMode
    provider: Provider
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DownloadRequest(CamelModel):
    content: str = ""
    filename: str | None = None
