from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in python, camelCase on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InputMode(str, enum.Enum):
    DIRECT = "direct"
    CHUNKED = "chunked"


class Chunk(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    content: str
    word_count: int
    start_index: int  # inclusive word offset
    end_index: int  # inclusive word offset


class ProcessedFile(CamelModel):
    filename: str
    content: str
    word_count: int
    chunks: list[Chunk] | None = None
