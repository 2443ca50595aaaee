import uuid

from evaluator.config import settings
from evaluator.models.document import Chunk, InputMode


def split_words(text: str) -> list[str]:
    # str.split() with no separator drops empty tokens
    return text.split()


def count_words(text: str) -> int:
    return len(split_words(text))


def chunk_text(text: str, chunk_size: int | None = None) -> list[Chunk]:
    """partition the word sequence into consecutive groups of chunk_size words.
    the last group may be smaller; bounds are inclusive word offsets."""
    size = settings.chunk_size_words if chunk_size is None else chunk_size
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")

    words = split_words(text)
    chunks: list[Chunk] = []
    for start in range(0, len(words), size):
        group = words[start : start + size]
        chunks.append(Chunk(
            id=uuid.uuid4().hex,
            content=" ".join(group),
            word_count=len(group),
            start_index=start,
            end_index=start + len(group) - 1,
        ))
    return chunks


def select_input_mode(text: str, chunk_size: int | None = None) -> InputMode:
    """documents over one chunk need an explicit chunk selection before analysis"""
    size = settings.chunk_size_words if chunk_size is None else chunk_size
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    if count_words(text) <= size:
        return InputMode.DIRECT
    return InputMode.CHUNKED


def join_chunks(chunks: list[Chunk], selected_ids: list[str]) -> str:
    wanted = set(selected_ids)
    return "\n\n".join(c.content for c in chunks if c.id in wanted)
