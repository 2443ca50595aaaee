import io
import logging
import os
import tempfile

import docx
import pdfplumber

from evaluator.config import settings
from evaluator.models.document import ProcessedFile
from evaluator.services.chunker import chunk_text, count_words

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".pdf", ".doc", ".docx"}


class UnsupportedFormatError(ValueError):
    pass


class ExtractionError(RuntimeError):
    """a supported file that could not be read; message is safe to show users"""


def process_file(filename: str, content: bytes) -> ProcessedFile:
    ext = os.path.splitext(filename)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"unsupported file type: {ext or filename}")

    if not content:
        raise ValueError("empty file")

    if ext == ".txt":
        text = content.decode("utf-8", errors="replace")
    elif ext == ".pdf":
        text = _extract_pdf(content)
    else:
        text = _extract_word(content)

    word_count = count_words(text)
    chunks = chunk_text(text) if word_count > settings.chunk_size_words else None
    logger.info(
        "processed %s: %d words, %d chunks", filename, word_count, len(chunks or []),
    )
    return ProcessedFile(filename=filename, content=text, word_count=word_count, chunks=chunks)


def _extract_pdf(content: bytes) -> str:
    with tempfile.NamedTemporaryFile(suffix=".pdf", delete=False) as tmp:
        tmp.write(content)
        tmp_path = tmp.name

    try:
        with pdfplumber.open(tmp_path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:
        logger.warning("pdf extraction failed: %s", exc)
        raise ExtractionError(
            "failed to process PDF file. please ensure the file is not corrupted."
        ) from exc
    finally:
        os.unlink(tmp_path)

    return "\n".join(p for p in pages if p.strip())


def _extract_word(content: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(content))
    except Exception as exc:
        logger.warning("word extraction failed: %s", exc)
        raise ExtractionError(
            "failed to process Word document. please ensure the file is not corrupted."
        ) from exc
    return "\n".join(p.text for p in document.paragraphs)
