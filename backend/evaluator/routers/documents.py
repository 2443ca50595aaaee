import logging

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse

from evaluator.config import settings
from evaluator.models.analysis import DownloadRequest
from evaluator.models.document import ProcessedFile
from evaluator.services.document import ExtractionError, UnsupportedFormatError, process_file

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload", response_model=ProcessedFile, response_model_exclude_none=True)
async def upload_document(file: UploadFile = File(...)) -> ProcessedFile:
    if not file.filename:
        raise HTTPException(400, "no file uploaded")

    # read one byte past the ceiling so oversized uploads are detectable
    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(413, f"file exceeds {settings.max_upload_bytes // (1024 * 1024)} MB limit")

    try:
        return process_file(file.filename, content)
    except (UnsupportedFormatError, ExtractionError) as exc:
        raise HTTPException(500, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))


@router.post("/download")
async def download(body: DownloadRequest) -> PlainTextResponse:
    if not body.content:
        raise HTTPException(400, "no content to download")
    filename = (body.filename or "").replace('"', "").replace("\n", "") or "analysis-results.txt"
    return PlainTextResponse(
        body.content,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
