"""File upload endpoint for tempo analysis."""

import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from bpmsense.analysis.service import TempoService
from bpmsense.api.schemas import TempoResponse
from bpmsense.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aac", ".wma"}

service = TempoService()


def file_suffix(filename: str | None) -> str:
    if filename and "." in filename:
        return "." + filename.rsplit(".", 1)[-1].lower()
    return ""


@router.post("/analyze", response_model=TempoResponse)
async def analyze_file(file: UploadFile = File(...), beat_mode: str | None = None):
    """Estimate tempo and beat type of an uploaded audio file."""
    suffix = file_suffix(file.filename)
    if suffix and suffix not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    content = await file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    try:
        result = await service.analyze(content, beat_mode, suffix=suffix)
    except Exception:
        logger.exception(f"Analysis of {file.filename!r} failed")
        raise HTTPException(500, "Analysis failed")

    if result is None:
        raise HTTPException(422, "No tempo could be estimated from this audio")
    return TempoResponse(**result.to_dict())
