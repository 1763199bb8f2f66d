"""
FastAPI routes for the highlight reel pipeline.

Mount in main.py:
    app.include_router(pipeline_router)
"""

import re
import base64
import binascii
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from .errors import PipelineError, ValidationError
from .models import (
    GenerateVideoRequest,
    GenerateVideoResponse,
    PipelineStatusResponse,
    ReelsResponse,
    StorageCategory,
)
from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

pipeline_router = APIRouter(prefix="/api", tags=["pipeline"])

ERROR_STATUS_CODES = {
    "validation": 400,
    "upstream": 502,
    "timeout": 504,
}

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)


def decode_photo(photo: str) -> tuple[bytes, str]:
    """Decode a base64 string or data: URI into (bytes, mime type)."""
    mime_type = "image/jpeg"
    payload = (photo or "").strip()

    match = _DATA_URI.match(payload)
    if match:
        mime_type = match.group("mime") or mime_type
        payload = match.group("data")
    elif payload.startswith("data:"):
        raise ValidationError("photo data URI must be base64 encoded")

    try:
        photo_bytes = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"photo is not valid base64: {e}") from e

    if not photo_bytes:
        raise ValidationError("photo must not be empty")
    return photo_bytes, mime_type


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


def _error_response(error: PipelineError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(error.kind, 500)
    body = GenerateVideoResponse(status=status_code, errors=error.to_dict())
    return JSONResponse(status_code=status_code, content=body.model_dump())


# ── Generation ───────────────────────────────────────────────────────────────

@pipeline_router.post("/generate-video", response_model=GenerateVideoResponse)
async def generate_video(body: GenerateVideoRequest, request: Request):
    """Run the whole pipeline and return the script, voiceover and video URLs."""
    orchestrator = get_orchestrator(request)
    try:
        photo, mime_type = decode_photo(body.photo)
        result = await orchestrator.run(body.sports, photo, mime_type)
    except PipelineError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"generate-video failed unexpectedly: {e}", exc_info=True)
        envelope = GenerateVideoResponse(status=500, errors={"kind": "internal", "error": str(e)})
        return JSONResponse(status_code=500, content=envelope.model_dump())

    return GenerateVideoResponse(
        status=200,
        data={"success": True, **result.model_dump(by_alias=True)},
    )


@pipeline_router.post("/pipeline/jobs", status_code=202, response_model=PipelineStatusResponse)
async def start_pipeline_job(body: GenerateVideoRequest, request: Request):
    """Start the pipeline in the background and return its request id."""
    orchestrator = get_orchestrator(request)
    try:
        photo, mime_type = decode_photo(body.photo)
        return orchestrator.submit(body.sports, photo, mime_type)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())


@pipeline_router.get("/pipeline/jobs/{request_id}", response_model=PipelineStatusResponse)
async def get_pipeline_job(request_id: str, request: Request):
    status = get_orchestrator(request).get_status(request_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


# ── Reels ────────────────────────────────────────────────────────────────────

@pipeline_router.get("/get-reels", response_model=ReelsResponse)
async def get_reels(request: Request):
    """Published reels: the configured REEL_URLS, or whatever sits under reel/."""
    orchestrator = get_orchestrator(request)
    if orchestrator.settings.reel_urls:
        return ReelsResponse(data={"success": True, "videos": orchestrator.settings.reel_urls})

    try:
        videos = await orchestrator.store.list_urls(StorageCategory.REEL)
    except PipelineError as e:
        logger.error(f"Listing reels failed: {e}")
        return JSONResponse(
            status_code=502,
            content=ReelsResponse(status=502, errors=e.to_dict()).model_dump(),
        )
    return ReelsResponse(data={"success": True, "videos": videos})
