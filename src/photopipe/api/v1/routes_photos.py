"""Photo upload API routes."""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from photopipe.core.exceptions import PhotoPipelineError, ValidationError
from photopipe.models.photo import ErrorResponse, ModerationSummary, PhotoUploadResponse
from photopipe.pipeline.orchestrator import PhotoPipeline, PipelineResult, to_client_error
from photopipe.pipeline.types import MediaPurpose, UploadRequest

router = APIRouter(prefix="/api/v1", tags=["photos"])
logger = logging.getLogger(__name__)

HTTP_STATUS_BY_CATEGORY = {
    "validation_error": 400,
    "moderation_rejected": 422,
    "internal_error": 500,
}


def get_pipeline(request: Request) -> PhotoPipeline:
    """Return the pipeline built at startup."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Photo pipeline not initialized")
    return pipeline


def _error_response(exc: Exception, request_id: str) -> JSONResponse:
    body = to_client_error(exc, request_id)
    return JSONResponse(
        status_code=HTTP_STATUS_BY_CATEGORY[body.error],
        content=body.model_dump(exclude_none=True),
    )


def _to_response(result: PipelineResult) -> PhotoUploadResponse:
    verdict = result.moderation
    return PhotoUploadResponse(
        photo_id=result.photo_id,
        url=result.url,
        object_name=result.object_name,
        request_id=result.request_id,
        original_size=result.original_size,
        processed_size=result.processed_size,
        size_reduction_percent=result.size_reduction_percent,
        width=result.width,
        height=result.height,
        final_mime_type=result.final_mime_type,
        original_mime_type=result.original_mime_type,
        exif_stripped=result.exif_stripped,
        moderation=ModerationSummary(
            decision=verdict.decision,
            category=verdict.category,
            confidence=verdict.confidence,
            reason=verdict.reason,
            fallback=verdict.fallback,
        ),
    )


@router.post(
    "/photos",
    response_model=PhotoUploadResponse,
    status_code=201,
    responses={
        400: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def upload_photo(
    request: Request,
    file: UploadFile = File(...),
    purpose: MediaPurpose = Form(MediaPurpose.POST_MEDIA),
    gallery: Optional[str] = Form(None),
    caption: Optional[str] = Form(None),
    x_user_id: str = Header(...),
    pipeline: PhotoPipeline = Depends(get_pipeline),
):
    """Upload one image through the ingestion pipeline.

    The user id comes from the X-User-Id header set by the upstream
    authentication layer.
    """
    request_id = getattr(request.state, "request_id", None) or uuid.uuid4().hex

    user_id = x_user_id.strip()
    if not user_id:
        return _error_response(ValidationError("user_id", "X-User-Id header is empty."), request_id)

    # Read at most one byte past the limit; the size check rejects the rest
    data = await file.read(pipeline.validator.max_bytes + 1)

    upload_request = UploadRequest(
        data=data,
        declared_mime_type=file.content_type or "",
        user_id=user_id,
        purpose=purpose,
        declared_size=file.size,
        filename=file.filename,
        request_id=request_id,
        gallery=gallery or None,
        caption=caption or None,
    )

    try:
        result = await pipeline.process(upload_request, is_disconnected=request.is_disconnected)
    except PhotoPipelineError as e:
        return _error_response(e, request_id)
    except Exception as e:
        logger.error(
            "Unexpected error during photo upload",
            extra={"request_id": request_id, "error_type": type(e).__name__},
            exc_info=True,
        )
        return _error_response(e, request_id)

    return _to_response(result)
