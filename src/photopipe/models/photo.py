"""Photo upload data models."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from photopipe.pipeline.types import ModerationDecision


class ModerationSummary(BaseModel):
    """Moderation outcome attached to an accepted upload."""

    decision: ModerationDecision
    category: str
    confidence: float
    reason: Optional[str] = None
    fallback: bool = False


class PhotoUploadResponse(BaseModel):
    """Response model for a stored photo."""

    photo_id: UUID
    url: str
    object_name: str
    request_id: str
    original_size: int
    processed_size: int
    size_reduction_percent: float
    width: int
    height: int
    final_mime_type: str
    original_mime_type: str
    exif_stripped: bool
    moderation: ModerationSummary


class ErrorResponse(BaseModel):
    """Error body returned for any failed upload."""

    error: str
    message: str
    request_id: str
    retryable: bool = False
    check: Optional[str] = None
    moderation_category: Optional[str] = None
