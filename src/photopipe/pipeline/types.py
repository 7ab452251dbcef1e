"""Value types passed between pipeline stages."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

CAPTION_MAX_LENGTH = 200
GALLERY_MAX_LENGTH = 200
USER_ID_MAX_LENGTH = 100
REQUEST_ID_MAX_LENGTH = 100


class MediaPurpose(str, Enum):
    """Semantic role of an uploaded image."""

    AVATAR = "AVATAR"
    POST_MEDIA = "POST_MEDIA"
    GALLERY = "GALLERY"
    PROFILE_BANNER = "PROFILE_BANNER"


class ModerationDecision(str, Enum):
    """Ternary moderation outcome."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"
    NEEDS_REVIEW = "NEEDS_REVIEW"


@dataclass(frozen=True)
class UploadRequest:
    """One uploaded file, fully buffered, plus who uploaded it and why."""

    data: bytes
    declared_mime_type: str
    user_id: str
    purpose: MediaPurpose = MediaPurpose.POST_MEDIA
    declared_size: Optional[int] = None
    filename: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    gallery: Optional[str] = None
    caption: Optional[str] = None

    def __post_init__(self):
        if self.declared_size is None:
            object.__setattr__(self, "declared_size", len(self.data))
        if self.caption is not None:
            object.__setattr__(self, "caption", self.caption[:CAPTION_MAX_LENGTH])
        object.__setattr__(self, "request_id", self.request_id[:REQUEST_ID_MAX_LENGTH])

    @property
    def size(self) -> int:
        """Actual byte length of the buffer."""
        return len(self.data)


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of a passed validation with the probed pixel dimensions."""

    valid: bool
    width: int
    height: int
    detected_format: str
    failed_check: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ProcessedImage:
    """Sanitized image bytes ready for moderation and storage."""

    data: bytes
    mime_type: str
    extension: str
    width: int
    height: int
    animated: bool = False
    frame_count: int = 1

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ModerationVerdict:
    """Immutable moderation outcome embedded into the stored record."""

    decision: ModerationDecision
    category: str
    confidence: float
    reason: Optional[str] = None
    fallback: bool = False
    warning: Optional[str] = None
    model: str = ""
    processing_ms: int = 0

    @property
    def approved(self) -> bool:
        return self.decision != ModerationDecision.REJECT
