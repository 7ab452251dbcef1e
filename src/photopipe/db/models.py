"""PhotoRecord model - photo metadata (bytes live in blob storage)."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from photopipe.pipeline.types import (
    CAPTION_MAX_LENGTH,
    GALLERY_MAX_LENGTH,
    REQUEST_ID_MAX_LENGTH,
    USER_ID_MAX_LENGTH,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PhotoRecord(Base):
    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(USER_ID_MAX_LENGTH), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    object_name: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    original_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processed_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    original_mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    moderation_decision: Mapped[str] = mapped_column(String(20), nullable=False)
    moderation_category: Mapped[str] = mapped_column(String(100), nullable=False)
    moderation_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    moderation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    moderation_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    purpose: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    gallery: Mapped[str | None] = mapped_column(String(GALLERY_MAX_LENGTH), nullable=True)
    caption: Mapped[str | None] = mapped_column(String(CAPTION_MAX_LENGTH), nullable=True)
    exif_stripped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    request_id: Mapped[str] = mapped_column(String(REQUEST_ID_MAX_LENGTH), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
