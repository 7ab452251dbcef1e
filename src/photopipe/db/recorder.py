"""Metadata persistence for processed photos."""

import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from photopipe.core.exceptions import PersistenceError
from photopipe.db.database import create_tables
from photopipe.db.models import PhotoRecord
from photopipe.pipeline.types import (
    MediaPurpose,
    ModerationVerdict,
    ProcessedImage,
    UploadRequest,
)

logger = logging.getLogger(__name__)


class MetadataRecorder:
    """Writes one PhotoRecord row per successful upload."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 10.0,
        engine: Optional[AsyncEngine] = None,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.engine = engine

    async def create_tables(self) -> None:
        if self.engine is not None:
            await create_tables(self.engine)

    async def dispose(self) -> None:
        """Close pooled connections."""
        if self.engine is not None:
            await self.engine.dispose()

    async def persist(
        self,
        user_id: str,
        url: str,
        object_name: str,
        original_size: int,
        processed_size: int,
        width: int,
        height: int,
        mime_type: str,
        original_mime_type: str,
        moderation: ModerationVerdict,
        purpose: MediaPurpose,
        request_id: str,
        gallery: str | None = None,
        caption: str | None = None,
    ) -> PhotoRecord:
        """Insert the photo record in a single transaction.

        Raises:
            PersistenceError: If the insert fails or times out
        """
        record = PhotoRecord(
            user_id=user_id,
            url=url,
            object_name=object_name,
            original_size=original_size,
            processed_size=processed_size,
            width=width,
            height=height,
            mime_type=mime_type,
            original_mime_type=original_mime_type,
            moderation_decision=moderation.decision.value,
            moderation_category=moderation.category,
            moderation_confidence=moderation.confidence,
            moderation_reason=moderation.reason,
            moderation_fallback=moderation.fallback,
            purpose=purpose.value,
            gallery=gallery,
            caption=caption,
            exif_stripped=True,
            request_id=request_id,
        )

        try:
            await asyncio.wait_for(self._insert(record), timeout=self.timeout_seconds)
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            logger.error(
                "Photo record insert failed",
                extra={"object_name": object_name, "user_id": user_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise PersistenceError(f"Failed to persist photo record: {type(e).__name__}") from e

        return record

    async def record(
        self,
        request: UploadRequest,
        processed: ProcessedImage,
        url: str,
        object_name: str,
        moderation: ModerationVerdict,
    ) -> PhotoRecord:
        """Persist using the pipeline's own value types."""
        return await self.persist(
            user_id=request.user_id,
            url=url,
            object_name=object_name,
            original_size=request.size,
            processed_size=processed.size,
            width=processed.width,
            height=processed.height,
            mime_type=processed.mime_type,
            original_mime_type=request.declared_mime_type,
            moderation=moderation,
            purpose=request.purpose,
            request_id=request.request_id,
            gallery=request.gallery,
            caption=request.caption,
        )

    async def _insert(self, record: PhotoRecord) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(record)
