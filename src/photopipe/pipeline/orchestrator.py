"""Photo ingestion orchestrator.

One call to ``PhotoPipeline.process`` walks a single upload through
VALIDATE -> NORMALIZE -> MODERATE -> UPLOAD -> PERSIST. The first failing
stage ends the run; nothing is written to storage or the database before
moderation has approved the sanitized bytes.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from photopipe.core.exceptions import (
    ModerationRejected,
    PersistenceError,
    PhotoPipelineError,
    RequestAborted,
    ValidationError,
)
from photopipe.core.logging import request_id_context
from photopipe.db.recorder import MetadataRecorder
from photopipe.models.photo import ErrorResponse
from photopipe.pipeline.moderation import ModerationService
from photopipe.pipeline.normalizer import Normalizer
from photopipe.pipeline.types import ModerationDecision, ModerationVerdict, UploadRequest
from photopipe.pipeline.validator import Validator
from photopipe.storage.base import BlobStore, generate_object_name

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class PipelineStage(str, Enum):
    """Stages of one pipeline run."""

    VALIDATE = "VALIDATE"
    NORMALIZE = "NORMALIZE"
    MODERATE = "MODERATE"
    UPLOAD = "UPLOAD"
    PERSIST = "PERSIST"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of a successful pipeline run."""

    photo_id: uuid.UUID
    url: str
    object_name: str
    request_id: str
    original_size: int
    processed_size: int
    width: int
    height: int
    final_mime_type: str
    original_mime_type: str
    moderation: ModerationVerdict
    exif_stripped: bool = True

    @property
    def size_reduction_percent(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return round((1 - self.processed_size / self.original_size) * 100, 2)


class PhotoPipeline:
    """Validates, sanitizes, moderates, stores and records uploaded images.

    Holds only collaborators and immutable limits, so a single instance
    serves every request concurrently.
    """

    def __init__(
        self,
        validator: Validator,
        normalizer: Normalizer,
        moderation: ModerationService,
        blob_store: BlobStore,
        recorder: MetadataRecorder,
        strict_mode: bool = False,
    ):
        self.validator = validator
        self.normalizer = normalizer
        self.moderation = moderation
        self.blob_store = blob_store
        self.recorder = recorder
        self.strict_mode = strict_mode

    async def process(
        self, request: UploadRequest, is_disconnected: Optional[DisconnectCheck] = None
    ) -> PipelineResult:
        """Run one upload through every stage.

        Args:
            request: The buffered upload
            is_disconnected: Optional async callable reporting whether the
                client went away; checked between stages

        Returns:
            PipelineResult describing the stored photo

        Raises:
            ValidationError: The upload is not an acceptable image
            ModerationRejected: Moderation refused the content
            PhotoPipelineError: Any internal failure (see ``category``)
        """
        token = request_id_context.set(request.request_id)
        start_time = time.perf_counter()
        try:
            result = await self._run(request, is_disconnected)
        except Exception as e:
            logger.info(
                "Pipeline finished",
                extra={
                    "request_id": request.request_id,
                    "stage": PipelineStage.FAILED.value,
                    "media_purpose": request.purpose.value,
                    "error_type": type(e).__name__,
                    "duration_ms": _elapsed_ms(start_time),
                },
            )
            raise
        finally:
            request_id_context.reset(token)

        logger.info(
            "Pipeline finished",
            extra={
                "request_id": request.request_id,
                "stage": PipelineStage.DONE.value,
                "media_purpose": request.purpose.value,
                "object_name": result.object_name,
                "moderation_decision": result.moderation.decision.value,
                "duration_ms": _elapsed_ms(start_time),
            },
        )
        return result

    async def _run(self, request: UploadRequest, is_disconnected: Optional[DisconnectCheck]) -> PipelineResult:
        async with self._stage(PipelineStage.VALIDATE, request):
            self.validator.validate(request)

        await self._ensure_connected(is_disconnected, PipelineStage.NORMALIZE, request)
        async with self._stage(PipelineStage.NORMALIZE, request):
            processed = await asyncio.to_thread(
                self.normalizer.normalize, request.data, request.declared_mime_type
            )

        await self._ensure_connected(is_disconnected, PipelineStage.MODERATE, request)
        async with self._stage(PipelineStage.MODERATE, request):
            verdict = await asyncio.shield(
                self.moderation.moderate(processed.data, processed.mime_type, request.user_id, request.purpose)
            )
            if verdict.warning:
                logger.warning(
                    "Upload accepted without moderation",
                    extra={"request_id": request.request_id, "warning": verdict.warning},
                )
            if not self._accepts(verdict):
                raise ModerationRejected(verdict)

        await self._ensure_connected(is_disconnected, PipelineStage.UPLOAD, request)
        object_name = generate_object_name(request.user_id, request.purpose, processed.extension)
        async with self._stage(PipelineStage.UPLOAD, request):
            url = await asyncio.shield(self.blob_store.store(processed.data, object_name, processed.mime_type))

        await self._ensure_connected(is_disconnected, PipelineStage.PERSIST, request)
        async with self._stage(PipelineStage.PERSIST, request):
            try:
                record = await asyncio.shield(
                    self.recorder.record(request, processed, url, object_name, verdict)
                )
            except PersistenceError:
                # Reconciliation of unrecorded objects happens outside this service
                logger.error(
                    "Stored object has no metadata record",
                    extra={"request_id": request.request_id, "object_name": object_name, "url": url},
                )
                raise

        return PipelineResult(
            photo_id=record.id,
            url=url,
            object_name=object_name,
            request_id=request.request_id,
            original_size=request.size,
            processed_size=processed.size,
            width=processed.width,
            height=processed.height,
            final_mime_type=processed.mime_type,
            original_mime_type=request.declared_mime_type,
            moderation=verdict,
        )

    def _accepts(self, verdict: ModerationVerdict) -> bool:
        if verdict.decision == ModerationDecision.REJECT:
            return False
        if verdict.decision == ModerationDecision.NEEDS_REVIEW and self.strict_mode:
            return False
        return True

    async def _ensure_connected(
        self, is_disconnected: Optional[DisconnectCheck], next_stage: PipelineStage, request: UploadRequest
    ) -> None:
        if is_disconnected is None or not await is_disconnected():
            return
        logger.warning(
            "Client disconnected, stopping pipeline",
            extra={
                "request_id": request.request_id,
                "stage": next_stage.value,
                "media_purpose": request.purpose.value,
            },
        )
        raise RequestAborted(f"Client disconnected before {next_stage.value}")

    @asynccontextmanager
    async def _stage(self, stage: PipelineStage, request: UploadRequest) -> AsyncIterator[None]:
        """Log start, completion or failure of one stage."""
        extra = {
            "request_id": request.request_id,
            "stage": stage.value,
            "media_purpose": request.purpose.value,
        }
        logger.info("stage_start", extra=extra)
        start_time = time.perf_counter()

        try:
            yield
        except (ValidationError, ModerationRejected) as e:
            logger.warning(
                "stage_failed",
                extra={
                    **extra,
                    "duration_ms": _elapsed_ms(start_time),
                    "error_category": e.category,
                    "error": str(e),
                },
            )
            raise
        except Exception as e:
            logger.error(
                "stage_failed",
                extra={
                    **extra,
                    "duration_ms": _elapsed_ms(start_time),
                    "error_category": getattr(e, "category", PhotoPipelineError.category),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

        logger.info("stage_complete", extra={**extra, "duration_ms": _elapsed_ms(start_time)})


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


def to_client_error(exc: Exception, request_id: str) -> ErrorResponse:
    """Translate a pipeline failure into the body returned to the caller.

    Only validation and moderation failures carry detail; everything else
    is reported as an opaque internal error.
    """
    if isinstance(exc, ValidationError):
        return ErrorResponse(
            error=ValidationError.category,
            message=exc.message,
            request_id=request_id,
            check=exc.check,
        )
    if isinstance(exc, ModerationRejected):
        return ErrorResponse(
            error=ModerationRejected.category,
            message="Image was rejected by content moderation.",
            request_id=request_id,
            moderation_category=exc.verdict.category,
        )

    retryable = bool(getattr(exc, "retryable", False))
    message = "Photo upload failed. Please try again." if retryable else "Photo upload failed."
    return ErrorResponse(
        error=PhotoPipelineError.category,
        message=message,
        request_id=request_id,
        retryable=retryable,
    )
