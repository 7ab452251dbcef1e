"""Startup wiring for the photo pipeline."""

import logging

from photopipe.core.config import Settings
from photopipe.core.exceptions import ConfigurationError
from photopipe.db.database import create_engine, create_session_factory
from photopipe.db.recorder import MetadataRecorder
from photopipe.pipeline.moderation import (
    ModerationClient,
    ModerationService,
    OpenAIModerationClient,
    UnconfiguredModerationClient,
    select_failure_policy,
)
from photopipe.pipeline.normalizer import Normalizer
from photopipe.pipeline.orchestrator import PhotoPipeline
from photopipe.pipeline.validator import Validator
from photopipe.storage.factory import get_storage_backend

logger = logging.getLogger(__name__)


def build_moderation_client(settings: Settings) -> ModerationClient:
    """Build the moderation client for this deployment.

    Raises:
        ConfigurationError: If a production-grade env has no API key
    """
    if not settings.OPENAI_API_KEY:
        if settings.is_production_grade:
            raise ConfigurationError(f"OPENAI_API_KEY is required in ENV={settings.ENV}")
        logger.warning(
            "OPENAI_API_KEY not set, moderation calls will use the failure policy",
            extra={"env": settings.ENV},
        )
        return UnconfiguredModerationClient()

    return OpenAIModerationClient(
        api_key=settings.OPENAI_API_KEY,
        model=settings.MODERATION_MODEL,
        base_url=settings.OPENAI_BASE_URL or None,
        timeout=settings.MODERATION_TIMEOUT_SECONDS,
        review_threshold=settings.MODERATION_REVIEW_THRESHOLD,
        reject_threshold=settings.MODERATION_REJECT_THRESHOLD,
    )


def build_pipeline(settings: Settings) -> PhotoPipeline:
    """Construct the pipeline and all of its collaborators.

    Args:
        settings: Application settings

    Returns:
        A ready PhotoPipeline; table creation and connection shutdown go
        through ``pipeline.recorder``

    Raises:
        ConfigurationError: On missing credentials or invalid settings
    """
    if not settings.DATABASE_URL:
        raise ConfigurationError("DATABASE_URL not configured")

    failure_policy = select_failure_policy(settings)
    client = build_moderation_client(settings)
    blob_store = get_storage_backend(settings)

    engine = create_engine(settings.DATABASE_URL)
    recorder = MetadataRecorder(
        create_session_factory(engine),
        timeout_seconds=settings.DATABASE_TIMEOUT_SECONDS,
        engine=engine,
    )

    pipeline = PhotoPipeline(
        validator=Validator(
            min_bytes=settings.MIN_UPLOAD_BYTES,
            max_bytes=settings.max_upload_bytes,
            min_dimension=settings.MIN_IMAGE_DIMENSION,
            max_dimension=settings.MAX_IMAGE_DIMENSION,
        ),
        normalizer=Normalizer(webp_quality=settings.NORMALIZE_WEBP_QUALITY),
        moderation=ModerationService(
            client,
            failure_policy,
            timeout_seconds=settings.MODERATION_TIMEOUT_SECONDS,
        ),
        blob_store=blob_store,
        recorder=recorder,
        strict_mode=settings.MODERATION_STRICT_MODE,
    )

    logger.info(
        "Photo pipeline configured",
        extra={
            "env": settings.ENV,
            "storage_backend": blob_store.get_backend_name(),
            "failure_policy": failure_policy.name,
            "moderation_model": client.model,
            "strict_mode": settings.MODERATION_STRICT_MODE,
        },
    )
    return pipeline
