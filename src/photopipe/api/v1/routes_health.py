"""Health check endpoint for the photo ingestion service."""

from fastapi import APIRouter, Request

from photopipe.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports which storage backend and moderation failure policy the
    running pipeline was built with. Makes no outbound calls.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        return {
            "status": "starting",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "environment": settings.ENV,
        }

    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "environment": settings.ENV,
        "storage_backend": pipeline.blob_store.get_backend_name(),
        "moderation_failure_policy": pipeline.moderation.failure_policy.name,
    }
