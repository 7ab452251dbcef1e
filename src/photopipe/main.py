"""Main application entrypoint for the photo ingestion service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from photopipe.api.v1 import routes_health
from photopipe.api.v1.routes_photos import router as photos_router
from photopipe.core.config import settings
from photopipe.core.exceptions import UploadError
from photopipe.core.logging import setup_logging
from photopipe.core.middleware import RequestContextMiddleware
from photopipe.pipeline.factory import build_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline once; fail startup on bad configuration."""
    pipeline = build_pipeline(settings)

    if settings.DATABASE_AUTO_CREATE:
        await pipeline.recorder.create_tables()

    try:
        await pipeline.blob_store.ensure_container()
    except UploadError as e:
        # Every upload re-checks the container, so startup can proceed
        logger.warning(
            "Storage container check failed at startup",
            extra={"storage_backend": pipeline.blob_store.get_backend_name(), "error": str(e)},
        )

    app.state.pipeline = pipeline
    try:
        yield
    finally:
        await pipeline.recorder.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    # Initialize logging first
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(photos_router)

    return app


# Export app instance for ASGI servers
app = create_app()
