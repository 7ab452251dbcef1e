"""Storage backend selection."""

from photopipe.core.config import Settings
from photopipe.core.exceptions import ConfigurationError
from photopipe.storage.base import BlobStore
from photopipe.storage.gcs import GCSStorageBackend
from photopipe.storage.local import LocalStorageBackend


def get_storage_backend(settings: Settings) -> BlobStore:
    """Build the blob store named by STORAGE_BACKEND.

    Raises:
        ConfigurationError: If the backend is unknown or misconfigured
    """
    backend = settings.STORAGE_BACKEND.strip().lower()

    if backend == "gcs":
        if not settings.GCS_BUCKET_NAME:
            raise ConfigurationError("GCS_BUCKET_NAME not configured")
        return GCSStorageBackend(
            bucket_name=settings.GCS_BUCKET_NAME,
            project_id=settings.GCP_PROJECT_ID,
            location=settings.GCP_REGION,
            public_base_url=settings.PUBLIC_BASE_URL,
            timeout_seconds=settings.STORAGE_TIMEOUT_SECONDS,
        )
    if backend == "local":
        return LocalStorageBackend(
            base_path=settings.LOCAL_STORAGE_PATH,
            public_base_url=settings.PUBLIC_BASE_URL,
        )
    raise ConfigurationError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
