"""Google Cloud Storage backend."""

import asyncio
import logging
from typing import Optional

import requests
from google.api_core import exceptions as gcs_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

from photopipe.core.exceptions import TransientUploadError, UploadError
from photopipe.storage.base import IMMUTABLE_CACHE_CONTROL, BlobStore

logger = logging.getLogger(__name__)

# Failures worth a retry by the caller: availability, throttling, network
TRANSIENT_ERRORS = (
    gcs_exceptions.ServiceUnavailable,
    gcs_exceptions.InternalServerError,
    gcs_exceptions.BadGateway,
    gcs_exceptions.GatewayTimeout,
    gcs_exceptions.TooManyRequests,
    gcs_exceptions.DeadlineExceeded,
    auth_exceptions.TransportError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


class GCSStorageBackend(BlobStore):
    """Google Cloud Storage backend."""

    def __init__(
        self,
        bucket_name: str,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        public_base_url: str = "",
        timeout_seconds: float = 30.0,
    ):
        self.bucket_name = bucket_name
        self.project_id = project_id or None
        self.location = location or None
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client: Optional[storage.Client] = None

    def _get_client(self) -> storage.Client:
        """Lazy-load and cache the GCS client."""
        if self._client is None:
            if not self.bucket_name:
                raise ValueError("GCS_BUCKET_NAME not configured")
            self._client = storage.Client(project=self.project_id)
        return self._client

    def _ensure_bucket(self) -> storage.Bucket:
        client = self._get_client()
        bucket = client.lookup_bucket(self.bucket_name, timeout=self.timeout_seconds)
        if bucket is not None:
            return bucket

        try:
            bucket = client.create_bucket(self.bucket_name, location=self.location, timeout=self.timeout_seconds)
            logger.info("Created GCS bucket", extra={"bucket": self.bucket_name, "location": self.location})
        except gcs_exceptions.Conflict:
            # Created concurrently by another request
            bucket = client.bucket(self.bucket_name)
        return bucket

    def _upload(self, data: bytes, object_name: str, mime_type: str) -> str:
        bucket = self._ensure_bucket()
        blob = bucket.blob(object_name)
        blob.cache_control = IMMUTABLE_CACHE_CONTROL
        blob.content_disposition = "inline"
        blob.upload_from_string(data, content_type=mime_type, timeout=self.timeout_seconds)
        return self.public_url(object_name)

    def public_url(self, object_name: str) -> str:
        """Public URL of an object, through PUBLIC_BASE_URL when set."""
        if self.public_base_url:
            return f"{self.public_base_url}/{object_name}"
        return f"https://storage.googleapis.com/{self.bucket_name}/{object_name}"

    async def ensure_container(self) -> None:
        try:
            await asyncio.wait_for(asyncio.to_thread(self._ensure_bucket), timeout=self.timeout_seconds)
        except TRANSIENT_ERRORS as e:
            raise TransientUploadError(f"GCS unavailable while checking bucket: {type(e).__name__}") from e
        except gcs_exceptions.GoogleAPIError as e:
            raise UploadError(f"GCS bucket check failed: {type(e).__name__}") from e

    async def store(self, data: bytes, object_name: str, mime_type: str) -> str:
        """Upload bytes to GCS and return the public URL."""
        try:
            url = await asyncio.wait_for(
                asyncio.to_thread(self._upload, data, object_name, mime_type),
                timeout=self.timeout_seconds,
            )
        except TRANSIENT_ERRORS as e:
            logger.warning(
                "Transient GCS upload failure",
                extra={"bucket": self.bucket_name, "object_name": object_name, "error_type": type(e).__name__},
            )
            raise TransientUploadError(f"GCS upload failed: {type(e).__name__}") from e
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(
                "GCS upload rejected",
                extra={"bucket": self.bucket_name, "object_name": object_name, "error": str(e)},
            )
            raise UploadError(f"GCS upload rejected: {type(e).__name__}") from e

        logger.info(
            "Uploaded object to GCS",
            extra={"bucket": self.bucket_name, "object_name": object_name, "size_bytes": len(data)},
        )
        return url

    def get_backend_name(self) -> str:
        return "gcs"
