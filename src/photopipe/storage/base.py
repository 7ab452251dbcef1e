"""Abstract blob storage interface."""

import re
import uuid
from abc import ABC, abstractmethod

from photopipe.pipeline.types import MediaPurpose

# Object names are unique per upload, so stored content never changes
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def sanitize_path_component(value: str) -> str:
    """Remove path traversal and dangerous characters."""
    safe = value.replace("../", "").replace("..\\", "")
    safe = safe.replace("/", "_").replace("\\", "_")
    safe = re.sub(r"[^a-zA-Z0-9._-]", "_", safe)
    safe = safe.strip(".")
    return safe[:255] or "_"


def generate_object_name(user_id: str, purpose: MediaPurpose, extension: str) -> str:
    """Generate a globally unique object name.

    Pattern: {purpose}/{user_id}/{uuid4 hex}.{extension}
    """
    return (
        f"{purpose.value.lower()}/{sanitize_path_component(user_id)}/"
        f"{uuid.uuid4().hex}.{sanitize_path_component(extension)}"
    )


class BlobStore(ABC):
    """Abstract base class for blob storage backends."""

    @abstractmethod
    async def ensure_container(self) -> None:
        """Create the target container if it does not exist. Idempotent."""
        pass

    @abstractmethod
    async def store(self, data: bytes, object_name: str, mime_type: str) -> str:
        """Upload bytes under ``object_name``.

        Args:
            data: Object content
            object_name: Unique object name
            mime_type: Content type of the object

        Returns:
            Public URL of the stored object

        Raises:
            TransientUploadError: On network/availability failures
            UploadError: On any other storage failure
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass
