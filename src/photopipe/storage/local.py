"""Local filesystem storage backend."""

import asyncio
import logging
from pathlib import Path

from photopipe.core.exceptions import UploadError
from photopipe.storage.base import BlobStore

logger = logging.getLogger(__name__)


class LocalStorageBackend(BlobStore):
    """Local filesystem storage backend for development."""

    def __init__(self, base_path: str = "./data/photos", public_base_url: str = ""):
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/") or "/media"

    async def ensure_container(self) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _write(self, data: bytes, object_name: str) -> Path:
        target_path = (self.base_path / object_name).resolve()
        if self.base_path.resolve() not in target_path.parents:
            raise UploadError(f"Object name escapes storage root: {object_name}")

        target_path.parent.mkdir(parents=True, exist_ok=True)
        # Exclusive create: an existing object is never overwritten
        with open(target_path, "xb") as f:
            f.write(data)
        return target_path

    async def store(self, data: bytes, object_name: str, mime_type: str) -> str:
        """Write bytes under the storage root and return their URL."""
        try:
            await self.ensure_container()
            target_path = await asyncio.to_thread(self._write, data, object_name)
        except OSError as e:
            raise UploadError(f"Local write failed: {type(e).__name__}") from e

        logger.info(
            "Stored object on local filesystem",
            extra={"object_name": object_name, "path": str(target_path), "size_bytes": len(data)},
        )
        return f"{self.public_base_url}/{object_name}"

    def get_backend_name(self) -> str:
        return "local"
