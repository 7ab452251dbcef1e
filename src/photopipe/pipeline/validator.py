"""
Upload validation.

Runs cheap checks first and stops at the first failure:
- fields: user id and gallery name fit their stored columns
- size: byte length within the configured bounds
- mime_type: declared type in the allow-list
- extension: filename extension (when given) in the allow-list
- signature: magic bytes at the start of the buffer match the declared type
- dimensions: header-probed width/height within the configured bounds
"""

import io
import logging
import struct
from pathlib import PurePath
from typing import Dict, List, Optional

from PIL import Image, UnidentifiedImageError

from photopipe.core.exceptions import ValidationError
from photopipe.pipeline.types import (
    GALLERY_MAX_LENGTH,
    USER_ID_MAX_LENGTH,
    UploadRequest,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: List[str] = [
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
]

ALLOWED_EXTENSIONS: List[str] = ["jpg", "jpeg", "png", "gif", "webp"]

# Magic numbers per declared MIME type
FILE_SIGNATURES: Dict[str, List[bytes]] = {
    "image/jpeg": [b"\xff\xd8\xff"],
    "image/jpg": [b"\xff\xd8\xff"],
    "image/png": [b"\x89PNG\r\n\x1a\n"],
    "image/gif": [b"GIF87a", b"GIF89a"],
    "image/webp": [b"RIFF"],
}

# Pillow format names expected for each declared MIME type
PILLOW_FORMATS: Dict[str, str] = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}


def matches_signature(data: bytes, mime_type: str) -> bool:
    """Check the leading bytes of ``data`` against the declared type."""
    signatures = FILE_SIGNATURES.get(mime_type.lower())
    if not signatures:
        return False
    if not any(data.startswith(signature) for signature in signatures):
        return False
    if mime_type.lower() == "image/webp":
        # RIFF is shared with WAV/AVI; the form type must be WEBP
        return data[8:12] == b"WEBP"
    return True


def probe_dimensions(data: bytes) -> Optional[tuple[str, int, int]]:
    """Read format and pixel size from the image header.

    ``Image.open`` is lazy: it parses the header and stops before decoding
    pixel data.

    Returns:
        (pillow_format, width, height), or None if the header is unreadable

    Raises:
        DecompressionBombError: If the header declares an absurd pixel count
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            return img.format or "", width, height
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, struct.error):
        return None


class Validator:
    """Checks an upload before any processing happens."""

    def __init__(
        self,
        min_bytes: int = 100,
        max_bytes: int = 5 * 1024 * 1024,
        min_dimension: int = 10,
        max_dimension: int = 8000,
    ):
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes
        self.min_dimension = min_dimension
        self.max_dimension = max_dimension

    def _too_large(self) -> ValidationError:
        return ValidationError(
            "dimensions",
            f"Image too large. Maximum dimensions: {self.max_dimension}x{self.max_dimension}px",
        )

    def validate(self, request: UploadRequest) -> ValidationOutcome:
        """Validate an upload.

        Args:
            request: The buffered upload

        Returns:
            Passing ValidationOutcome with probed dimensions

        Raises:
            ValidationError: On the first failed check
        """
        size = request.size
        mime_type = (request.declared_mime_type or "").lower()

        if request.declared_size is not None and request.declared_size != size:
            logger.warning(
                "Declared size differs from buffer length",
                extra={"declared_size": request.declared_size, "size": size},
            )

        if len(request.user_id) > USER_ID_MAX_LENGTH:
            raise ValidationError(
                "user_id", f"User id too long. Maximum length is {USER_ID_MAX_LENGTH} characters."
            )
        if request.gallery is not None and len(request.gallery) > GALLERY_MAX_LENGTH:
            raise ValidationError(
                "gallery", f"Gallery name too long. Maximum length is {GALLERY_MAX_LENGTH} characters."
            )

        if size < self.min_bytes:
            raise ValidationError(
                "size", f"File too small. Minimum size is {self.min_bytes} bytes."
            )
        if size > self.max_bytes:
            raise ValidationError(
                "size",
                f"File too large. Maximum size is {self.max_bytes // (1024 * 1024)}MB.",
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                "mime_type",
                f"Invalid file type. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}",
            )

        if request.filename:
            extension = PurePath(request.filename).suffix.lstrip(".").lower()
            if extension not in ALLOWED_EXTENSIONS:
                raise ValidationError(
                    "extension",
                    f"Invalid file extension. Allowed extensions: {', '.join(ALLOWED_EXTENSIONS)}",
                )

        if not matches_signature(request.data, mime_type):
            logger.info(
                "Signature mismatch",
                extra={"mime_type": mime_type, "first_bytes": request.data[:8].hex()},
            )
            raise ValidationError(
                "signature",
                "File signature does not match declared type. File may be corrupted or misnamed.",
            )

        try:
            probed = probe_dimensions(request.data)
        except Image.DecompressionBombError as e:
            raise self._too_large() from e
        if probed is None:
            raise ValidationError(
                "dimensions", "Unable to read image dimensions. File may be corrupted."
            )
        detected_format, width, height = probed

        if detected_format != PILLOW_FORMATS[mime_type]:
            raise ValidationError(
                "signature",
                "File signature does not match declared type. File may be corrupted or misnamed.",
            )

        if width < self.min_dimension or height < self.min_dimension:
            raise ValidationError(
                "dimensions",
                f"Image too small. Minimum dimensions: {self.min_dimension}x{self.min_dimension}px",
            )
        if width > self.max_dimension or height > self.max_dimension:
            raise self._too_large()

        return ValidationOutcome(
            valid=True,
            width=width,
            height=height,
            detected_format=detected_format,
        )
