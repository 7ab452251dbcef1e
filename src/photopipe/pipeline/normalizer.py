"""Image sanitization.

Static images are re-encoded to WebP with every metadata block dropped;
animated GIF/WebP keep their frames and timing but lose everything else.
Re-encoding is what guarantees the metadata is gone; the output is then
re-inspected and rejected if anything identifying survived.
"""

import io
import logging
import struct
from typing import List

from PIL import ExifTags, Image, ImageOps, ImageSequence, UnidentifiedImageError

from photopipe.core.exceptions import NormalizationError, ValidationError
from photopipe.pipeline.types import ProcessedImage

logger = logging.getLogger(__name__)

DEFAULT_WEBP_QUALITY = 85

# Image.info keys that carry container metadata
METADATA_INFO_KEYS = ("exif", "xmp", "XML:com.adobe.xmp", "icc_profile", "comment")

# GIF application extensions that only control playback
PLAYBACK_EXTENSIONS = (b"NETSCAPE2.0", b"ANIMEXTS1.0")

# EXIF tags that identify a device, a person or a moment of capture
IDENTIFYING_EXIF_TAGS = {
    ExifTags.Base.Make: "make",
    ExifTags.Base.Model: "model",
    ExifTags.Base.DateTime: "datetime",
    ExifTags.Base.DateTimeOriginal: "datetime_original",
    ExifTags.Base.DateTimeDigitized: "datetime_digitized",
    ExifTags.Base.BodySerialNumber: "body_serial_number",
    ExifTags.Base.LensSerialNumber: "lens_serial_number",
    ExifTags.Base.CameraOwnerName: "camera_owner_name",
    ExifTags.Base.ImageUniqueID: "image_unique_id",
}

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError, struct.error)


def find_identifying_metadata(data: bytes) -> List[str]:
    """List the metadata found in an encoded image.

    Returns:
        Names of the metadata blocks/tags present; empty when clean
    """
    findings: List[str] = []

    if b"<x:xmpmeta" in data or b"http://ns.adobe.com/xap/" in data:
        findings.append("xmp_packet")

    try:
        with Image.open(io.BytesIO(data)) as img:
            for key in METADATA_INFO_KEYS:
                if img.info.get(key):
                    findings.append(key)

            extension = img.info.get("extension")
            if extension and extension[0] not in PLAYBACK_EXTENSIONS:
                findings.append("extension")

            exif = img.getexif()
            if exif.get_ifd(ExifTags.IFD.GPSInfo):
                findings.append("gps")
            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
            for tag, name in IDENTIFYING_EXIF_TAGS.items():
                if tag in exif or tag in exif_ifd:
                    findings.append(name)
    except _DECODE_ERRORS:
        findings.append("unreadable")

    return findings


def _without_metadata(frame: Image.Image, mode: str) -> Image.Image:
    """Copy pixel data only into a fresh image."""
    converted = frame.convert(mode) if frame.mode != mode else frame
    return Image.frombytes(mode, converted.size, converted.tobytes())


def _static_mode(img: Image.Image) -> str:
    if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return "RGBA"
    return "RGB"


class Normalizer:
    """Strips metadata and re-encodes uploads into a canonical format."""

    def __init__(self, webp_quality: int = DEFAULT_WEBP_QUALITY):
        self.webp_quality = webp_quality

    def normalize(self, data: bytes, mime_type: str) -> ProcessedImage:
        """Sanitize an image.

        Args:
            data: Validated image bytes
            mime_type: Declared MIME type of ``data``

        Returns:
            ProcessedImage with metadata-free bytes

        Raises:
            ValidationError: If the image cannot be decoded
            NormalizationError: If the output still carries metadata
        """
        try:
            with Image.open(io.BytesIO(data)) as img:
                animated = getattr(img, "is_animated", False) and getattr(img, "n_frames", 1) > 1
                if animated:
                    processed = self._normalize_animated(img)
                else:
                    processed = self._normalize_static(img)
        except _DECODE_ERRORS as e:
            logger.warning("Image decode failed during normalization", extra={"mime_type": mime_type, "error": str(e)})
            raise ValidationError("decode", "Unable to decode image. File may be corrupted.") from e

        findings = find_identifying_metadata(processed.data)
        if findings:
            logger.error("Metadata survived re-encoding", extra={"findings": findings, "mime_type": processed.mime_type})
            raise NormalizationError(f"Sanitized image still contains metadata: {', '.join(findings)}")

        # Already-sanitized input in the canonical format: never grow it
        if (
            mime_type.lower() == processed.mime_type
            and len(data) <= processed.size
            and not find_identifying_metadata(data)
        ):
            processed = ProcessedImage(
                data=data,
                mime_type=processed.mime_type,
                extension=processed.extension,
                width=processed.width,
                height=processed.height,
                animated=processed.animated,
                frame_count=processed.frame_count,
            )

        logger.debug(
            "Image normalized",
            extra={
                "original_mime_type": mime_type,
                "mime_type": processed.mime_type,
                "original_size": len(data),
                "processed_size": processed.size,
                "animated": processed.animated,
            },
        )
        return processed

    def _normalize_static(self, img: Image.Image) -> ProcessedImage:
        img.load()
        oriented = ImageOps.exif_transpose(img)
        clean = _without_metadata(oriented, _static_mode(oriented))

        out = io.BytesIO()
        clean.save(out, format="WEBP", quality=self.webp_quality, method=4)

        return ProcessedImage(
            data=out.getvalue(),
            mime_type="image/webp",
            extension="webp",
            width=clean.width,
            height=clean.height,
        )

    def _normalize_animated(self, img: Image.Image) -> ProcessedImage:
        source_format = img.format
        loop = img.info.get("loop")
        frames: List[Image.Image] = []
        durations: List[int] = []

        for frame in ImageSequence.Iterator(img):
            frame.load()
            durations.append(int(frame.info.get("duration", 100)))
            frames.append(_without_metadata(frame, "RGBA"))

        save_kwargs = {"save_all": True, "append_images": frames[1:], "duration": durations}
        # A GIF without a NETSCAPE block plays once; keep it that way
        if loop is not None:
            save_kwargs["loop"] = loop

        out = io.BytesIO()
        if source_format == "WEBP":
            frames[0].save(out, format="WEBP", quality=self.webp_quality, **save_kwargs)
            mime_type, extension = "image/webp", "webp"
        else:
            frames[0].save(out, format="GIF", **save_kwargs)
            mime_type, extension = "image/gif", "gif"
        first = frames[0]

        return ProcessedImage(
            data=out.getvalue(),
            mime_type=mime_type,
            extension=extension,
            width=first.width,
            height=first.height,
            animated=True,
            frame_count=len(frames),
        )
