"""Pytest configuration and shared fixtures."""

import io
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from PIL import ExifTags, Image

from photopipe.core.exceptions import UploadError
from photopipe.db.database import create_engine, create_session_factory
from photopipe.db.recorder import MetadataRecorder
from photopipe.pipeline.moderation import (
    FailClosedPolicy,
    FailOpenPolicy,
    ModerationClient,
    ModerationService,
)
from photopipe.pipeline.normalizer import Normalizer
from photopipe.pipeline.orchestrator import PhotoPipeline
from photopipe.pipeline.types import MediaPurpose, ModerationDecision, ModerationVerdict
from photopipe.pipeline.validator import Validator
from photopipe.storage.base import BlobStore


@pytest.fixture(autouse=True)
def mock_openai_client():
    """Mock OpenAI client to avoid API calls during tests."""
    mock_client = MagicMock()

    with patch("photopipe.pipeline.moderation.OpenAI") as mock_openai:
        mock_openai.return_value = mock_client
        yield mock_openai


def identifying_exif() -> Image.Exif:
    """EXIF block with GPS, device and capture-time tags."""
    exif = Image.Exif()
    exif[ExifTags.Base.Make] = "Canon"
    exif[ExifTags.Base.Model] = "Canon EOS 5D Mark IV"
    exif[ExifTags.Base.DateTime] = "2024:05:01 10:15:00"
    exif[ExifTags.IFD.GPSInfo] = {
        ExifTags.GPS.GPSLatitudeRef: "N",
        ExifTags.GPS.GPSLatitude: (52.0, 31.0, 12.0),
        ExifTags.GPS.GPSLongitudeRef: "E",
        ExifTags.GPS.GPSLongitude: (13.0, 24.0, 18.0),
    }
    exif[ExifTags.IFD.Exif] = {
        ExifTags.Base.DateTimeOriginal: "2024:05:01 10:15:00",
        ExifTags.Base.BodySerialNumber: "032021001234",
    }
    return exif


def make_jpeg(
    width: int = 64,
    height: int = 48,
    exif: Optional[Image.Exif] = None,
    padding_bytes: int = 0,
) -> bytes:
    """Encode a gradient JPEG, optionally with EXIF and COM-segment padding."""
    img = Image.linear_gradient("L").resize((width, height)).convert("RGB")
    out = io.BytesIO()
    if exif is not None:
        img.save(out, format="JPEG", quality=90, exif=exif)
    else:
        img.save(out, format="JPEG", quality=90)
    data = out.getvalue()

    if padding_bytes <= 0:
        return data

    # Comment segments right after SOI; each holds at most 65533 payload bytes
    segments = []
    remaining = padding_bytes
    while remaining > 0:
        chunk = min(remaining, 65533)
        segments.append(b"\xff\xfe" + (chunk + 2).to_bytes(2, "big") + b"x" * chunk)
        remaining -= chunk
    return data[:2] + b"".join(segments) + data[2:]


def make_png(width: int = 64, height: int = 48, mode: str = "RGB") -> bytes:
    img = Image.effect_noise((width, height), 50).convert(mode)
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


def make_animated_gif(frame_count: int = 3, duration: int = 120, loop: Optional[int] = 0) -> bytes:
    frames = [Image.effect_noise((64, 48), 40 + 10 * i).convert("RGB") for i in range(frame_count)]
    out = io.BytesIO()
    kwargs = {"save_all": True, "append_images": frames[1:], "duration": duration, "comment": b"made with a camera"}
    if loop is not None:
        kwargs["loop"] = loop
    frames[0].save(out, format="GIF", **kwargs)
    return out.getvalue()


def make_webp(width: int = 64, height: int = 48) -> bytes:
    img = Image.effect_noise((width, height), 50).convert("RGB")
    out = io.BytesIO()
    img.save(out, format="WEBP", quality=90)
    return out.getvalue()


def make_animated_webp(frame_count: int = 3, duration: int = 120, loop: int = 0) -> bytes:
    frames = [Image.effect_noise((64, 48), 40 + 10 * i).convert("RGB") for i in range(frame_count)]
    out = io.BytesIO()
    frames[0].save(
        out, format="WEBP", save_all=True, append_images=frames[1:], duration=duration, loop=loop, quality=90
    )
    return out.getvalue()


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def gif_factory():
    return make_animated_gif


@pytest.fixture
def webp_factory():
    return make_webp


@pytest.fixture
def animated_webp_factory():
    return make_animated_webp


@pytest.fixture
def exif_with_gps():
    return identifying_exif()


class StubModerationClient(ModerationClient):
    """Moderation client returning a fixed verdict or raising a fixed error."""

    model = "stub-moderation"

    def __init__(
        self,
        decision: ModerationDecision = ModerationDecision.APPROVE,
        category: str = "clean",
        confidence: float = 0.98,
        error: Optional[Exception] = None,
    ):
        self.decision = decision
        self.category = category
        self.confidence = confidence
        self.error = error
        self.calls: List[Tuple[bytes, str, MediaPurpose]] = []

    def moderate(self, data: bytes, mime_type: str, purpose: MediaPurpose) -> ModerationVerdict:
        self.calls.append((data, mime_type, purpose))
        if self.error is not None:
            raise self.error
        return ModerationVerdict(
            decision=self.decision,
            category=self.category,
            confidence=self.confidence,
            reason="stubbed",
            model=self.model,
        )


class InMemoryBlobStore(BlobStore):
    """Blob store keeping objects in a dict; refuses to overwrite."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.store_calls = 0

    async def ensure_container(self) -> None:
        return None

    async def store(self, data: bytes, object_name: str, mime_type: str) -> str:
        self.store_calls += 1
        if object_name in self.objects:
            raise UploadError(f"Object already exists: {object_name}")
        self.objects[object_name] = (data, mime_type)
        return f"https://cdn.example.test/{object_name}"

    def get_backend_name(self) -> str:
        return "memory"


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def stub_client_factory():
    return StubModerationClient


@pytest_asyncio.fixture
async def recorder(tmp_path):
    """MetadataRecorder backed by a throwaway SQLite file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'photos.db'}")
    recorder = MetadataRecorder(create_session_factory(engine), timeout_seconds=5, engine=engine)
    await recorder.create_tables()
    yield recorder
    await recorder.dispose()


@pytest.fixture
def pipeline_factory(blob_store):
    """Build a PhotoPipeline with real validator/normalizer and given collaborators."""

    def _build(
        client: Optional[ModerationClient] = None,
        fail_closed: bool = True,
        recorder=None,
        store: Optional[BlobStore] = None,
        strict_mode: bool = False,
        moderation_timeout: float = 5.0,
    ) -> PhotoPipeline:
        policy = FailClosedPolicy() if fail_closed else FailOpenPolicy()
        return PhotoPipeline(
            validator=Validator(),
            normalizer=Normalizer(),
            moderation=ModerationService(
                client or StubModerationClient(), policy, timeout_seconds=moderation_timeout
            ),
            blob_store=store or blob_store,
            recorder=recorder,
            strict_mode=strict_mode,
        )

    return _build
