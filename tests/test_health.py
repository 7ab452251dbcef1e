"""Tests for the health check endpoint and application startup."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from photopipe.core.exceptions import ConfigurationError, UploadError
from photopipe.main import create_app


def _fake_pipeline(backend: str = "local", policy: str = "open") -> MagicMock:
    pipeline = MagicMock()
    pipeline.blob_store.get_backend_name.return_value = backend
    pipeline.blob_store.ensure_container = AsyncMock()
    pipeline.moderation.failure_policy.name = policy
    pipeline.recorder.create_tables = AsyncMock()
    pipeline.recorder.dispose = AsyncMock()
    return pipeline


def test_health_endpoint():
    """Test that the health endpoint returns correct response."""
    app = create_app()
    app.state.pipeline = _fake_pipeline(backend="gcs", policy="closed")
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "photopipe"
    assert data["version"] == "0.1.0"
    assert data["storage_backend"] == "gcs"
    assert data["moderation_failure_policy"] == "closed"


def test_health_before_startup():
    client = TestClient(create_app())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "starting"


def test_lifespan_builds_pipeline_once():
    pipeline = _fake_pipeline()
    with patch("photopipe.main.build_pipeline", return_value=pipeline) as mock_build:
        app = create_app()
        with TestClient(app) as client:
            assert client.get("/health").json()["status"] == "ok"
            assert client.get("/health").json()["moderation_failure_policy"] == "open"
            assert app.state.pipeline is pipeline

    mock_build.assert_called_once()
    pipeline.recorder.create_tables.assert_awaited_once()
    pipeline.blob_store.ensure_container.assert_awaited_once()
    pipeline.recorder.dispose.assert_awaited_once()


def test_lifespan_tolerates_unreachable_storage():
    pipeline = _fake_pipeline()
    pipeline.blob_store.ensure_container.side_effect = UploadError("bucket check failed")
    with patch("photopipe.main.build_pipeline", return_value=pipeline):
        with TestClient(create_app()) as client:
            assert client.get("/health").json()["status"] == "ok"


def test_startup_fails_on_configuration_error():
    with patch("photopipe.main.build_pipeline", side_effect=ConfigurationError("OPENAI_API_KEY is required")):
        with pytest.raises(ConfigurationError):
            with TestClient(create_app()):
                pass
