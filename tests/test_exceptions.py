"""Smoke tests for pipeline exceptions."""

import pytest

from photopipe.core.exceptions import (
    ConfigurationError,
    ModerationRejected,
    ModerationServiceError,
    NormalizationError,
    PersistenceError,
    PhotoPipelineError,
    RequestAborted,
    TransientUploadError,
    UploadError,
    ValidationError,
)
from photopipe.pipeline.types import ModerationDecision, ModerationVerdict


def test_exception_hierarchy():
    """Test that all exceptions inherit from PhotoPipelineError."""
    for exc_class in (
        ValidationError,
        ModerationRejected,
        NormalizationError,
        ModerationServiceError,
        UploadError,
        TransientUploadError,
        PersistenceError,
        RequestAborted,
        ConfigurationError,
    ):
        assert issubclass(exc_class, PhotoPipelineError)

    assert issubclass(TransientUploadError, UploadError)


def test_categories():
    """Only validation and moderation failures are client-facing."""
    assert ValidationError.category == "validation_error"
    assert ModerationRejected.category == "moderation_rejected"
    for exc_class in (UploadError, PersistenceError, NormalizationError, RequestAborted):
        assert exc_class.category == "internal_error"


def test_only_transient_upload_is_retryable():
    assert TransientUploadError.retryable
    assert not UploadError.retryable
    assert not PersistenceError.retryable
    assert not ValidationError.retryable


def test_validation_error_carries_check():
    with pytest.raises(ValidationError) as exc_info:
        raise ValidationError("dimensions", "Image too small")

    assert exc_info.value.check == "dimensions"
    assert str(exc_info.value) == "Image too small"


def test_moderation_rejected_carries_verdict():
    verdict = ModerationVerdict(decision=ModerationDecision.REJECT, category="violence", confidence=0.9)

    with pytest.raises(PhotoPipelineError) as exc_info:
        raise ModerationRejected(verdict)

    assert exc_info.value.verdict is verdict
    assert "violence" in str(exc_info.value)
