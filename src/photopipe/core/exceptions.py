"""Custom exceptions for the photo ingestion pipeline."""


class PhotoPipelineError(Exception):
    """Base exception for the photo ingestion pipeline."""

    # Machine-readable category surfaced to callers
    category = "internal_error"
    retryable = False


class ValidationError(PhotoPipelineError):
    """Exception raised when an upload fails a validation check.

    Client-fixable; the message is safe to show to the caller.
    """

    category = "validation_error"

    def __init__(self, check: str, message: str):
        super().__init__(message)
        self.check = check
        self.message = message


class ModerationRejected(PhotoPipelineError):
    """Exception raised when moderation rejects the content."""

    category = "moderation_rejected"

    def __init__(self, verdict):
        super().__init__(f"Content rejected by moderation ({verdict.category})")
        self.verdict = verdict


class NormalizationError(PhotoPipelineError):
    """Exception raised when sanitized output still carries metadata."""
    pass


class ModerationServiceError(PhotoPipelineError):
    """Exception raised when the moderation service fails or is ambiguous."""
    pass


class UploadError(PhotoPipelineError):
    """Exception raised when object storage rejects an upload."""
    pass


class TransientUploadError(UploadError):
    """Exception raised when object storage is unreachable or unavailable."""

    retryable = True


class PersistenceError(PhotoPipelineError):
    """Exception raised when the metadata insert fails."""
    pass


class RequestAborted(PhotoPipelineError):
    """Exception raised when the client went away between stages."""
    pass


class ConfigurationError(PhotoPipelineError):
    """Exception raised at startup for missing credentials or settings."""
    pass
