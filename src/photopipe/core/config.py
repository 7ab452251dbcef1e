"""Configuration management for the photo ingestion service."""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Deployments where a moderation outage must block uploads
PRODUCTION_GRADE_ENVS = frozenset({"production", "prod", "staging"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    ENV: str = "local"
    SERVICE_NAME: str = "photopipe"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # GCP Configuration
    GCP_PROJECT_ID: str = ""
    GCP_REGION: str = "europe-west1"

    # Storage Configuration
    STORAGE_BACKEND: str = "local"  # "gcs" or "local"
    GCS_BUCKET_NAME: str = ""
    PUBLIC_BASE_URL: str = ""  # Optional CDN origin in front of the bucket
    LOCAL_STORAGE_PATH: str = "./data/photos"
    STORAGE_TIMEOUT_SECONDS: float = 30.0

    # Upload Constraints
    MIN_UPLOAD_BYTES: int = 100
    MAX_UPLOAD_MB: int = 5
    MIN_IMAGE_DIMENSION: int = 10
    MAX_IMAGE_DIMENSION: int = 8000

    # Normalization
    NORMALIZE_WEBP_QUALITY: int = 85

    # Moderation via OpenAI moderation endpoint
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = ""  # Empty = SDK default
    MODERATION_MODEL: str = "omni-moderation-latest"
    MODERATION_TIMEOUT_SECONDS: float = 15.0
    MODERATION_REVIEW_THRESHOLD: float = 0.4
    MODERATION_REJECT_THRESHOLD: float = 0.8
    MODERATION_STRICT_MODE: bool = False  # NEEDS_REVIEW blocks the upload
    MODERATION_FAILURE_POLICY: str = ""  # "open", "closed", empty = derive from ENV

    # Relational store
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/photos.db"
    DATABASE_TIMEOUT_SECONDS: float = 10.0
    DATABASE_AUTO_CREATE: bool = True  # Create tables at startup (local/dev)

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def is_production_grade(self) -> bool:
        """Whether ENV names a production-grade deployment."""
        return self.ENV.strip().lower() in PRODUCTION_GRADE_ENVS


# Singleton settings instance
settings = Settings()
