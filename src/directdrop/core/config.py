"""Configuration management for DirectDrop."""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class UploadConfig(BaseModel):
    """Immutable upload configuration injected into routers and storage backends.

    Several instances may coexist in one process; nothing in the core reads
    process-wide settings.
    """

    model_config = ConfigDict(frozen=True)

    storage_backend: str = "local"
    bucket: str = ""
    project_id: str = ""
    public_base_url: str = ""
    upload_prefix: str = "uploads"
    signed_url_expires_seconds: int = Field(default=3600, gt=0)
    download_url_expires_seconds: int = Field(default=3600, gt=0)
    verify_on_complete: bool = False
    preserve_extension: bool = True
    local_storage_path: str = "data/uploads"
    local_signing_secret: str = ""
    signing_attempts: int = Field(default=3, ge=1)


class ClientConfig(BaseModel):
    """Configuration for the client-side upload orchestrator."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = "/api/upload"
    timeout_seconds: float = 300.0
    chunk_size: int = Field(default=64 * 1024, gt=0)
    speed_warmup_seconds: float = 0.5


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "directdrop"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # GCP Configuration
    GCP_PROJECT_ID: str = ""

    # Storage Configuration
    STORAGE_BACKEND: str = "local"  # "gcs" or "local"
    GCS_BUCKET_NAME: str = ""
    PUBLIC_BASE_URL: str = ""  # Custom domain for public object URLs
    LOCAL_STORAGE_PATH: str = "data/uploads"
    LOCAL_SIGNING_SECRET: str = ""

    # Upload Protocol
    UPLOAD_PREFIX: str = "uploads"
    SIGNED_URL_EXPIRES_SECONDS: int = 3600
    DOWNLOAD_URL_EXPIRES_SECONDS: int = 3600
    VERIFY_ON_COMPLETE: bool = False
    PRESERVE_EXTENSION: bool = True
    SIGNING_ATTEMPTS: int = 3

    def to_upload_config(self) -> UploadConfig:
        """Build the immutable upload configuration from these settings."""
        return UploadConfig(
            storage_backend=self.STORAGE_BACKEND,
            bucket=self.GCS_BUCKET_NAME,
            project_id=self.GCP_PROJECT_ID,
            public_base_url=self.PUBLIC_BASE_URL,
            upload_prefix=self.UPLOAD_PREFIX,
            signed_url_expires_seconds=self.SIGNED_URL_EXPIRES_SECONDS,
            download_url_expires_seconds=self.DOWNLOAD_URL_EXPIRES_SECONDS,
            verify_on_complete=self.VERIFY_ON_COMPLETE,
            preserve_extension=self.PRESERVE_EXTENSION,
            local_storage_path=self.LOCAL_STORAGE_PATH,
            local_signing_secret=self.LOCAL_SIGNING_SECRET,
            signing_attempts=self.SIGNING_ATTEMPTS,
        )


@lru_cache
def get_settings() -> Settings:
    """Load settings once for the application entrypoint."""
    return Settings()
