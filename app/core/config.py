from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Security
    secret_key: str = "changeme"  # override in .env
    access_token_expire_minutes: int = 60 * 24

    # Database
    database_url: str

    # Prescription PDF rendering
    pdf_default_format: str = "A4"
    pdf_page_timeout_seconds: float = 30.0
    pdf_validity_days: int = 30

    # Artifact storage: "inline" (data URI), "local" (file_storage_root) or "s3"
    pdf_storage_backend: str = "inline"
    file_storage_root: str = "uploads"

    # S3
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str | None = None
    aws_bucket_name: str | None = None

    # Pydantic v2 style config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the .env is parsed once.
    """
    return Settings()
