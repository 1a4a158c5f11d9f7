"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "modtrail"
    postgres_password: str = "modtrail_dev_password"
    postgres_db: str = "modtrail"
    postgres_port: int = 5432

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Ledger
    ledger_append_max_retries: int = 3

    # Integrity check job
    integrity_check_max_attempts: int = 3
    integrity_check_retry_backoff_seconds: int = 60
    integrity_check_timeout_seconds: int = 300
    integrity_check_queue: str = "moderation"
    integrity_verify_chunk_size: int = 500

    # Last report cache
    integrity_last_check_cache_key: str = "audit_integrity_last_check"
    integrity_last_check_ttl_seconds: int = 86400  # 24 hours

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if not self.database_url and self.postgres_password == "modtrail_dev_password":
                raise ValueError(
                    "DATABASE_URL or POSTGRES_PASSWORD must be set in production. "
                    "Do not use default credentials."
                )
            if self.integrity_check_max_attempts < 1:
                raise ValueError("INTEGRITY_CHECK_MAX_ATTEMPTS must be at least 1.")
            if self.integrity_check_timeout_seconds <= 0:
                raise ValueError("INTEGRITY_CHECK_TIMEOUT_SECONDS must be positive.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
