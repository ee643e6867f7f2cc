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
    postgres_user: str = "clabot"
    postgres_password: str = "clabot_dev_password"
    postgres_db: str = "clabot"
    postgres_port: int = 5432

    # Redis (Celery broker and result backend)
    redis_url: str = "redis://localhost:6379/0"

    # API
    environment: str = "development"
    app_base_url: str = "http://localhost:8000"

    # Session (tokens are minted by the sign-in flow, we only verify them)
    session_secret: str = "dev-session-secret-change-in-production"
    session_cookie_name: str = "clabot_session"
    jwt_algorithm: str = "HS256"

    # GitHub App
    github_app_id: Optional[str] = None
    github_app_private_key: Optional[str] = None
    github_webhook_secret: Optional[str] = None
    github_api_base_url: str = "https://api.github.com"
    github_timeout_seconds: float = 15.0
    github_client_mode: str = "app"  # app, memory

    # CLA enforcement
    check_name: str = "CLA Bot / Contributor License Agreement"
    consent_text_version: str = "v1"
    bypass_max_entries: int = 250

    # Logging
    log_level: str = "INFO"

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
    def is_development(self) -> bool:
        """Check if running in a development or test environment."""
        return self.environment.lower() in ("development", "test", "dev")

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if self.is_development:
            return
        if self.session_secret.startswith("dev-"):
            raise ValueError("SESSION_SECRET must be set outside development.")
        if not self.github_webhook_secret:
            raise ValueError("GITHUB_WEBHOOK_SECRET is required outside development.")
        if self.github_client_mode != "app":
            raise ValueError(
                "GITHUB_CLIENT_MODE=memory is not allowed outside development. "
                "Use GITHUB_CLIENT_MODE=app."
            )
        if not self.github_app_id or not self.github_app_private_key:
            raise ValueError(
                "GITHUB_APP_ID and GITHUB_APP_PRIVATE_KEY are required outside development."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
