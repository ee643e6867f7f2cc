"""Worker settings - consolidated with API settings for consistency."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings - consistent with API settings."""

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

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # GitHub App (convergence runs call GitHub as the installation)
    github_app_id: Optional[str] = None
    github_app_private_key: Optional[str] = None
    github_client_mode: str = "app"  # app, memory

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if not self.github_app_id or not self.github_app_private_key:
                raise ValueError(
                    "GITHUB_APP_ID and GITHUB_APP_PRIVATE_KEY are required in production."
                )
            if self.github_client_mode != "app":
                raise ValueError(
                    "GITHUB_CLIENT_MODE=memory is not allowed in production. "
                    "Use GITHUB_CLIENT_MODE=app."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
