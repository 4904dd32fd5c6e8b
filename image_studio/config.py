"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from image_studio.schemas.remote_task import RetryPolicy, WorkflowSpec


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # RunningHub provider
    runninghub_api_key: str = ""
    runninghub_base_url: str = "https://www.runninghub.ai"
    request_timeout_seconds: float = 180.0

    # Polling
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 300

    # Status-check retry/backoff
    status_retry_attempts: int = 3
    status_retry_base_delay: float = 2.0
    status_retry_multiplier: float = 2.0

    # Mode -> workflow table override (JSON)
    workflows_file: Path | None = None

    # Input limits
    max_image_bytes: int = 16 * 1024 * 1024

    # Server
    host: str = "127.0.0.1"
    port: int = 8430

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.runninghub_api_key.strip())

    def retry_policy(self) -> RetryPolicy:
        """Build the status-check retry policy."""
        return RetryPolicy(
            max_attempts=self.status_retry_attempts,
            base_delay=self.status_retry_base_delay,
            multiplier=self.status_retry_multiplier,
        )

    def load_workflows(self) -> dict[str, WorkflowSpec]:
        """Get the mode table, from WORKFLOWS_FILE if set, else the defaults."""
        from image_studio.services.workflows import default_workflows, load_workflows_file

        if self.workflows_file:
            return load_workflows_file(self.workflows_file)
        return default_workflows()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
