from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "Closeflow"
    debug: bool = False

    # CORS
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_to_file: bool = False

    # Audit store (in-memory when unset)
    database_url: Optional[str] = None

    # Workflow template (built-in monthly template when unset)
    workflow_template_path: Optional[str] = None

    # Notifications
    webhook_urls: str = ""
    webhook_payload_template: Optional[str] = None
    webhook_timeout: float = 10.0
    webhook_max_retries: int = 3
    webhook_retry_backoff: float = 0.5
    notification_queue_size: int = 1000
    notification_log_size: int = 1000

    @property
    def webhook_urls_list(self) -> list[str]:
        return [url.strip() for url in self.webhook_urls.split(",") if url.strip()]

    # Exports
    export_timeout: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CLOSEFLOW_",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
