"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Tribu"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./tribu.db"

    # Web Push (VAPID keys obtained via scripts/generate_vapid_keys.py)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:contact@tribu-app.fr"
    push_ttl_seconds: int = 24 * 60 * 60

    # Reminder settings
    # Sweeps are triggered externally (cron, POST /reminders/sweep) unless enabled here
    reminder_scheduler_enabled: bool = False
    reminder_interval_minutes: int = 60
    reminder_window_hours: int = 24

    # Groups
    group_code_length: int = 6


settings = Settings()
