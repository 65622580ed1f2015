from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings, read from the environment (or a local .env file)."""

    app_name: str = "Nearby Relay"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # Optional MongoDB mirror for reports
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    # Messages
    message_ttl_hours: float = 24
    eviction_interval_seconds: float = 3600
    default_radius: float = 2.0
    history_limit: int = 20
    query_limit: int = 50

    # Calls
    enforce_single_active_call: bool = False
    pending_call_timeout_seconds: Optional[float] = None
    call_sweep_interval_seconds: float = 30

    seed_demo_data: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
