"""Application configuration."""
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Vapi
    vapi_api_key: Optional[str] = None
    vapi_assistant_id: Optional[str] = None
    vapi_phone_number_id: Optional[str] = None
    vapi_base_url: str = "https://api.vapi.ai"
    provider_timeout_seconds: float = 30.0

    # Hotline the agent calls on the user's behalf
    support_phone_number: Optional[str] = None

    # Public URL the provider posts webhooks to (e.g. an ngrok tunnel)
    public_base_url: Optional[str] = None

    # Call behaviour
    mock_mode: bool = False
    mock_step_seconds: float = 3.0
    assistant_mode: Literal["ad_hoc", "preprovisioned"] = "ad_hoc"
    status_sync: Literal["poll", "webhook", "hybrid"] = "poll"
    max_poll_failures: int = 10

    # Recordings
    recording_strategy: Literal["off", "eager", "lazy"] = "eager"
    recordings_dir: str = "recordings"

    # Storage
    call_store: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./support_bridge.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
