# app/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (and an optional `.env`
    file) at runtime.

    Used for:
    - BuilderPrime CRM credentials and endpoints
    - GroupMe bot destination
    - Appointment poller cadence and horizon
    - Internal API key
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Appointment Relay"
    APP_ENV: str = Field("local", description="Environment name: local/test/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root logging level.")

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required for hitting /internal endpoints",
    )

    # --- BuilderPrime CRM ---
    BUILDERPRIME_API_KEY: str | None = Field(
        default=None,
        description="Static API key sent as the x-api-key header.",
    )
    BUILDERPRIME_API_URL: str = Field(
        default="https://comercross.builderprime.com/api",
        description="Base URL of the BuilderPrime REST API.",
    )
    MEETINGS_PAGE_LIMIT: int = Field(
        default=100,
        description="Result-size cap sent with each meetings query.",
    )
    ROSTER_PAGE_LIMIT: int = Field(
        default=500,
        description="Page size used when fetching the full client roster.",
    )

    # --- GroupMe ---
    GROUPME_BOT_ID: str | None = Field(
        default=None,
        description="Bot id used to post into the GroupMe channel.",
    )
    GROUPME_API_URL: str = Field(
        default="https://api.groupme.com/v3",
        description="Base URL of the GroupMe API.",
    )
    GROUPME_ACCESS_TOKEN: str | None = Field(
        default=None,
        description="User access token for listing groups and registering bots.",
    )

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout applied to every outbound HTTP request.",
    )

    # --- Appointment poller ---
    POLLING_ENABLED: bool = Field(
        default=True,
        description="Start the appointment poller on application startup.",
    )
    POLL_INTERVAL_SECONDS: int = Field(default=120, description="Seconds between poll cycles.")
    POLL_HORIZON_DAYS: int = Field(
        default=120,
        description="How far ahead (in days) meetings are queried each cycle.",
    )
    POLL_CHUNK_DAYS: int = Field(
        default=30,
        le=31,
        description="Span of a single meetings query; BuilderPrime rejects spans over ~31 days.",
    )
    ROSTER_TTL_SECONDS: float = Field(
        default=300.0,
        description="Time-to-live of the cached client roster.",
    )
    POLL_TIMEZONE: str | None = Field(
        default=None,
        description="IANA zone (e.g. America/New_York) defining 'today' and message times. Process local zone when unset.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
