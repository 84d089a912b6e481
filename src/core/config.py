"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Managed backend (Supabase-style: auth, rest and realtime under one host)
    supabase_url: str = Field(validation_alias="SUPABASE_URL")
    supabase_anon_key: str = Field(validation_alias="SUPABASE_ANON_KEY")

    # User access token for the current session; empty means "not signed in"
    access_token: str = Field(default="", validation_alias="SUPABASE_ACCESS_TOKEN")

    bookmarks_table: str = Field(default="bookmarks", validation_alias="BOOKMARKS_TABLE")
    db_schema: str = Field(default="public", validation_alias="BOOKMARKS_SCHEMA")

    # Where unauthenticated visitors are sent
    entry_point_url: str = Field(default="/", validation_alias="APP_ENTRY_URL")

    api_timeout: float = Field(default=30.0, validation_alias="API_TIMEOUT")
    realtime_heartbeat_interval: float = Field(
        default=25.0, validation_alias="REALTIME_HEARTBEAT_INTERVAL",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @model_validator(mode="after")
    def validate_supabase_url(self) -> "Settings":
        """Require an absolute http(s) backend URL."""
        parsed = urlparse(self.supabase_url)
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            raise ValueError(
                f"SUPABASE_URL must be an absolute http(s) URL, got '{self.supabase_url}'",
            )
        return self

    @property
    def base_url(self) -> str:
        """Backend URL without a trailing slash."""
        return self.supabase_url.rstrip("/")

    @property
    def rest_url(self) -> str:
        """Get the row API (PostgREST) base URL."""
        return f"{self.base_url}/rest/v1"

    @property
    def auth_url(self) -> str:
        """Get the auth API base URL."""
        return f"{self.base_url}/auth/v1"

    @property
    def realtime_url(self) -> str:
        """Get the realtime websocket URL (http -> ws, https -> wss)."""
        parsed = urlparse(self.base_url)
        scheme = "wss" if parsed.scheme == "https" else "ws"
        return f"{scheme}://{parsed.netloc}{parsed.path}/realtime/v1/websocket"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
