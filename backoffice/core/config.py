"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI admin surface, the token
lifecycle services and maintenance scripts share one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def _split_scopes(value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    return tuple(
        scope.strip() for scope in value.replace(",", " ").split() if scope.strip()
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    encryption_key: Optional[str] = Field(
        None,
        validation_alias="ENCRYPTION_KEY",
        description="64 hex characters (32 bytes) used to encrypt stored tokens.",
    )


class GoogleSettings(BaseSettings):
    """Configuration required for the Google Business Profile integration."""

    model_config = SettingsConfigDict(extra="ignore")

    client_id: Optional[str] = Field(None, validation_alias="GOOGLE_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None, validation_alias="GOOGLE_REDIRECT_URI"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class SquareSettings(BaseSettings):
    """Square commerce settings, including static overrides."""

    model_config = SettingsConfigDict(extra="ignore")

    enabled: bool = Field(False, validation_alias="SQUARE_ENABLED")
    environment: str = Field("sandbox", validation_alias="SQUARE_ENVIRONMENT")
    access_token: Optional[str] = Field(
        None,
        validation_alias="SQUARE_ACCESS_TOKEN",
        description="Static token; takes precedence over stored OAuth tokens.",
    )
    location_id: Optional[str] = Field(
        None,
        validation_alias="SQUARE_LOCATION_ID",
        description="Static location; takes precedence over stored and remote values.",
    )
    application_id: Optional[str] = Field(None, validation_alias="SQUARE_APPLICATION_ID")
    application_secret: Optional[str] = Field(
        None, validation_alias="SQUARE_APPLICATION_SECRET"
    )
    redirect_url: Optional[AnyHttpUrl] = Field(None, validation_alias="SQUARE_REDIRECT_URL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("ITEMS_READ",), validation_alias="SQUARE_OAUTH_SCOPES"
    )
    api_version: str = Field("2024-12-18", validation_alias="SQUARE_API_VERSION")

    @field_validator("scopes", mode="before")
    @classmethod
    def _parse_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma or space separated string."""
        return _split_scopes(value)

    @property
    def environment_name(self) -> str:
        return "production" if self.environment.strip().lower() == "production" else "sandbox"

    @property
    def oauth_base_url(self) -> str:
        if self.environment_name == "production":
            return "https://connect.squareup.com"
        return "https://connect.squareupsandbox.com"

    @property
    def api_base_url(self) -> str:
        return f"{self.oauth_base_url}/v2"


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    refresh_skew_seconds: int = Field(
        0,
        validation_alias="OAUTH_REFRESH_SKEW",
        description="Refresh tokens this many seconds before they expire.",
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    google_scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("https://www.googleapis.com/auth/business.manage",),
        validation_alias="GOOGLE_OAUTH_SCOPES",
    )

    @field_validator("google_scopes", mode="before")
    @classmethod
    def _parse_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        return _split_scopes(value)


class AppSettings(BaseSettings):
    """Root settings object for the back-office application."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional admin URL to redirect to after an OAuth callback.",
    )
    token_db_path: str = Field("data/backoffice.db", validation_alias="TOKEN_DB_PATH")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    square: SquareSettings = Field(default_factory=SquareSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "GoogleSettings",
    "OAuthSettings",
    "SecuritySettings",
    "SquareSettings",
    "get_settings",
]
