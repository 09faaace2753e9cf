# Gateway settings.
# Created: 2026-09-14
#
# Built once at process start via get_settings() and handed to the Gateway
# container; nothing reads os.environ after startup.

from __future__ import annotations

import logging
import secrets
from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/forms.body",
    "https://www.googleapis.com/auth/forms.responses.readonly",
]


class Settings(BaseSettings):
    """Runtime configuration, loaded from the environment and an optional .env file."""

    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("NODE_ENV", "ENVIRONMENT"),
    )
    host: str = "127.0.0.1"
    port: int = 8080
    base_url: str = ""
    log_level: str = "INFO"
    cors_allowed_origins: list[str] = Field(default_factory=list)

    # Upstream identity provider
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8080/oauth/callback"
    google_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    # Shared store
    redis_url: str = "redis://localhost:6379/0"

    # Session and token lifetimes (seconds)
    session_ttl_seconds: int = 4 * 60 * 60
    session_idle_timeout_seconds: int = 30 * 60
    bearer_token_ttl_seconds: int = 24 * 60 * 60
    authorization_code_ttl_seconds: int = 600

    # Session cookie
    cookie_name: str = "workspace_gateway_session"
    cookie_domain: str | None = None
    cookie_max_age_seconds: int = 24 * 60 * 60
    # HMAC key for the cookie value; set it when running more than one instance
    session_secret: str = Field(default_factory=lambda: secrets.token_hex(32))

    # Redirect whitelist, comma separated
    allowed_redirect_uris: str = ""

    # Secrets
    gcp_project_id: str = ""
    encryption_key_secret_id: str = "workspace-gateway-encryption-key"
    encryption_key: str | None = None
    metrics_auth_token: str | None = None

    # Maintenance
    cleanup_enabled: bool = True
    cleanup_interval_seconds: int = 3600

    # Upstream call guard
    breaker_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def allowed_redirect_uri_list(self) -> list[str]:
        """Operator-supplied redirect URIs, trimmed, empties dropped."""
        return [u.strip() for u in self.allowed_redirect_uris.split(",") if u.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    logger.debug("Settings loaded (environment=%s)", settings.environment)
    return settings
