# Redirect URI validation: open-redirect guard.
# Created: 2026-09-16
#
# Exact string equality only. A DCR client's own registrations are checked
# first, then the static whitelist.

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from workspace_gateway.config import Settings
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.oauth.registration import ClientRegistrationManager

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_URIS = (
    "https://inspector.modelcontextprotocol.io/callback",
    "http://localhost:5173",
    "http://localhost:5173/callback",
    "http://localhost:5173/oauth/callback",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:5173/callback",
    "http://127.0.0.1:5173/oauth/callback",
    "http://localhost:6274",
    "http://localhost:6274/oauth/callback",
    "http://localhost:3000",
    "http://localhost:3000/",
    "http://localhost:3000/test",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3000/",
    "http://127.0.0.1:3000/test",
)

PRODUCTION_ALLOWED_URIS = (
    "https://claude.ai/api/mcp/auth_callback",
    "https://claude.com/api/mcp/auth_callback",
)


class RedirectValidator:
    """Decides whether a redirect target is allowed for an optional client."""

    def __init__(self, settings: Settings, registrations: ClientRegistrationManager):
        self.settings = settings
        self.registrations = registrations

    def allowed_uris(self) -> list[str]:
        uris = list(DEFAULT_ALLOWED_URIS)
        if self.settings.is_production:
            uris.extend(PRODUCTION_ALLOWED_URIS)
        uris.extend(self.settings.allowed_redirect_uri_list())
        return uris

    async def is_redirect_uri_allowed(self, uri: str | None, client_id: str | None = None) -> bool:
        """True when *uri* is absent, registered for *client_id*, or whitelisted."""
        if not uri:
            return True
        try:
            parts = urlsplit(uri)
        except ValueError:
            return False
        if parts.scheme not in ("http", "https") or not parts.netloc:
            return False

        if client_id and await self.registrations.validate_redirect_uri(client_id, uri):
            return True

        allowed = uri in self.allowed_uris()
        if not allowed:
            logger.warning("Redirect URI rejected: %s (client %s)", uri, client_id or "-")
        return allowed

    async def validate_redirect_uri(self, uri: str | None, client_id: str | None = None) -> None:
        """Raising variant of ``is_redirect_uri_allowed``."""
        if not await self.is_redirect_uri_allowed(uri, client_id):
            raise GatewayError(
                f"Redirect URI not allowed: {uri}. Only whitelisted redirect URIs are permitted.",
                ErrorKind.VALIDATION,
            )

    def log_whitelist(self) -> None:
        uris = self.allowed_uris()
        logger.info(
            "Redirect URI whitelist configured: %d entries (environment=%s)",
            len(uris),
            self.settings.environment,
        )
