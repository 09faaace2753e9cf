# Google OAuth client: consent URL, code exchange, userinfo, refresh, revoke.
# Created: 2026-09-17

from __future__ import annotations

import logging
import time
import urllib.parse
from typing import Any

import httpx

from workspace_gateway.config import Settings
from workspace_gateway.errors import ErrorKind, GatewayError, UpstreamError
from workspace_gateway.session.models import OAuthTokenSet

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

HTTP_TIMEOUT = 15


class GoogleOAuthClient:
    """The single upstream identity provider.

    Stateless apart from the configured client credentials; every call opens
    its own ``httpx.AsyncClient``.
    """

    def __init__(self, settings: Settings):
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_uri = settings.google_redirect_uri
        self.scopes = list(settings.google_scopes)

    def authorization_url(self, state: str) -> str:
        """Consent URL bound to *state* (the session id)."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_URL}?{urllib.parse.urlencode(params)}"

    @staticmethod
    def _token_set(data: dict[str, Any], refresh_token: str | None = None) -> OAuthTokenSet:
        expires_in = data.get("expires_in", 3600)
        return OAuthTokenSet(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
            expiry_date=time.time() + float(expires_in),
        )

    async def _post_token(self, form: dict[str, str]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            resp = await client.post(TOKEN_URL, data=form)
        if resp.status_code >= 400:
            raise UpstreamError(resp.status_code, f"Token endpoint error: {_error_text(resp)}")
        return resp.json()

    async def exchange_code(self, code: str) -> OAuthTokenSet:
        """Trade the upstream authorization code for an access/refresh token pair."""
        data = await self._post_token(
            {
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        if not data.get("access_token"):
            raise GatewayError("No access token received from Google", ErrorKind.AUTHENTICATION)
        logger.info("Google authorization code exchanged")
        return self._token_set(data)

    async def get_user_info(self, access_token: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            resp = await client.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
        if resp.status_code >= 400:
            raise UpstreamError(resp.status_code, f"Userinfo error: {_error_text(resp)}")
        info = resp.json()
        if not info.get("email"):
            raise GatewayError("Google did not return an email address", ErrorKind.AUTHENTICATION)
        return info

    async def refresh_tokens(self, tokens: OAuthTokenSet) -> OAuthTokenSet:
        """New access token from the refresh token; keeps the refresh token if not rotated."""
        if not tokens.refresh_token:
            raise GatewayError(
                "Access token expired and no refresh token is available",
                ErrorKind.TOKEN_EXPIRED,
            )
        data = await self._post_token(
            {
                "refresh_token": tokens.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            }
        )
        refreshed = self._token_set(data, refresh_token=tokens.refresh_token)
        if not refreshed.scope:
            refreshed.scope = tokens.scope
        logger.info("Refreshed Google access token")
        return refreshed

    async def revoke_token(self, token: str) -> bool:
        """Best effort; failures are logged and reported as False."""
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                resp = await client.post(
                    REVOKE_URL,
                    params={"token": token},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.warning("Google token revocation failed: %s", e)
            return False
        if resp.status_code >= 400:
            logger.warning("Google token revocation returned %d", resp.status_code)
            return False
        return True


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return err.get("message") or f"HTTP {resp.status_code}"
        return body.get("error_description") or err or f"HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}"
