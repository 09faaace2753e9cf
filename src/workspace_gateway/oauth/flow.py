# OAuth flow controller: login, upstream callback, code exchange, status, logout.
# Created: 2026-09-18
#
# Login creates a session and remembers any PKCE request against it; the
# session id doubles as the upstream `state`. The callback either mints a
# local authorization code (PKCE), mints a bearer token (legacy redirect) or
# lands on the status page. Every outbound redirect is re-validated.

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from workspace_gateway.config import Settings
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.metrics import oauth_requests_total, token_generation_total
from workspace_gateway.oauth.codes import AuthorizationCodeManager
from workspace_gateway.oauth.google import GoogleOAuthClient
from workspace_gateway.oauth.models import AuthorizationRequest
from workspace_gateway.oauth.redirects import RedirectValidator
from workspace_gateway.oauth.tokens import BearerTokenManager
from workspace_gateway.session import OAuthTokenSet, Session, SessionManager

logger = logging.getLogger(__name__)

DEFAULT_LANDING = "/test"
# Assumed when the upstream token response carried no expiry
UPSTREAM_TOKEN_LIFETIME = 3600


class OAuthProtocolError(GatewayError):
    """An RFC 6749 error response: ``{error, error_description}``."""

    kind = ErrorKind.VALIDATION

    def __init__(self, error: str, description: str, kind: ErrorKind | None = None):
        super().__init__(description, kind)
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "error_description": self.message}


class CallbackFailed(GatewayError):
    """The upstream callback could not complete; rendered as an HTML page."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        title: str,
        message: str,
        *,
        heading: str = "Authentication Failed",
        kind: ErrorKind | None = None,
        detail: str | None = None,
    ):
        super().__init__(message, kind)
        self.title = title
        self.heading = heading
        self.detail = detail


@dataclass
class LoginRequest:
    """Query parameters accepted by the login endpoint."""

    client_id: str | None = None
    redirect_uri: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    state: str | None = None
    response_type: str | None = None

    @property
    def is_pkce(self) -> bool:
        return bool(self.client_id and self.redirect_uri and self.code_challenge)


def append_query(url: str, params: dict[str, str]) -> str:
    """Add *params* to *url*, keeping whatever query it already carries."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class OAuthFlowController:
    """Orchestrates the browser sign-in and the token endpoint."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        codes: AuthorizationCodeManager,
        bearer_tokens: BearerTokenManager,
        redirects: RedirectValidator,
        google: GoogleOAuthClient,
    ):
        self.settings = settings
        self.sessions = sessions
        self.codes = codes
        self.bearer_tokens = bearer_tokens
        self.redirects = redirects
        self.google = google

    # -- login ---------------------------------------------------------------

    async def start_login(
        self,
        request: LoginRequest,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> Session:
        """Validate the request and create the session that carries it."""
        if request.redirect_uri and not await self.redirects.is_redirect_uri_allowed(
            request.redirect_uri, request.client_id
        ):
            logger.warning(
                "OAuth login rejected: redirect_uri not whitelisted (client %s, ip %s)",
                request.client_id or "-",
                ip_address or "-",
            )
            raise OAuthProtocolError("invalid_request", "redirect_uri is not whitelisted")

        method = request.code_challenge_method or "S256"
        if request.is_pkce and method != "S256":
            raise OAuthProtocolError(
                "invalid_request", "Only the S256 code_challenge_method is supported"
            )

        session = await self.sessions.create_session(
            metadata={
                "userAgent": user_agent,
                "ipAddress": ip_address,
                "redirectUri": request.redirect_uri,
                "isPKCEFlow": request.is_pkce,
            }
        )

        if request.is_pkce:
            await self.codes.store_authorization_request(
                session.id,
                AuthorizationRequest(
                    client_id=request.client_id,
                    redirect_uri=request.redirect_uri,
                    code_challenge=request.code_challenge,
                    code_challenge_method=method,
                    response_type=request.response_type or "code",
                    state=request.state,
                ),
            )
            logger.info("OAuth login initiated with PKCE (client %s)", request.client_id)
        else:
            logger.info("OAuth login initiated (legacy flow, session %s)", session.id[:8])
        return session

    def authorization_url(self, session: Session) -> str:
        return self.google.authorization_url(state=session.id)

    # -- callback ------------------------------------------------------------

    async def handle_callback(
        self, code: str | None, state: str | None, error: str | None = None
    ) -> str:
        """Finish the upstream round trip and return where to send the browser."""
        flow_type = "pkce"
        try:
            if error:
                raise CallbackFailed(
                    "Authentication Failed",
                    f"An error occurred during authentication: {error}",
                )
            if not code or not state:
                raise CallbackFailed(
                    "Invalid Request", "Missing code or state in the authorization response."
                )

            session = await self.sessions.get_session(state)
            if session is None:
                raise CallbackFailed(
                    "Session Expired",
                    "Session expired or invalid. Please try again.",
                    kind=ErrorKind.SESSION,
                )
            flow_type = "pkce" if session.is_pkce_flow else "legacy"
            if session.authenticated:
                # Replayed callback: the session already holds credentials.
                logger.warning("Duplicate OAuth callback for session %s rejected", state[:8])
                raise CallbackFailed(
                    "Session Already Used",
                    "This sign-in has already completed. Please start again.",
                    kind=ErrorKind.SESSION,
                )

            tokens = await self.google.exchange_code(code)
            user_info = await self.google.get_user_info(tokens.access_token)
            email = user_info["email"]
            stored = await self.sessions.store_tokens(session.id, tokens, email)
            if stored is None:
                raise CallbackFailed(
                    "Session Expired",
                    "Session expired or invalid. Please try again.",
                    kind=ErrorKind.SESSION,
                )
            logger.info("OAuth tokens received for %s (session %s)", email, state[:8])

            if session.is_pkce_flow:
                location = await self._finish_pkce(session, tokens, email)
            else:
                location = await self._finish_legacy(session)
        except CallbackFailed:
            oauth_requests_total.labels(status="failure", flow_type=flow_type).inc()
            raise
        except (GatewayError, httpx.HTTPError) as e:
            logger.error("OAuth callback failed: %s", e)
            oauth_requests_total.labels(status="failure", flow_type=flow_type).inc()
            raise CallbackFailed(
                "Authentication Failed",
                "An error occurred during authentication.",
                kind=ErrorKind.INTERNAL,
                detail=f"Error: {e}",
            ) from e

        oauth_requests_total.labels(status="success", flow_type=flow_type).inc()
        return location

    async def _finish_pkce(self, session: Session, tokens: OAuthTokenSet, email: str) -> str:
        request = await self.codes.get_authorization_request(session.id)
        if request is None:
            raise CallbackFailed(
                "Authorization Failed",
                "Session expired or invalid. Please try again.",
                heading="Authorization Failed",
            )
        if not await self.redirects.is_redirect_uri_allowed(
            request.redirect_uri, request.client_id
        ):
            raise CallbackFailed(
                "Invalid Redirect",
                "Redirect URI is not whitelisted for security reasons.",
                heading="Authorization Failed",
            )

        code = await self.codes.generate_authorization_code(
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            code_challenge=request.code_challenge,
            code_challenge_method="S256",
            user_email=email,
            google_access_token=tokens.access_token,
            google_refresh_token=tokens.refresh_token,
            google_expiry_date=tokens.expiry_date,
            state=request.state,
            scope=tokens.scope,
        )
        await self.codes.delete_authorization_request(session.id)

        params = {"code": code}
        if request.state:
            params["state"] = request.state
        logger.info("Redirecting client %s with authorization code", request.client_id)
        return append_query(request.redirect_uri, params)

    async def _finish_legacy(self, session: Session) -> str:
        redirect_uri = session.metadata.get("redirectUri")
        if not redirect_uri:
            return DEFAULT_LANDING
        if not await self.redirects.is_redirect_uri_allowed(redirect_uri):
            raise CallbackFailed(
                "Invalid Redirect",
                "Redirect URI is not whitelisted for security reasons.",
                heading="Authorization Failed",
            )
        bearer = await self.bearer_tokens.generate_token(session.id)
        logger.info("Legacy flow: bearer token issued for session %s", session.id[:8])
        return append_query(redirect_uri, {"access_token": bearer, "token_type": "Bearer"})

    # -- token endpoint ------------------------------------------------------

    def _token_response(self, bearer: str) -> dict[str, Any]:
        return {
            "access_token": bearer,
            "token_type": "Bearer",
            "expires_in": self.bearer_tokens.ttl,
        }

    async def exchange_authorization_code(
        self,
        code: str | None,
        redirect_uri: str | None,
        code_verifier: str | None,
        client_id: str | None,
    ) -> dict[str, Any]:
        """``grant_type=authorization_code``: consume the code, open a session, mint a token."""
        if not (code and redirect_uri and code_verifier and client_id):
            token_generation_total.labels(status="failure").inc()
            raise OAuthProtocolError(
                "invalid_request",
                "Missing required parameters: code, redirect_uri, code_verifier, client_id",
            )

        record = await self.codes.validate_and_consume_code(
            code, client_id, redirect_uri, code_verifier
        )
        if record is None:
            token_generation_total.labels(status="failure").inc()
            raise OAuthProtocolError(
                "invalid_grant", "Authorization code invalid, expired, or already used"
            )

        session = await self.sessions.create_session(
            metadata={"clientId": client_id, "grantType": "authorization_code"}
        )
        await self.sessions.store_tokens(
            session.id,
            OAuthTokenSet(
                access_token=record.google_access_token,
                refresh_token=record.google_refresh_token,
                scope=record.scope or " ".join(self.settings.google_scopes),
                expiry_date=record.google_expiry_date or time.time() + UPSTREAM_TOKEN_LIFETIME,
            ),
            record.user_email,
        )
        bearer = await self.bearer_tokens.generate_token(session.id)
        logger.info("Bearer token issued via code exchange (client %s)", client_id)
        return self._token_response(bearer)

    async def issue_session_token(self, session_id: str | None) -> dict[str, Any]:
        """Mint a bearer token for an authenticated cookie session."""
        if not session_id:
            token_generation_total.labels(status="failure").inc()
            raise OAuthProtocolError(
                "unauthorized",
                "No session cookie found. Please authenticate first.",
                ErrorKind.AUTHENTICATION,
            )
        session = await self.sessions.get_session(session_id)
        if session is None or not session.authenticated:
            token_generation_total.labels(status="failure").inc()
            raise OAuthProtocolError(
                "unauthorized",
                "Session not found or not authenticated",
                ErrorKind.AUTHENTICATION,
            )
        bearer = await self.bearer_tokens.generate_token(session_id)
        return self._token_response(bearer)

    # -- status / logout -----------------------------------------------------

    async def status(self, session_id: str | None) -> dict[str, Any]:
        if not session_id:
            return {"authenticated": False, "message": "No session cookie found"}
        session = await self.sessions.get_session(session_id)
        if session is None:
            return {"authenticated": False, "message": "Session expired or invalid"}
        return {
            "authenticated": session.authenticated,
            "sessionId": session.id,
            "userEmail": session.user_email,
            "expiresAt": _iso(session.expires_at),
            "lastAccessedAt": _iso(session.last_accessed_at),
        }

    async def logout(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        await self.bearer_tokens.revoke_tokens_for_session(session_id)
        return await self.sessions.delete_session(session_id)


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))
