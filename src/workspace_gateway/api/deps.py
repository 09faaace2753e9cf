# Shared FastAPI dependencies for the HTTP layer.
# Created: 2026-09-24

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

from fastapi import Request, Response

from workspace_gateway.api.gateway import Gateway
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.security.pii import short_token
from workspace_gateway.security.rate_limiter import RateLimiter
from workspace_gateway.security.session_cookie import unsign_session_id
from workspace_gateway.session import Session

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def bearer_token(request: Request) -> str | None:
    match = _BEARER_RE.match(request.headers.get("authorization", ""))
    return match.group(1).strip() if match else None


def session_cookie(request: Request) -> str | None:
    """Session id from the signed cookie; None when absent or tampered with."""
    settings = get_gateway(request).settings
    return unsign_session_id(settings.session_secret, request.cookies.get(settings.cookie_name))


def base_url(request: Request) -> str:
    """Public origin: the configured base URL, else what the proxy reports."""
    configured = get_gateway(request).settings.base_url
    if configured:
        return configured.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def rate_limit(limiter: RateLimiter):
    """FastAPI dependency that spends one token from *limiter* per request.

    Usage::

        @router.get("/auth/login", dependencies=[Depends(rate_limit(auth_limiter))])
    """

    async def _check(request: Request, response: Response) -> None:
        info = await get_gateway(request).rate_limits.enforce(limiter, client_ip(request))
        response.headers.update(info.headers())

    return _check


@dataclass
class AuthContext:
    session: Session
    method: Literal["bearer", "cookie"]
    token: str | None = None


async def authenticate(request: Request) -> tuple[AuthContext | None, str]:
    """Resolve the caller: bearer token first, then the session cookie.

    Returns the context, or None with the reason the last attempt failed.
    """
    gw = get_gateway(request)
    reason = "No bearer token found"

    token = bearer_token(request)
    if token:
        validation = await gw.bearer_tokens.validate_token(token)
        if not validation.valid:
            reason = validation.error or "Invalid token"
            logger.warning(
                "Bearer authentication failed (%s) for token %s", reason, short_token(token)
            )
        else:
            session = await gw.sessions.get_session(validation.session_id)
            if session is not None and session.authenticated:
                return AuthContext(session, "bearer", token), ""
            reason = "Session not found or not authenticated"

    session_id = session_cookie(request)
    if not session_id:
        return None, reason if token else "No session cookie found"
    session = await gw.sessions.get_session(session_id)
    if session is None or not session.authenticated:
        return None, "Session not found or not authenticated"
    return AuthContext(session, "cookie"), ""


async def require_auth(request: Request) -> AuthContext:
    auth, reason = await authenticate(request)
    if auth is None:
        raise GatewayError(
            "Authentication required. Please authenticate with bearer token or session cookie.",
            ErrorKind.AUTHENTICATION,
            details={"reason": reason},
        )
    return auth
