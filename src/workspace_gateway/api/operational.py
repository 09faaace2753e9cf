# Operational router: health, metrics, OAuth discovery, landing pages.
# Created: 2026-09-24

from __future__ import annotations

import hmac
import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from workspace_gateway import __version__
from workspace_gateway.api.deps import base_url, bearer_token, get_gateway, session_cookie
from workspace_gateway.errors import ErrorKind, GatewayError, SecretUnavailable
from workspace_gateway.metrics import render_latest
from workspace_gateway.security.pages import render_error_page, render_success_page

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Operational"])

_STARTED_AT = time.monotonic()


@router.get("/health")
async def health(request: Request):
    gw = get_gateway(request)
    connected = await gw.health.check()
    body = {
        "status": "healthy" if connected else "degraded",
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "uptime": int(time.monotonic() - _STARTED_AT),
        "version": __version__,
        "checks": {"redis": gw.health.status(), "circuits": gw.breakers.states()},
    }
    return JSONResponse(body, status_code=200 if connected else 503)


def _check_metrics_auth(request: Request) -> None:
    settings = get_gateway(request).settings
    if not settings.is_production:
        return
    expected = settings.metrics_auth_token
    if not expected:
        raise SecretUnavailable("Metrics authentication not configured")
    provided = bearer_token(request)
    if not provided:
        raise GatewayError(
            "Metrics endpoint requires bearer token authentication in production",
            ErrorKind.AUTHENTICATION,
        )
    if not hmac.compare_digest(provided, expected):
        raise GatewayError("Provided token does not match the metrics token", ErrorKind.PERMISSION)


@router.get("/metrics")
async def metrics(request: Request):
    _check_metrics_auth(request)
    payload, content_type = render_latest()
    return Response(payload, media_type=content_type)


# -- discovery (RFC 8414 / RFC 9728) ---------------------------------------------


@router.get("/.well-known/oauth-authorization-server")
@router.get("/.well-known/openid-configuration", include_in_schema=False)
async def authorization_server_metadata(request: Request):
    base = base_url(request)
    return {
        "issuer": base,
        "authorization_endpoint": f"{base}/auth/login",
        "token_endpoint": f"{base}/token",
        "registration_endpoint": f"{base}/oauth/register",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "token_endpoint_auth_methods_supported": [
            "none",
            "client_secret_post",
            "client_secret_basic",
        ],
        "code_challenge_methods_supported": ["S256"],
        "scopes_supported": get_gateway(request).settings.google_scopes,
    }


def _resource_metadata(base: str, resource: str) -> dict:
    return {
        "resource": resource,
        "authorization_servers": [base],
        "bearer_methods_supported": ["header"],
        "resource_documentation": f"{base}/",
    }


@router.get("/.well-known/oauth-protected-resource")
async def protected_resource_metadata(request: Request):
    base = base_url(request)
    return _resource_metadata(base, base)


@router.get("/.well-known/oauth-protected-resource/mcp")
async def mcp_resource_metadata(request: Request):
    base = base_url(request)
    return _resource_metadata(base, f"{base}/mcp")


# -- landing -------------------------------------------------------------------


@router.get("/test", response_class=HTMLResponse)
async def test_page(request: Request):
    """Where the browser lands after a sign-in without a client redirect."""
    status = await get_gateway(request).flow.status(session_cookie(request))
    if not status["authenticated"]:
        return HTMLResponse(
            render_error_page(
                "Not Signed In",
                "Not Signed In",
                status.get("message", "Please sign in."),
                detail="Start at /auth/login",
            )
        )
    return HTMLResponse(
        render_success_page(
            "Signed In",
            "Authentication Successful",
            "You are signed in. You can now generate a bearer token or call /mcp.",
            detail=f"Signed in as {status['userEmail']}",
        )
    )


@router.get("/")
async def root():
    return {
        "name": "Google Workspace MCP Gateway",
        "version": __version__,
        "transport": "http",
        "endpoints": {
            "health": "GET /health",
            "metrics": "GET /metrics",
            "mcp": "POST /mcp (cookie or bearer token)",
            "auth": {
                "login": "GET /auth/login",
                "callback": "GET /oauth/callback",
                "status": "GET /auth/status",
                "logout": "POST /auth/logout",
            },
            "oauth": {
                "register": "POST /oauth/register",
                "token": "POST /token",
                "discovery": "GET /.well-known/oauth-authorization-server",
            },
            "tokens": {
                "generate": "POST /api/generate-token",
                "list": "GET /api/tokens",
                "info": "GET /api/token/{token}",
                "revoke": "DELETE /api/token/{token}",
                "revokeAll": "DELETE /api/tokens",
            },
            "gdpr": {
                "export": "GET /api/gdpr/user-data",
                "erase": "DELETE /api/gdpr/user-data",
            },
        },
    }
