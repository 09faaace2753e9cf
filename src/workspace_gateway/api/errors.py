# Exception handlers: GatewayError kinds to HTTP responses.
# Created: 2026-09-24

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.oauth.flow import CallbackFailed, OAuthProtocolError
from workspace_gateway.security.pages import render_error_page
from workspace_gateway.security.rate_limiter import RateLimitExceeded

logger = logging.getLogger(__name__)

_RETRY_KINDS = {ErrorKind.RATE_LIMIT, ErrorKind.CIRCUIT_OPEN, ErrorKind.SERVICE_UNAVAILABLE}
_AUTH_KINDS = {ErrorKind.AUTHENTICATION, ErrorKind.SESSION, ErrorKind.TOKEN_EXPIRED}


def _headers(exc: GatewayError) -> dict[str, str]:
    if exc.kind in _RETRY_KINDS and exc.retry_after:
        return {"Retry-After": str(exc.retry_after)}
    if exc.kind in _AUTH_KINDS:
        return {"WWW-Authenticate": "Bearer"}
    return {}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CallbackFailed)
    async def _callback_failed(request: Request, exc: CallbackFailed) -> HTMLResponse:
        return HTMLResponse(
            render_error_page(exc.title, exc.heading, exc.message, exc.detail),
            status_code=exc.status_code,
        )

    @app.exception_handler(OAuthProtocolError)
    async def _oauth_protocol(request: Request, exc: OAuthProtocolError) -> JSONResponse:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=_headers(exc))

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning("Rate limit hit on %s from %s", request.url.path, request.client)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.info.headers())

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.kind is ErrorKind.INTERNAL:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=_headers(exc))
