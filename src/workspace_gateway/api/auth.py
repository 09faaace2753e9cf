# Auth router: browser login, upstream callback, status, logout.
# Created: 2026-09-24

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from workspace_gateway.api.deps import client_ip, get_gateway, rate_limit, session_cookie
from workspace_gateway.config import Settings
from workspace_gateway.oauth.flow import DEFAULT_LANDING, LoginRequest
from workspace_gateway.security.rate_limiter import auth_limiter
from workspace_gateway.security.session_cookie import sign_session_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


def set_session_cookie(response: Response, settings: Settings, session_id: str) -> None:
    """httpOnly, SameSite=None cookie carrying only the session id."""
    response.set_cookie(
        key=settings.cookie_name,
        value=sign_session_id(settings.session_secret, session_id),
        max_age=settings.cookie_max_age_seconds,
        domain=settings.cookie_domain,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="none",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        domain=settings.cookie_domain,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="none",
    )


@router.get("/auth/login", dependencies=[Depends(rate_limit(auth_limiter))])
async def login(
    request: Request,
    client_id: str | None = Query(None),
    redirect_uri: str | None = Query(None),
    code_challenge: str | None = Query(None),
    code_challenge_method: str | None = Query(None),
    state: str | None = Query(None),
    response_type: str | None = Query(None),
):
    """Start the sign-in: create a session and send the browser upstream."""
    gw = get_gateway(request)
    session = await gw.flow.start_login(
        LoginRequest(
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            state=state,
            response_type=response_type,
        ),
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )

    # Cookie first; the upstream URL is only computed once it is attached.
    response = RedirectResponse(DEFAULT_LANDING, status_code=302)
    set_session_cookie(response, gw.settings, session.id)
    response.headers["location"] = gw.flow.authorization_url(session)
    return response


_CALLBACK_LIMIT = [Depends(rate_limit(auth_limiter))]


@router.get("/oauth/callback", dependencies=_CALLBACK_LIMIT)
@router.get("/oauth2callback", include_in_schema=False, dependencies=_CALLBACK_LIMIT)
@router.get("/auth/callback", include_in_schema=False, dependencies=_CALLBACK_LIMIT)
async def oauth_callback(
    request: Request,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
):
    """Upstream redirect target. Failures render an HTML page."""
    gw = get_gateway(request)
    location = await gw.flow.handle_callback(code, state, error)
    return RedirectResponse(location, status_code=302)


@router.get("/auth/status")
async def auth_status(request: Request):
    gw = get_gateway(request)
    return await gw.flow.status(session_cookie(request))


@router.post("/auth/logout")
async def logout(request: Request):
    gw = get_gateway(request)
    session_id = session_cookie(request)
    await gw.flow.logout(session_id)
    response = JSONResponse({"success": True, "message": "Logged out successfully"})
    clear_session_cookie(response, gw.settings)
    if session_id:
        logger.info("Session %s logged out", session_id[:8])
    return response
