# Token router: code exchange, session token minting, token management.
# Created: 2026-09-24

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Request

from workspace_gateway.api.deps import (
    AuthContext,
    get_gateway,
    rate_limit,
    require_auth,
    session_cookie,
)
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.oauth.flow import OAuthProtocolError
from workspace_gateway.oauth.tokens import TokenData
from workspace_gateway.security.pii import short_token
from workspace_gateway.security.rate_limiter import api_limiter, token_limiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tokens"])


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))


def _token_view(data: TokenData) -> dict[str, Any]:
    return {
        "token": short_token(data.token),
        "createdAt": _iso(data.created_at),
        "expiresAt": _iso(data.expires_at),
    }


async def _token_params(request: Request) -> dict[str, Any]:
    """Token requests arrive form-encoded (RFC 6749) or as JSON."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith(
        "multipart/form-data"
    ):
        form = await request.form()
        return {k: str(v) for k, v in form.items()}
    body = await request.body()
    if not body:
        return {}
    try:
        data = await request.json()
    except ValueError as e:
        raise OAuthProtocolError("invalid_request", "Request body is not valid JSON") from e
    if not isinstance(data, dict):
        raise OAuthProtocolError("invalid_request", "Request body must be an object")
    return data


@router.post("/token", dependencies=[Depends(rate_limit(token_limiter))])
@router.post(
    "/api/generate-token",
    include_in_schema=False,
    dependencies=[Depends(rate_limit(token_limiter))],
)
async def token_endpoint(request: Request):
    """``grant_type=authorization_code`` exchange, or mint a token for the cookie session."""
    gw = get_gateway(request)
    params = await _token_params(request)
    grant_type = params.get("grant_type")

    if grant_type is None:
        return await gw.flow.issue_session_token(session_cookie(request))
    if grant_type != "authorization_code":
        raise OAuthProtocolError(
            "unsupported_grant_type", "Only authorization_code grant type is supported"
        )
    return await gw.flow.exchange_authorization_code(
        code=params.get("code"),
        redirect_uri=params.get("redirect_uri"),
        code_verifier=params.get("code_verifier"),
        client_id=params.get("client_id"),
    )


@router.get("/api/tokens", dependencies=[Depends(rate_limit(api_limiter))])
async def list_tokens(request: Request, auth: AuthContext = Depends(require_auth)):
    tokens = await get_gateway(request).bearer_tokens.list_tokens_for_session(auth.session.id)
    return {"success": True, "tokens": [_token_view(t) for t in tokens]}


async def _owned_token(request: Request, token: str, auth: AuthContext) -> TokenData:
    data = await get_gateway(request).bearer_tokens.get_token_data(token)
    if data is None or data.session_id != auth.session.id:
        raise GatewayError("Token not found", ErrorKind.NOT_FOUND)
    return data


@router.get("/api/token/{token}", dependencies=[Depends(rate_limit(api_limiter))])
async def token_info(token: str, request: Request, auth: AuthContext = Depends(require_auth)):
    data = await _owned_token(request, token, auth)
    view = _token_view(data)
    view["sessionId"] = data.session_id
    view["expiresIn"] = max(0, int(data.expires_at - time.time()))
    return {"success": True, "token": view}


@router.delete("/api/token/{token}", dependencies=[Depends(rate_limit(api_limiter))])
async def revoke_token(token: str, request: Request, auth: AuthContext = Depends(require_auth)):
    await _owned_token(request, token, auth)
    await get_gateway(request).bearer_tokens.revoke_token(token)
    logger.info("Bearer token %s revoked by its owner", short_token(token))
    return {"success": True, "message": "Token revoked successfully"}


@router.delete("/api/tokens", dependencies=[Depends(rate_limit(api_limiter))])
async def revoke_all_tokens(request: Request, auth: AuthContext = Depends(require_auth)):
    count = await get_gateway(request).bearer_tokens.revoke_tokens_for_session(auth.session.id)
    return {"success": True, "message": f"{count} tokens revoked", "revokedCount": count}
