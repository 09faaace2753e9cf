# MCP router: JSON-RPC over POST /mcp, discovery-aware GET, session teardown.
# Created: 2026-09-24

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from workspace_gateway.api.deps import AuthContext, authenticate, base_url, get_gateway, rate_limit
from workspace_gateway.errors import JSONRPC_INVALID_REQUEST, JSONRPC_UNAUTHORIZED, GatewayError
from workspace_gateway.security.rate_limiter import api_limiter
from workspace_gateway.workspace import WorkspaceClient, create_workspace_client, fresh_tokens

logger = logging.getLogger(__name__)

router = APIRouter(tags=["MCP"])

JSONRPC_PARSE_ERROR = -32700


def _rpc_error(code: int, message: str, status_code: int, **extra) -> JSONResponse:
    error = {"code": code, "message": message, **extra}
    return JSONResponse({"jsonrpc": "2.0", "id": None, "error": error}, status_code=status_code)


def _unauthenticated(reason: str) -> JSONResponse:
    return _rpc_error(
        JSONRPC_UNAUTHORIZED,
        "Authentication required. Please authenticate with bearer token or session cookie.",
        401,
        data={"reason": reason},
    )


@router.post("/mcp", dependencies=[Depends(rate_limit(api_limiter))])
async def mcp_post(request: Request):
    gw = get_gateway(request)
    try:
        auth, reason = await authenticate(request)
    except GatewayError as e:
        logger.error("MCP authentication unavailable: %s", e)
        return JSONResponse(e.to_jsonrpc(), status_code=e.status_code)
    if auth is None:
        return _unauthenticated(reason)

    try:
        message = json.loads(await request.body())
    except ValueError:
        return _rpc_error(JSONRPC_PARSE_ERROR, "Parse error", 400)
    if isinstance(message, list):
        return _rpc_error(JSONRPC_INVALID_REQUEST, "Batch requests are not supported", 400)

    async def workspace() -> WorkspaceClient:
        tokens = await fresh_tokens(auth.session, gw.sessions, gw.google)
        return create_workspace_client(tokens, gw.breakers)

    result = await gw.adapter.handle(message, workspace)
    if result.body is None:
        return Response(status_code=202)
    return JSONResponse(result.body, status_code=result.status_code)


@router.get("/mcp")
async def mcp_get(request: Request):
    """No server-initiated stream; unauthenticated callers get discovery hints."""
    auth, _ = await authenticate(request)
    if auth is not None:
        return JSONResponse(
            {"error": "Method not allowed", "message": "Use POST /mcp for JSON-RPC requests"},
            status_code=405,
            headers={"Allow": "POST, DELETE"},
        )

    base = base_url(request)
    scope = " ".join(get_gateway(request).settings.google_scopes)
    challenge = (
        f'Bearer realm="{base}", authorization_uri="{base}/auth/login", '
        f'token_uri="{base}/token", resource="{base}/mcp", scope="{scope}"'
    )
    logger.info(
        "Unauthenticated MCP connection attempt from %s; returned discovery info",
        request.client.host if request.client else "unknown",
    )
    return JSONResponse(
        {
            "error": "Authentication required",
            "message": "Please authenticate using OAuth 2.1 with PKCE",
            "oauth_discovery": f"{base}/.well-known/oauth-authorization-server",
            "resource_discovery": f"{base}/.well-known/oauth-protected-resource/mcp",
            "client_registration": f"{base}/oauth/register",
        },
        status_code=401,
        headers={"WWW-Authenticate": challenge},
    )


@router.delete("/mcp")
async def mcp_delete(request: Request):
    gw = get_gateway(request)
    auth, reason = await authenticate(request)
    if auth is None:
        return _unauthenticated(reason)
    return await _end_session(gw, auth)


async def _end_session(gw, auth: AuthContext) -> dict:
    if auth.method == "bearer":
        await gw.bearer_tokens.revoke_token(auth.token)
        return {"success": True, "message": "Bearer token revoked"}
    await gw.bearer_tokens.revoke_tokens_for_session(auth.session.id)
    await gw.sessions.delete_session(auth.session.id)
    return {"success": True, "message": "Session terminated"}
