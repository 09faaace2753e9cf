# GDPR router: right to erasure and right to portability.
# Created: 2026-09-24

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from workspace_gateway.api.auth import clear_session_cookie
from workspace_gateway.api.deps import AuthContext, get_gateway, rate_limit, require_auth
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.security.rate_limiter import gdpr_limiter

router = APIRouter(tags=["GDPR"])


def _user_email(auth: AuthContext, action: str) -> str:
    if not auth.session.user_email:
        raise GatewayError(
            f"You must be authenticated to {action} your data", ErrorKind.AUTHENTICATION
        )
    return auth.session.user_email


@router.delete("/api/gdpr/user-data", dependencies=[Depends(rate_limit(gdpr_limiter))])
async def delete_user_data(request: Request, auth: AuthContext = Depends(require_auth)):
    gw = get_gateway(request)
    result = await gw.user_data.erase(_user_email(auth, "delete"))
    response = JSONResponse(result)
    clear_session_cookie(response, gw.settings)
    return response


@router.get("/api/gdpr/user-data", dependencies=[Depends(rate_limit(gdpr_limiter))])
async def export_user_data(request: Request, auth: AuthContext = Depends(require_auth)):
    return await get_gateway(request).user_data.export(_user_email(auth, "export"))
