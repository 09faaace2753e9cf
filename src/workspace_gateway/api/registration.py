# Dynamic client registration router (RFC 7591).
# Created: 2026-09-24

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from workspace_gateway.api.deps import base_url, bearer_token, get_gateway, rate_limit
from workspace_gateway.oauth.models import RegisteredClient
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.oauth.flow import OAuthProtocolError
from workspace_gateway.security.rate_limiter import auth_limiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Registration"])


class RegistrationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    redirect_uris: list[str] = Field(default_factory=list)
    client_name: str | None = None
    token_endpoint_auth_method: str | None = None
    grant_types: list[str] | None = None
    response_types: list[str] | None = None


@router.post(
    "/oauth/register", status_code=201, dependencies=[Depends(rate_limit(auth_limiter))]
)
@router.post(
    "/register",
    status_code=201,
    include_in_schema=False,
    dependencies=[Depends(rate_limit(auth_limiter))],
)
async def register_client(body: RegistrationRequest, request: Request):
    gw = get_gateway(request)
    try:
        client = await gw.registrations.register_client(
            redirect_uris=body.redirect_uris,
            client_name=body.client_name,
            token_endpoint_auth_method=body.token_endpoint_auth_method,
            grant_types=body.grant_types,
            response_types=body.response_types,
        )
    except GatewayError as e:
        if e.kind is not ErrorKind.VALIDATION:
            raise
        error = "invalid_redirect_uri" if "redirect_uri" in e.message else "invalid_client_metadata"
        raise OAuthProtocolError(error, e.message) from e

    payload = client.public_view()
    payload["registration_client_uri"] = f"{base_url(request)}/oauth/register/{client.client_id}"
    payload["registration_access_token"] = client.registration_access_token
    if client.client_secret:
        payload["client_secret"] = client.client_secret
        payload["client_secret_expires_at"] = 0
    return JSONResponse(payload, status_code=201)


async def _managed_client(client_id: str, request: Request) -> RegisteredClient:
    """RFC 7592: management calls carry the registration access token as a bearer."""
    client = await get_gateway(request).registrations.verify_registration_token(
        client_id, bearer_token(request)
    )
    if client is None:
        # Unknown client and wrong token look the same
        raise GatewayError("Invalid registration access token", ErrorKind.AUTHENTICATION)
    return client


@router.get("/oauth/register/{client_id}")
@router.get("/register/{client_id}", include_in_schema=False)
async def get_client(client_id: str, request: Request):
    """Registration metadata; the secret is never echoed back."""
    client = await _managed_client(client_id, request)
    return client.public_view()


@router.delete("/oauth/register/{client_id}", status_code=204)
@router.delete("/register/{client_id}", status_code=204, include_in_schema=False)
async def delete_client(client_id: str, request: Request):
    await _managed_client(client_id, request)
    await get_gateway(request).registrations.delete_client(client_id)
    return Response(status_code=204)
