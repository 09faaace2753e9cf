# Dynamic client registration (RFC 7591).
# Created: 2026-09-16
#
# Registrations are durable: stored without expiry under oauth:client:<id>.

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import time
from urllib.parse import urlsplit

from redis.asyncio import Redis
from redis.exceptions import RedisError

from workspace_gateway.errors import ErrorKind, GatewayError, StorageUnavailable
from workspace_gateway.oauth.models import RegisteredClient

logger = logging.getLogger(__name__)

CLIENT_PREFIX = "oauth:client:"
CLIENT_ID_PREFIX = "mcp_"

SUPPORTED_AUTH_METHODS = frozenset({"none", "client_secret_post", "client_secret_basic"})
SUPPORTED_GRANT_TYPES = frozenset({"authorization_code", "refresh_token"})


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class ClientRegistrationManager:
    """Stores registered clients and answers redirect URI lookups for them."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def register_client(
        self,
        redirect_uris: list[str],
        client_name: str | None = None,
        token_endpoint_auth_method: str | None = None,
        grant_types: list[str] | None = None,
        response_types: list[str] | None = None,
    ) -> RegisteredClient:
        """Validate the metadata, mint credentials and persist the client.

        The returned client carries the plaintext ``registration_access_token``;
        only its hash is stored.
        """
        if not redirect_uris:
            raise GatewayError(
                "redirect_uris is required and must not be empty", ErrorKind.VALIDATION
            )
        for uri in redirect_uris:
            parts = urlsplit(uri)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise GatewayError(f"Invalid redirect_uri: {uri}", ErrorKind.VALIDATION)

        auth_method = token_endpoint_auth_method or "none"
        if auth_method not in SUPPORTED_AUTH_METHODS:
            raise GatewayError(
                f"Unsupported token_endpoint_auth_method: {auth_method}", ErrorKind.VALIDATION
            )
        grants = grant_types or ["authorization_code"]
        unsupported = set(grants) - SUPPORTED_GRANT_TYPES
        if unsupported:
            raise GatewayError(
                f"Unsupported grant_types: {', '.join(sorted(unsupported))}", ErrorKind.VALIDATION
            )

        client = RegisteredClient(
            client_id=f"{CLIENT_ID_PREFIX}{secrets.token_hex(16)}",
            client_name=client_name or "Dynamic Client",
            redirect_uris=list(dict.fromkeys(redirect_uris)),
            grant_types=grants,
            response_types=response_types or ["code"],
            token_endpoint_auth_method=auth_method,
            client_secret=None if auth_method == "none" else secrets.token_hex(32),
            created_at=time.time(),
        )
        management_token = secrets.token_urlsafe(32)
        client.registration_token_hash = _hash_token(management_token)
        client.registration_access_token = management_token
        try:
            await self.redis.set(f"{CLIENT_PREFIX}{client.client_id}", json.dumps(client.to_dict()))
        except RedisError as e:
            raise StorageUnavailable(f"Could not store client registration: {e}") from e

        logger.info("OAuth client registered: %s (%s)", client.client_id, client.client_name)
        return client

    async def get_client(self, client_id: str) -> RegisteredClient | None:
        if not client_id:
            return None
        try:
            data = await self.redis.get(f"{CLIENT_PREFIX}{client_id}")
        except RedisError as e:
            raise StorageUnavailable(f"Could not read client registration: {e}") from e
        if not data:
            return None
        return RegisteredClient.from_dict(json.loads(data))

    async def validate_redirect_uri(self, client_id: str, redirect_uri: str) -> bool:
        """Exact match against this client's own registered URIs."""
        client = await self.get_client(client_id)
        if client is None:
            return False
        if redirect_uri in client.redirect_uris:
            return True
        logger.warning("Redirect URI not registered for client %s: %s", client_id, redirect_uri)
        return False

    async def verify_registration_token(
        self, client_id: str, token: str | None
    ) -> RegisteredClient | None:
        """The client, if *token* is its registration access token; otherwise None."""
        if not token:
            return None
        client = await self.get_client(client_id)
        if client is None or not client.registration_token_hash:
            return None
        if not hmac.compare_digest(client.registration_token_hash, _hash_token(token)):
            logger.warning("Invalid registration access token for client %s", client_id)
            return None
        return client

    async def delete_client(self, client_id: str) -> bool:
        try:
            removed = await self.redis.delete(f"{CLIENT_PREFIX}{client_id}")
        except RedisError as e:
            raise StorageUnavailable(f"Could not delete client registration: {e}") from e
        if removed:
            logger.info("OAuth client deleted: %s", client_id)
        return removed > 0
