# Authorization code manager (OAuth 2.1 + PKCE).
# Created: 2026-09-16
#
# Codes are consumed with a server-side GET+DEL script so that two concurrent
# exchanges can never both read the same record. Validation happens after the
# record is gone: a failed check still burns the code.

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time

from redis.asyncio import Redis
from redis.exceptions import RedisError

from workspace_gateway.errors import StorageUnavailable
from workspace_gateway.oauth.models import AuthorizationCode, AuthorizationRequest

logger = logging.getLogger(__name__)

CODE_PREFIX = "oauth:authz_code:"
REQUEST_PREFIX = "oauth:authz_request:"
CODE_TTL = 600

_CONSUME_SCRIPT = """
local data = redis.call('GET', KEYS[1])
if data then
  redis.call('DEL', KEYS[1])
end
return data
"""


def compute_s256_challenge(code_verifier: str) -> str:
    """PKCE S256: BASE64URL(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class AuthorizationCodeManager:
    """Issues and single-use-consumes PKCE-bound authorization codes."""

    def __init__(self, redis: Redis, ttl: int = CODE_TTL):
        self.redis = redis
        self.ttl = ttl
        self._consume = redis.register_script(_CONSUME_SCRIPT)

    async def store_authorization_request(
        self, session_id: str, request: AuthorizationRequest
    ) -> None:
        """Persist the pending request for *session_id*, replacing any earlier one."""
        try:
            await self.redis.set(
                f"{REQUEST_PREFIX}{session_id}", json.dumps(request.to_dict()), ex=self.ttl
            )
        except RedisError as e:
            raise StorageUnavailable(f"Could not store authorization request: {e}") from e
        logger.info(
            "Authorization request stored for session %s (client %s)",
            session_id[:8],
            request.client_id,
        )

    async def get_authorization_request(self, session_id: str) -> AuthorizationRequest | None:
        try:
            data = await self.redis.get(f"{REQUEST_PREFIX}{session_id}")
        except RedisError as e:
            raise StorageUnavailable(f"Could not read authorization request: {e}") from e
        if not data:
            return None
        return AuthorizationRequest.from_dict(json.loads(data))

    async def delete_authorization_request(self, session_id: str) -> bool:
        try:
            return await self.redis.delete(f"{REQUEST_PREFIX}{session_id}") > 0
        except RedisError as e:
            raise StorageUnavailable(f"Could not delete authorization request: {e}") from e

    async def generate_authorization_code(
        self,
        client_id: str,
        redirect_uri: str,
        code_challenge: str,
        code_challenge_method: str,
        user_email: str,
        google_access_token: str,
        google_refresh_token: str | None = None,
        google_expiry_date: float = 0.0,
        state: str | None = None,
        scope: str = "",
    ) -> str:
        """Mint a 256-bit URL-safe code and store its record for the code TTL."""
        if code_challenge_method != "S256":
            raise ValueError(f"Unsupported code_challenge_method: {code_challenge_method}")

        code = secrets.token_urlsafe(32)
        now = time.time()
        record = AuthorizationCode(
            code=code,
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            user_email=user_email,
            google_access_token=google_access_token,
            google_refresh_token=google_refresh_token,
            google_expiry_date=google_expiry_date,
            state=state,
            scope=scope,
            created_at=now,
            expires_at=now + self.ttl,
        )
        try:
            await self.redis.set(f"{CODE_PREFIX}{code}", json.dumps(record.to_dict()), ex=self.ttl)
        except RedisError as e:
            raise StorageUnavailable(f"Could not store authorization code: {e}") from e
        logger.info("Authorization code issued for client %s", client_id)
        return code

    async def validate_and_consume_code(
        self, code: str, client_id: str, redirect_uri: str, code_verifier: str
    ) -> AuthorizationCode | None:
        """Atomically take the code out of the store, then check it.

        Checks run in order: expiry, client_id, redirect_uri, PKCE. Any failure
        returns None; the code is already deleted either way.
        """
        if not code:
            return None
        try:
            data = await self._consume(keys=[f"{CODE_PREFIX}{code}"])
        except RedisError as e:
            raise StorageUnavailable(f"Could not consume authorization code: {e}") from e
        if not data:
            logger.warning("Authorization code not found, expired or already used")
            return None

        record = AuthorizationCode.from_dict(json.loads(data))

        if record.is_expired():
            logger.warning("Authorization code expired (client %s)", record.client_id)
            return None
        if record.client_id != client_id:
            logger.warning("Authorization code client mismatch (expected %s)", record.client_id)
            return None
        if record.redirect_uri != redirect_uri:
            logger.warning("Authorization code redirect_uri mismatch (client %s)", client_id)
            return None
        if not code_verifier or not hmac.compare_digest(
            compute_s256_challenge(code_verifier).encode(), record.code_challenge.encode()
        ):
            logger.warning("PKCE verification failed (client %s)", client_id)
            return None

        logger.info("Authorization code consumed (client %s)", client_id)
        return record
