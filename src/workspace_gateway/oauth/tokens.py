# Bearer token manager: opaque API tokens mapped to sessions.
# Created: 2026-09-17

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

from workspace_gateway.errors import StorageUnavailable, TokenGenerationError
from workspace_gateway.metrics import token_generation_total
from workspace_gateway.security.pii import short_token
from workspace_gateway.store import scan_keys

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "api-token:"
TOKEN_TTL = 24 * 60 * 60
GENERATE_RETRIES = 3


@dataclass
class TokenData:
    token: str
    session_id: str
    created_at: float
    expires_at: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TokenValidation:
    valid: bool
    session_id: str | None = None
    error: str | None = None


class BearerTokenManager:
    """Issues, validates and revokes bearer tokens."""

    def __init__(self, redis: Redis, ttl: int = TOKEN_TTL):
        self.redis = redis
        self.ttl = ttl

    def _new_token(self) -> str:
        return str(uuid.uuid4())

    async def generate_token(self, session_id: str) -> str:
        """Reserve a fresh token with SET NX; retry on the (unlikely) collision."""
        for attempt in range(1, GENERATE_RETRIES + 1):
            now = time.time()
            data = TokenData(
                token=self._new_token(),
                session_id=session_id,
                created_at=now,
                expires_at=now + self.ttl,
            )
            try:
                reserved = await self.redis.set(
                    f"{TOKEN_PREFIX}{data.token}", json.dumps(data.to_dict()), ex=self.ttl, nx=True
                )
            except RedisError as e:
                token_generation_total.labels(status="failure").inc()
                raise StorageUnavailable(f"Could not store bearer token: {e}") from e
            if reserved:
                token_generation_total.labels(status="success").inc()
                logger.info(
                    "API token generated: %s (session %s)", short_token(data.token), session_id[:8]
                )
                return data.token
            logger.warning("Bearer token collision on attempt %d", attempt)

        token_generation_total.labels(status="failure").inc()
        raise TokenGenerationError(
            f"Failed to generate a unique token after {GENERATE_RETRIES} attempts"
        )

    async def get_token_data(self, token: str) -> TokenData | None:
        try:
            raw = await self.redis.get(f"{TOKEN_PREFIX}{token}")
        except RedisError as e:
            raise StorageUnavailable(f"Could not read bearer token: {e}") from e
        if not raw:
            return None
        return TokenData(**json.loads(raw))

    async def validate_token(self, token: str) -> TokenValidation:
        if not token:
            return TokenValidation(False, error="Token not found or expired")
        try:
            data = await self.get_token_data(token)
        except (ValueError, TypeError):
            return TokenValidation(False, error="Token validation failed")
        if data is None:
            return TokenValidation(False, error="Token not found or expired")

        if data.expires_at <= time.time():
            try:
                await self.revoke_token(token)
            except StorageUnavailable as e:
                logger.warning("Could not revoke expired token %s: %s", short_token(token), e)
            return TokenValidation(False, error="Token has expired")

        return TokenValidation(True, session_id=data.session_id)

    async def revoke_token(self, token: str) -> bool:
        try:
            removed = await self.redis.delete(f"{TOKEN_PREFIX}{token}")
        except RedisError as e:
            raise StorageUnavailable(f"Could not revoke bearer token: {e}") from e
        if removed:
            logger.info("API token revoked: %s", short_token(token))
        return removed > 0

    async def _iter_tokens(self):
        async for key in scan_keys(self.redis, f"{TOKEN_PREFIX}*"):
            raw = await self.redis.get(key)
            if not raw:
                continue
            try:
                yield key, TokenData(**json.loads(raw))
            except (ValueError, TypeError):
                logger.warning("Skipping malformed token record %s", key[: len(TOKEN_PREFIX) + 8])

    async def list_tokens_for_session(self, session_id: str) -> list[TokenData]:
        try:
            return [data async for _, data in self._iter_tokens() if data.session_id == session_id]
        except RedisError as e:
            raise StorageUnavailable(f"Could not list bearer tokens: {e}") from e

    async def revoke_tokens_for_session(self, session_id: str) -> int:
        revoked = 0
        try:
            async for key, data in self._iter_tokens():
                if data.session_id == session_id:
                    revoked += await self.redis.delete(key)
        except RedisError as e:
            raise StorageUnavailable(f"Could not revoke bearer tokens: {e}") from e
        if revoked:
            logger.info("Revoked %d API tokens for session %s", revoked, session_id[:8])
        return revoked

    async def cleanup_expired_tokens(self) -> int:
        cleaned = 0
        now = time.time()
        try:
            async for key, data in self._iter_tokens():
                if data.expires_at <= now:
                    cleaned += await self.redis.delete(key)
        except RedisError as e:
            raise StorageUnavailable(f"Could not sweep bearer tokens: {e}") from e
        return cleaned

    async def get_token_count(self) -> int:
        try:
            return len([k async for k in scan_keys(self.redis, f"{TOKEN_PREFIX}*")])
        except RedisError as e:
            raise StorageUnavailable(f"Could not count bearer tokens: {e}") from e
