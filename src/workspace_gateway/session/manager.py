# Session manager: Redis-backed session lifecycle.
# Created: 2026-09-15
#
# Keys: sess:<id>, JSON records, store TTL = remaining absolute lifetime.
# Tokens are persisted only in encrypted form (encryptedTokens).

from __future__ import annotations

import json
import logging
import secrets
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from workspace_gateway.errors import CipherError, StorageUnavailable
from workspace_gateway.session.models import OAuthTokenSet, Session
from workspace_gateway.store import scan_keys

if TYPE_CHECKING:
    from workspace_gateway.security.cipher import TokenCipher

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "sess:"
DEFAULT_SESSION_TTL = 4 * 60 * 60
DEFAULT_IDLE_TIMEOUT = 30 * 60
UPDATE_RETRIES = 3

_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def _key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class SessionManager:
    """CRUD and TTL lifecycle for user sessions."""

    def __init__(
        self,
        redis: Redis,
        cipher: TokenCipher,
        ttl: int = DEFAULT_SESSION_TTL,
        idle_timeout: int = DEFAULT_IDLE_TIMEOUT,
    ):
        self.redis = redis
        self.cipher = cipher
        self.ttl = ttl
        self.idle_timeout = idle_timeout

    # -- serialization -----------------------------------------------------

    async def _serialize(self, session: Session) -> str:
        encrypted = session.sealed_tokens
        if session.tokens is not None:
            encrypted = await self.cipher.encrypt_tokens(session.tokens)
        return json.dumps(session.to_record(encrypted))

    async def _deserialize(self, data: str) -> Session:
        record: dict[str, Any] = json.loads(data)
        tokens: OAuthTokenSet | None = None
        encrypted = record.get("encryptedTokens")
        if encrypted:
            # SecretUnavailable propagates; a missing key says nothing about the tokens
            try:
                tokens = await self.cipher.decrypt_tokens(encrypted)
            except (CipherError, ValueError, KeyError) as e:
                logger.error("Failed to decrypt tokens for session %s: %s", record.get("id"), e)
        session = Session.from_record(record, tokens)
        if tokens is None and encrypted:
            session.sealed_tokens = encrypted
        return session

    def _expiry_reason(self, session: Session, now: float) -> str | None:
        if session.expires_at < now:
            return "absolute"
        if self.idle_timeout and now - session.last_accessed_at > self.idle_timeout:
            return "idle"
        return None

    async def _remaining_ttl(self, redis, key: str, session: Session, now: float) -> int:
        ttl = await redis.ttl(key)
        if ttl and ttl > 0:
            return ttl
        return max(1, int(session.expires_at - now))

    # -- operations --------------------------------------------------------

    async def create_session(
        self, metadata: dict[str, Any] | None = None, ttl: int | None = None
    ) -> Session:
        """Create an unauthenticated session with a fresh unguessable id."""
        now = time.time()
        lifetime = ttl or self.ttl
        session = Session(
            id=secrets.token_urlsafe(32),
            created_at=now,
            expires_at=now + lifetime,
            last_accessed_at=now,
            metadata=dict(metadata or {}),
        )
        try:
            await self.redis.set(_key(session.id), await self._serialize(session), ex=lifetime)
        except RedisError as e:
            raise StorageUnavailable(f"Could not create session: {e}") from e
        logger.info("Session created: %s", session.id[:8])
        return session

    async def get_session(self, session_id: str) -> Session | None:
        """Return the live session, refreshing last access, or None if gone or expired."""
        if not session_id:
            return None
        key = _key(session_id)
        try:
            data = await self.redis.get(key)
        except RedisError as e:
            raise StorageUnavailable(f"Could not read session: {e}") from e
        if not data:
            return None

        try:
            session = await self._deserialize(data)
        except (ValueError, KeyError) as e:
            logger.error("Corrupt session record %s: %s", session_id[:8], e)
            return None

        now = time.time()
        reason = self._expiry_reason(session, now)
        if reason:
            await self.delete_session(session_id)
            logger.info("Session %s expired (%s timeout)", session_id[:8], reason)
            return None

        session.last_accessed_at = now
        try:
            ttl = await self._remaining_ttl(self.redis, key, session, now)
            await self.redis.set(key, await self._serialize(session), ex=ttl)
        except RedisError as e:
            raise StorageUnavailable(f"Could not refresh session: {e}") from e
        return session

    async def update_session(self, session_id: str, **updates: Any) -> Session | None:
        """Apply field updates under WATCH/MULTI, retrying on concurrent writes."""
        bad = _IMMUTABLE_FIELDS.intersection(updates)
        if bad:
            raise ValueError(f"Cannot update immutable session fields: {sorted(bad)}")

        key = _key(session_id)
        for attempt in range(1, UPDATE_RETRIES + 1):
            try:
                async with self.redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(key)
                    data = await pipe.get(key)
                    if not data:
                        return None
                    session = await self._deserialize(data)
                    now = time.time()
                    if self._expiry_reason(session, now):
                        await pipe.unwatch()
                        await self.delete_session(session_id)
                        return None

                    updated = replace(session, **updates)
                    updated.last_accessed_at = now
                    ttl = await self._remaining_ttl(pipe, key, updated, now)
                    serialized = await self._serialize(updated)

                    pipe.multi()
                    pipe.set(key, serialized, ex=ttl)
                    await pipe.execute()
            except WatchError:
                logger.debug(
                    "Session %s changed during update (attempt %d)", session_id[:8], attempt
                )
                continue
            except RedisError as e:
                raise StorageUnavailable(f"Could not update session: {e}") from e

            logger.info("Session %s updated: %s", session_id[:8], ", ".join(sorted(updates)))
            return updated

        logger.warning(
            "Session %s update abandoned after %d attempts", session_id[:8], UPDATE_RETRIES
        )
        return None

    async def store_tokens(
        self, session_id: str, tokens: OAuthTokenSet, user_email: str
    ) -> Session | None:
        """Persist encrypted upstream tokens and mark the session authenticated."""
        session = await self.update_session(
            session_id, tokens=tokens, user_email=user_email, authenticated=True
        )
        if session:
            logger.info("OAuth tokens stored in session %s for %s", session_id[:8], user_email)
        return session

    async def update_metadata(self, session_id: str, **metadata: Any) -> Session | None:
        session = await self.get_session(session_id)
        if session is None:
            return None
        return await self.update_session(session_id, metadata={**session.metadata, **metadata})

    async def refresh_session(self, session_id: str) -> Session | None:
        """Extend the absolute lifetime by a full TTL."""
        session = await self.get_session(session_id)
        if session is None:
            return None
        now = time.time()
        session.expires_at = now + self.ttl
        session.last_accessed_at = now
        try:
            await self.redis.set(_key(session_id), await self._serialize(session), ex=self.ttl)
        except RedisError as e:
            raise StorageUnavailable(f"Could not refresh session: {e}") from e
        return session

    async def delete_session(self, session_id: str) -> bool:
        try:
            removed = await self.redis.delete(_key(session_id))
        except RedisError as e:
            raise StorageUnavailable(f"Could not delete session: {e}") from e
        logger.info("Session %s deleted (existed=%s)", session_id[:8], removed > 0)
        return removed > 0

    async def get_all_sessions(self) -> list[Session]:
        """All stored sessions that are not past their absolute expiry."""
        sessions: list[Session] = []
        now = time.time()
        try:
            async for key in scan_keys(self.redis, f"{SESSION_KEY_PREFIX}*"):
                data = await self.redis.get(key)
                if not data:
                    continue
                try:
                    session = await self._deserialize(data)
                except (ValueError, KeyError):
                    logger.warning("Skipping corrupt session record %s", key)
                    continue
                if not session.is_expired(now):
                    sessions.append(session)
        except RedisError as e:
            raise StorageUnavailable(f"Could not scan sessions: {e}") from e
        return sessions

    async def cleanup_expired_sessions(self) -> int:
        """Delete records whose expiresAt has passed, or that cannot be parsed."""
        deleted = 0
        now = time.time()
        try:
            async for key in scan_keys(self.redis, f"{SESSION_KEY_PREFIX}*"):
                data = await self.redis.get(key)
                if not data:
                    continue
                try:
                    expires_at = float(json.loads(data)["expiresAt"])
                except (ValueError, KeyError, TypeError):
                    expires_at = 0.0
                if expires_at < now:
                    deleted += await self.redis.delete(key)
        except RedisError as e:
            raise StorageUnavailable(f"Could not sweep sessions: {e}") from e
        if deleted:
            logger.info("Expired sessions cleaned up: %d", deleted)
        return deleted

    async def get_session_count(self) -> int:
        try:
            return len([k async for k in scan_keys(self.redis, f"{SESSION_KEY_PREFIX}*")])
        except RedisError as e:
            raise StorageUnavailable(f"Could not count sessions: {e}") from e
