# Tests for session/manager.py and session/cleanup.py
# Created: 2026-09-25

import asyncio
import json
import time
from unittest.mock import patch

import pytest

from workspace_gateway.errors import SecretUnavailable, StorageUnavailable
from workspace_gateway.secret_store import SecretStore
from workspace_gateway.security.cipher import TokenCipher
from workspace_gateway.session import SESSION_KEY_PREFIX, OAuthTokenSet, SessionManager
from workspace_gateway.session.cleanup import CleanupScheduler


@pytest.fixture
def sessions(redis, cipher):
    return SessionManager(redis, cipher, ttl=3600, idle_timeout=600)


def _tokens(**overrides):
    data = {
        "access_token": "ya29.access",
        "refresh_token": "1//refresh",
        "scope": "openid email",
        "expiry_date": time.time() + 3600,
    }
    data.update(overrides)
    return OAuthTokenSet(**data)


def _keyless_cipher(settings):
    return TokenCipher(SecretStore(settings.model_copy(update={"encryption_key": None})))


async def _patch_record(redis, session_id, **fields):
    key = f"{SESSION_KEY_PREFIX}{session_id}"
    record = json.loads(await redis.get(key))
    record.update(fields)
    await redis.set(key, json.dumps(record))


class TestCreateAndGet:
    async def test_create_session(self, sessions, redis):
        session = await sessions.create_session({"userAgent": "pytest"})
        assert session.authenticated is False
        assert session.metadata == {"userAgent": "pytest"}
        assert len(session.id) >= 43
        assert 0 < await redis.ttl(f"{SESSION_KEY_PREFIX}{session.id}") <= 3600

    async def test_ids_are_unique(self, sessions):
        ids = {(await sessions.create_session()).id for _ in range(50)}
        assert len(ids) == 50

    async def test_get_refreshes_last_access(self, sessions, redis):
        session = await sessions.create_session()
        await _patch_record(redis, session.id, lastAccessedAt=time.time() - 60)
        fetched = await sessions.get_session(session.id)
        assert fetched is not None
        assert fetched.last_accessed_at > time.time() - 5

    async def test_get_missing(self, sessions):
        assert await sessions.get_session("nope") is None
        assert await sessions.get_session("") is None

    async def test_absolute_expiry_even_if_record_exists(self, sessions, redis):
        session = await sessions.create_session()
        await _patch_record(redis, session.id, expiresAt=time.time() - 1)
        assert await sessions.get_session(session.id) is None
        assert await redis.exists(f"{SESSION_KEY_PREFIX}{session.id}") == 0

    async def test_idle_timeout(self, sessions, redis):
        session = await sessions.create_session()
        await _patch_record(redis, session.id, lastAccessedAt=time.time() - 601)
        assert await sessions.get_session(session.id) is None


class TestTokens:
    async def test_store_tokens_encrypts_at_rest(self, sessions, redis):
        session = await sessions.create_session()
        stored = await sessions.store_tokens(session.id, _tokens(), "alice@example.com")

        assert stored.authenticated is True
        raw = await redis.get(f"{SESSION_KEY_PREFIX}{session.id}")
        assert "ya29.access" not in raw
        assert "1//refresh" not in raw
        assert "encryptedTokens" in json.loads(raw)

        fetched = await sessions.get_session(session.id)
        assert fetched.tokens.access_token == "ya29.access"
        assert fetched.user_email == "alice@example.com"

    async def test_undecryptable_tokens_drop_authentication(self, sessions, redis):
        session = await sessions.create_session()
        await sessions.store_tokens(session.id, _tokens(), "alice@example.com")
        await _patch_record(redis, session.id, encryptedTokens="AAAA")

        fetched = await sessions.get_session(session.id)
        assert fetched is not None
        assert fetched.tokens is None
        assert fetched.authenticated is False
        raw = json.loads(await redis.get(f"{SESSION_KEY_PREFIX}{session.id}"))
        assert raw["encryptedTokens"] == "AAAA"
        assert raw["authenticated"] is True

    async def test_missing_key_fails_without_touching_tokens(self, sessions, redis, settings):
        session = await sessions.create_session()
        await sessions.store_tokens(session.id, _tokens(), "alice.com")
        keyless = SessionManager(redis, _keyless_cipher(settings), ttl=3600, idle_timeout=600)

        with pytest.raises(SecretUnavailable):
            await keyless.get_session(session.id)
        with pytest.raises(SecretUnavailable):
            await keyless.update_session(session.id, metadata={"x": 1})
        raw = json.loads(await redis.get(f"{SESSION_KEY_PREFIX}{session.id}"))
        assert "encryptedTokens" in raw

        # Key is back
        fetched = await sessions.get_session(session.id)
        assert fetched.authenticated is True
        assert fetched.tokens.access_token == "ya29.access"

    async def test_sessions_without_tokens_need_no_key(self, redis, settings):
        keyless = SessionManager(redis, _keyless_cipher(settings))
        session = await keyless.create_session()
        assert (await keyless.get_session(session.id)).id == session.id

    async def test_store_tokens_missing_session(self, sessions):
        assert await sessions.store_tokens("gone", _tokens(), "a@example.com") is None


class TestUpdate:
    async def test_update_metadata_merges(self, sessions):
        session = await sessions.create_session({"a": 1})
        updated = await sessions.update_metadata(session.id, b=2)
        assert updated.metadata == {"a": 1, "b": 2}

    async def test_immutable_fields(self, sessions):
        session = await sessions.create_session()
        with pytest.raises(ValueError):
            await sessions.update_session(session.id, id="other")

    async def test_refresh_extends_expiry(self, sessions, redis):
        session = await sessions.create_session()
        await _patch_record(redis, session.id, expiresAt=time.time() + 10)
        refreshed = await sessions.refresh_session(session.id)
        assert refreshed.expires_at > time.time() + 3500

    async def test_delete_is_idempotent(self, sessions):
        session = await sessions.create_session()
        assert await sessions.delete_session(session.id) is True
        assert await sessions.delete_session(session.id) is False

    async def test_update_missing_session(self, sessions):
        assert await sessions.update_session("gone", authenticated=False) is None


class TestScanAndCleanup:
    async def test_get_all_sessions_skips_expired(self, sessions, redis):
        live = await sessions.create_session()
        dead = await sessions.create_session()
        await _patch_record(redis, dead.id, expiresAt=time.time() - 1)
        ids = {s.id for s in await sessions.get_all_sessions()}
        assert ids == {live.id}

    async def test_cleanup_expired_sessions(self, sessions, redis):
        await sessions.create_session()
        dead = await sessions.create_session()
        await _patch_record(redis, dead.id, expiresAt=time.time() - 1)
        await redis.set(f"{SESSION_KEY_PREFIX}corrupt", "{not json")

        assert await sessions.cleanup_expired_sessions() == 2
        assert await sessions.get_session_count() == 1

    async def test_storage_errors_are_typed(self, cipher):
        class Broken:
            async def get(self, *args, **kwargs):
                from redis.exceptions import ConnectionError

                raise ConnectionError("down")

        manager = SessionManager(Broken(), cipher)
        with pytest.raises(StorageUnavailable):
            await manager.get_session("abc")


class TestCleanupScheduler:
    async def test_run_once_reports_counts(self):
        async def sweep_a():
            return 3

        async def sweep_b():
            return 0

        scheduler = CleanupScheduler({"a": sweep_a, "b": sweep_b}, interval=60)
        assert await scheduler.run_once() == {"a": 3, "b": 0}

    async def test_start_and_stop(self):
        async def sweep():
            return 0

        scheduler = CleanupScheduler({"noop": sweep}, interval=60)
        scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running

    async def test_failing_sweep_does_not_stop_the_others(self):
        async def broken():
            raise RuntimeError("bug")

        async def sweep():
            return 2

        scheduler = CleanupScheduler({"broken": broken, "ok": sweep}, interval=60)
        assert await scheduler.run_once() == {"broken": 0, "ok": 2}

    async def test_loop_survives_a_failed_run(self):
        async def sweep():
            return 1

        scheduler = CleanupScheduler({"flaky": sweep}, interval=0.01)
        with patch.object(
            scheduler, "run_once", side_effect=[RuntimeError("boom"), {"flaky": 1}]
        ) as run_once:
            scheduler.start()
            for _ in range(100):
                if run_once.await_count >= 2:
                    break
                await asyncio.sleep(0.01)
            assert scheduler.running
            await scheduler.stop()
        assert run_once.await_count >= 2
