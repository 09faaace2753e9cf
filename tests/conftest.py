# Shared fixtures: in-process Redis, settings, cipher.
# Created: 2026-09-25

import time
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlsplit

import fakeredis
import pytest
from fastapi.testclient import TestClient

from workspace_gateway.api.gateway import Gateway
from workspace_gateway.api.serve import create_app
from workspace_gateway.config import Settings
from workspace_gateway.oauth import GoogleOAuthClient
from workspace_gateway.secret_store import SecretStore
from workspace_gateway.security.cipher import TokenCipher
from workspace_gateway.session import OAuthTokenSet

TEST_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="development",
        base_url="http://testserver",
        google_client_id="google-client",
        google_client_secret="google-secret",
        google_redirect_uri="http://testserver/oauth/callback",
        allowed_redirect_uris="https://app.example.com/cb",
        encryption_key=TEST_KEY,
        session_secret="test-cookie-secret",
        cleanup_enabled=False,
    )


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def secret_store(settings):
    return SecretStore(settings)


@pytest.fixture
def cipher(secret_store):
    return TokenCipher(secret_store)


def google_tokens(**overrides):
    data = {
        "access_token": "ya29.google-access",
        "refresh_token": "1//google-refresh",
        "scope": "openid email https://www.googleapis.com/auth/calendar",
        "expiry_date": time.time() + 3600,
    }
    data.update(overrides)
    return OAuthTokenSet(**data)


@pytest.fixture
def google():
    """Upstream identity provider stand-in; no network."""
    client = MagicMock(spec=GoogleOAuthClient)
    client.authorization_url.side_effect = (
        lambda state: f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"
    )
    client.exchange_code = AsyncMock(return_value=google_tokens())
    client.get_user_info = AsyncMock(return_value={"email": "alice@example.com"})
    client.refresh_tokens = AsyncMock(return_value=google_tokens(access_token="ya29.refreshed"))
    client.revoke_token = AsyncMock(return_value=True)
    return client


@pytest.fixture
def gateway(settings, redis, google):
    return Gateway.build(settings, redis=redis, google=google)


@pytest.fixture
def client(gateway):
    with TestClient(create_app(gateway=gateway)) as test_client:
        yield test_client


@pytest.fixture
def sign_in(client):
    """Run the browser sign-in against the stubbed upstream; returns the session id."""

    def _sign_in(redirect_uri=None):
        params = {"redirect_uri": redirect_uri} if redirect_uri else {}
        login = client.get("/auth/login", params=params, follow_redirects=False)
        assert login.status_code == 302
        session_id = parse_qs(urlsplit(login.headers["location"]).query)["state"][0]
        callback = client.get(
            "/oauth/callback",
            params={"code": "google-code", "state": session_id},
            follow_redirects=False,
        )
        assert callback.status_code == 302
        return session_id

    return _sign_in
