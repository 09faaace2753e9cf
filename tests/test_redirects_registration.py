# Tests for oauth/redirects.py and oauth/registration.py
# Created: 2026-09-25

import pytest

from workspace_gateway.config import Settings
from workspace_gateway.errors import ErrorKind, GatewayError
from workspace_gateway.oauth import ClientRegistrationManager, RedirectValidator


@pytest.fixture
def registrations(redis):
    return ClientRegistrationManager(redis)


@pytest.fixture
def validator(settings, registrations):
    return RedirectValidator(settings, registrations)


class TestRedirectValidator:
    async def test_absent_uri_is_allowed(self, validator):
        assert await validator.is_redirect_uri_allowed(None) is True
        assert await validator.is_redirect_uri_allowed("") is True

    async def test_whitelisted(self, validator):
        assert await validator.is_redirect_uri_allowed("https://app.example.com/cb") is True
        assert await validator.is_redirect_uri_allowed("http://localhost:6274/oauth/callback")

    @pytest.mark.parametrize(
        "uri",
        [
            "https://app.example.com/cb/",
            "https://app.example.com/cb?x=1",
            "https://evil.example.com/cb",
            "javascript:alert(1)",
            "ftp://app.example.com/cb",
            "not a url",
        ],
    )
    async def test_rejected(self, validator, uri):
        assert await validator.is_redirect_uri_allowed(uri) is False

    async def test_production_adds_claude_callbacks(self, registrations):
        dev = RedirectValidator(Settings(_env_file=None, environment="development"), registrations)
        prod = RedirectValidator(Settings(_env_file=None, environment="production"), registrations)
        uri = "https://claude.ai/api/mcp/auth_callback"
        assert await dev.is_redirect_uri_allowed(uri) is False
        assert await prod.is_redirect_uri_allowed(uri) is True

    async def test_registered_client_uri(self, validator, registrations):
        client = await registrations.register_client(["https://tool.example.org/done"])
        uri = "https://tool.example.org/done"
        assert await validator.is_redirect_uri_allowed(uri, client.client_id) is True
        assert await validator.is_redirect_uri_allowed(uri) is False
        assert await validator.is_redirect_uri_allowed(uri, "mcp_unknown") is False

    async def test_validate_raises(self, validator):
        with pytest.raises(GatewayError) as exc_info:
            await validator.validate_redirect_uri("https://evil.example.com")
        assert exc_info.value.kind is ErrorKind.VALIDATION


class TestClientRegistration:
    async def test_public_client(self, registrations, redis):
        client = await registrations.register_client(
            ["https://a.example.com/cb", "https://a.example.com/cb"], client_name="Inspector"
        )
        assert client.client_id.startswith("mcp_")
        assert client.is_public
        assert client.client_secret is None
        assert client.redirect_uris == ["https://a.example.com/cb"]
        # Registrations do not expire
        assert await redis.ttl(f"oauth:client:{client.client_id}") == -1

    async def test_confidential_client_gets_secret(self, registrations):
        client = await registrations.register_client(
            ["https://a.example.com/cb"], token_endpoint_auth_method="client_secret_post"
        )
        assert not client.is_public
        assert len(client.client_secret) == 64
        assert "client_secret" not in client.public_view()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"redirect_uris": []},
            {"redirect_uris": ["not-a-uri"]},
            {"redirect_uris": ["https://a.example.com"], "token_endpoint_auth_method": "magic"},
            {"redirect_uris": ["https://a.example.com"], "grant_types": ["password"]},
        ],
    )
    async def test_invalid_metadata(self, registrations, kwargs):
        with pytest.raises(GatewayError) as exc_info:
            await registrations.register_client(**kwargs)
        assert exc_info.value.kind is ErrorKind.VALIDATION

    async def test_get_and_delete(self, registrations):
        client = await registrations.register_client(["https://a.example.com/cb"])
        fetched = await registrations.get_client(client.client_id)
        assert fetched == client
        assert await registrations.delete_client(client.client_id) is True
        assert await registrations.get_client(client.client_id) is None
        assert await registrations.delete_client(client.client_id) is False

    async def test_registration_token_is_stored_hashed(self, registrations, redis):
        client = await registrations.register_client(["https://a.example.com/cb"])
        token = client.registration_access_token
        raw = await redis.get(f"oauth:client:{client.client_id}")
        assert token not in raw
        assert "registration_access_token" not in raw

        verified = await registrations.verify_registration_token(client.client_id, token)
        assert verified.client_id == client.client_id
        assert verified.registration_access_token is None

    @pytest.mark.parametrize("token", [None, "", "guess"])
    async def test_registration_token_rejected(self, registrations, token):
        client = await registrations.register_client(["https://a.example.com/cb"])
        assert await registrations.verify_registration_token(client.client_id, token) is None

    async def test_registration_token_for_unknown_client(self, registrations):
        client = await registrations.register_client(["https://a.example.com/cb"])
        token = client.registration_access_token
        assert await registrations.verify_registration_token("mcp_other", token) is None
