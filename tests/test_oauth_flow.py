# End-to-end sign-in: login, upstream callback, code exchange, MCP access.
# Created: 2026-09-26

import time
from urllib.parse import parse_qs, urlsplit

import pytest

from workspace_gateway.session import OAuthTokenSet

CLIENT_ID = "abc"
REDIRECT_URI = "https://app.example.com/cb"
# RFC 7636 appendix B
VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _pkce_login(client, **overrides):
    params = {
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "code_challenge": CHALLENGE,
        "code_challenge_method": "S256",
        "state": "xyz",
        "response_type": "code",
    }
    params.update(overrides)
    return client.get("/auth/login", params=params, follow_redirects=False)


def _authorize(client):
    """Login plus upstream callback; returns the code delivered to the client."""
    login = _pkce_login(client)
    assert login.status_code == 302
    state = _query(login.headers["location"])["state"]

    callback = client.get(
        "/oauth/callback", params={"code": "google-code", "state": state}, follow_redirects=False
    )
    assert callback.status_code == 302
    location = callback.headers["location"]
    assert location.startswith(REDIRECT_URI + "?")
    query = _query(location)
    assert query["state"] == "xyz"
    return query["code"]


def _exchange(client, code, **overrides):
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": REDIRECT_URI,
        "code_verifier": VERIFIER,
        "client_id": CLIENT_ID,
    }
    form.update(overrides)
    return client.post("/token", data=form)


class TestLogin:
    def test_login_sets_cookie_and_redirects_upstream(self, client, google):
        response = _pkce_login(client)
        assert response.status_code == 302
        assert response.headers["location"].startswith("https://accounts.google.com/")
        set_cookie = response.headers["set-cookie"]
        assert "workspace_gateway_session=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "samesite=none" in set_cookie.lower()

    def test_tampered_cookie_is_ignored(self, client, sign_in):
        session_id = sign_in()
        assert client.get("/auth/status").json()["authenticated"] is True
        client.cookies.clear()
        forged = {"Cookie": f"workspace_gateway_session={session_id}"}
        assert client.get("/auth/status", headers=forged).json()["authenticated"] is False

    def test_unlisted_redirect_rejected(self, client):
        response = _pkce_login(client, redirect_uri="https://evil.example.com/cb")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_plain_challenge_method_rejected(self, client):
        response = _pkce_login(client, code_challenge_method="plain")
        assert response.status_code == 400

    def test_registered_client_redirect_allowed(self, client):
        registered = client.post(
            "/oauth/register", json={"redirect_uris": ["https://tool.example.org/cb"]}
        ).json()
        response = _pkce_login(
            client, client_id=registered["client_id"], redirect_uri="https://tool.example.org/cb"
        )
        assert response.status_code == 302


class TestPkceExchange:
    def test_full_flow(self, client, google):
        code = _authorize(client)
        response = _exchange(client, code)
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 24 * 60 * 60
        google.exchange_code.assert_awaited_once_with("google-code")

        mcp = client.post(
            "/mcp",
            json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
            headers={"Authorization": f"Bearer {body['access_token']}"},
        )
        assert mcp.status_code == 200
        assert mcp.json()["result"]["tools"]

    def test_code_is_single_use(self, client):
        code = _authorize(client)
        assert _exchange(client, code).status_code == 200

        replay = _exchange(client, code)
        assert replay.status_code == 400
        assert replay.json()["error"] == "invalid_grant"

    def test_wrong_verifier_burns_code(self, client):
        code = _authorize(client)
        wrong = _exchange(client, code, code_verifier="x" * 43)
        assert wrong.status_code == 400
        assert wrong.json()["error"] == "invalid_grant"
        assert _exchange(client, code).status_code == 400

    def test_json_body_accepted(self, client):
        code = _authorize(client)
        response = client.post(
            "/token",
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": REDIRECT_URI,
                "code_verifier": VERIFIER,
                "client_id": CLIENT_ID,
            },
        )
        assert response.status_code == 200

    def test_missing_parameters(self, client):
        response = client.post("/token", data={"grant_type": "authorization_code"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_unsupported_grant(self, client):
        response = client.post("/token", data={"grant_type": "password"})
        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_grant_type"


class TestCallback:
    def test_duplicate_callback_fails_closed(self, client):
        login = _pkce_login(client)
        state = _query(login.headers["location"])["state"]
        params = {"code": "google-code", "state": state}
        first = client.get("/oauth/callback", params=params, follow_redirects=False)
        assert first.status_code == 302

        again = client.get("/oauth/callback", params=params, follow_redirects=False)
        assert again.status_code == 401
        assert "text/html" in again.headers["content-type"]
        assert "already completed" in again.text

    def test_unknown_state(self, client):
        response = client.get("/oauth/callback", params={"code": "c", "state": "nope"})
        assert response.status_code == 401
        assert "Session expired" in response.text

    def test_missing_code(self, client):
        response = client.get("/oauth/callback", params={"state": "x"})
        assert response.status_code == 400

    def test_upstream_error_parameter(self, client):
        response = client.get("/oauth/callback", params={"error": "access_denied"})
        assert response.status_code == 400
        assert "access_denied" in response.text

    def test_upstream_exchange_failure_renders_page(self, client, google):
        import httpx

        google.exchange_code.side_effect = httpx.ConnectError("unreachable")
        login = _pkce_login(client)
        state = _query(login.headers["location"])["state"]
        response = client.get("/oauth/callback", params={"code": "c", "state": state})
        assert response.status_code == 500
        assert "Authentication Failed" in response.text

    @pytest.mark.parametrize("path", ["/oauth2callback", "/auth/callback"])
    def test_callback_aliases(self, client, path):
        login = _pkce_login(client)
        state = _query(login.headers["location"])["state"]
        response = client.get(
            path, params={"code": "google-code", "state": state}, follow_redirects=False
        )
        assert response.status_code == 302


class TestLegacyFlow:
    def test_bearer_token_in_redirect(self, client, gateway):
        login = client.get(
            "/auth/login", params={"redirect_uri": REDIRECT_URI}, follow_redirects=False
        )
        state = _query(login.headers["location"])["state"]
        callback = client.get(
            "/oauth/callback",
            params={"code": "google-code", "state": state},
            follow_redirects=False,
        )
        query = _query(callback.headers["location"])
        assert query["token_type"] == "Bearer"

        status = client.get(
            "/mcp", headers={"Authorization": f"Bearer {query['access_token']}"}
        )
        assert status.status_code == 405

    def test_without_redirect_lands_on_test_page(self, client, sign_in):
        sign_in()
        page = client.get("/test")
        assert "Authentication Successful" in page.text
        status = client.get("/auth/status").json()
        assert status["authenticated"] is True
        assert status["userEmail"] == "alice@example.com"

    def test_session_token_from_cookie(self, client, sign_in):
        sign_in()
        response = client.post("/api/generate-token")
        assert response.status_code == 200
        assert response.json()["token_type"] == "Bearer"

    def test_session_token_requires_cookie(self, client):
        response = client.post("/api/generate-token")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_logout(self, client, sign_in):
        sign_in()
        response = client.post("/auth/logout")
        assert response.json() == {"success": True, "message": "Logged out successfully"}
        client.cookies.clear()
        assert client.get("/auth/status").json()["authenticated"] is False


class TestUpstreamExpiry:
    async def _exchange_issued_code(self, gateway, **upstream):
        code = await gateway.codes.generate_authorization_code(
            client_id=CLIENT_ID,
            redirect_uri=REDIRECT_URI,
            code_challenge=CHALLENGE,
            code_challenge_method="S256",
            user_email="alice@example.com",
            google_access_token="ya29.google-access",
            **upstream,
        )
        body = await gateway.flow.exchange_authorization_code(
            code, REDIRECT_URI, VERIFIER, CLIENT_ID
        )
        validation = await gateway.bearer_tokens.validate_token(body["access_token"])
        return await gateway.sessions.get_session(validation.session_id)

    async def test_exchange_keeps_upstream_expiry(self, gateway):
        expiry = time.time() + 120
        session = await self._exchange_issued_code(gateway, google_expiry_date=expiry)
        assert session.authenticated is True
        assert session.tokens.expiry_date == expiry

    async def test_missing_upstream_expiry_falls_back_to_an_hour(self, gateway):
        session = await self._exchange_issued_code(gateway)
        remaining = session.tokens.expiry_date - time.time()
        assert 3500 < remaining <= 3600

    def test_callback_records_upstream_expiry(self, client, gateway, google):
        expiry = time.time() + 90
        google.exchange_code.return_value = OAuthTokenSet(
            access_token="ya29.short-lived", refresh_token="1//r", expiry_date=expiry
        )
        code = _authorize(client)
        record = client.portal.call(
            gateway.codes.validate_and_consume_code, code, CLIENT_ID, REDIRECT_URI, VERIFIER
        )
        assert record.google_expiry_date == expiry
