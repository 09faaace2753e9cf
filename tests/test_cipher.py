# Tests for security/cipher.py and secret_store.py
# Created: 2026-09-25

import base64
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcp_exceptions

from workspace_gateway.config import Settings
from workspace_gateway.errors import CipherError, SecretUnavailable
from workspace_gateway.secret_store import SecretStore, generate_encryption_key
from workspace_gateway.security.cipher import IV_LENGTH, TAG_LENGTH, TokenCipher
from workspace_gateway.session import OAuthTokenSet


class TestTokenCipher:
    @pytest.mark.parametrize("plaintext", ["", "ya29.a0AfH6SMB", "Grüße, 東京 🚀"])
    async def test_round_trip(self, cipher, plaintext):
        assert await cipher.decrypt(await cipher.encrypt(plaintext)) == plaintext

    async def test_random_iv(self, cipher):
        a = await cipher.encrypt("same input")
        b = await cipher.encrypt("same input")
        assert a != b

    async def test_wire_format(self, cipher):
        payload = base64.b64decode(await cipher.encrypt("abc"))
        assert len(payload) == IV_LENGTH + TAG_LENGTH + 3

    async def test_tampered_payload_rejected(self, cipher):
        raw = bytearray(base64.b64decode(await cipher.encrypt("secret")))
        raw[-1] ^= 0x01
        with pytest.raises(CipherError):
            await cipher.decrypt(base64.b64encode(bytes(raw)).decode())

    async def test_garbage_rejected(self, cipher):
        with pytest.raises(CipherError):
            await cipher.decrypt("not base64 at all!")
        with pytest.raises(CipherError):
            await cipher.decrypt(base64.b64encode(b"short").decode())

    async def test_token_set_round_trip(self, cipher):
        tokens = OAuthTokenSet(
            access_token="access", refresh_token="refresh", scope="a b", expiry_date=123.0
        )
        restored = await cipher.decrypt_tokens(await cipher.encrypt_tokens(tokens))
        assert restored == tokens

    async def test_missing_key(self):
        settings = Settings(_env_file=None, environment="development", encryption_key=None)
        with pytest.raises(SecretUnavailable):
            await TokenCipher(SecretStore(settings)).encrypt("x")

    async def test_wrong_key_length(self):
        settings = Settings(_env_file=None, environment="development", encryption_key="abcd")
        with pytest.raises(SecretUnavailable):
            await TokenCipher(SecretStore(settings)).encrypt("x")


class TestSecretStore:
    def _payload(self, value: str):
        response = MagicMock()
        response.payload.data = value.encode()
        return response

    async def test_development_prefers_local_key(self, settings):
        client = MagicMock()
        store = SecretStore(settings, client=client)
        assert await store.get_encryption_key() == settings.encryption_key
        client.access_secret_version.assert_not_called()

    async def test_production_reads_secret_manager_once(self):
        settings = Settings(
            _env_file=None,
            environment="production",
            gcp_project_id="proj",
            encryption_key="ignored-in-production",
        )
        client = MagicMock()
        client.access_secret_version.return_value = self._payload("ab" * 32 + "\n")
        store = SecretStore(settings, client=client)

        assert await store.get_encryption_key() == "ab" * 32
        assert await store.get_encryption_key() == "ab" * 32
        client.access_secret_version.assert_called_once_with(
            request={
                "name": "projects/proj/secrets/workspace-gateway-encryption-key/versions/latest"
            }
        )

    async def test_not_found_returns_none(self):
        settings = Settings(_env_file=None, environment="production", gcp_project_id="proj")
        client = MagicMock()
        client.access_secret_version.side_effect = gcp_exceptions.NotFound("missing")
        assert await SecretStore(settings, client=client).get_encryption_key() is None

    def test_clear_cache(self):
        settings = Settings(_env_file=None, gcp_project_id="proj")
        client = MagicMock()
        client.access_secret_version.return_value = self._payload("v1")
        store = SecretStore(settings, client=client)
        assert store.get_secret("s") == "v1"
        store.clear_cache()
        client.access_secret_version.return_value = self._payload("v2")
        assert store.get_secret("s") == "v2"

    def test_generate_encryption_key(self):
        key = generate_encryption_key()
        assert len(key) == 64
        assert len(bytes.fromhex(key)) == 32
