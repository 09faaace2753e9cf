# Token cipher: AES-256-GCM envelope encryption for tokens at rest.
# Created: 2026-09-15
#
# Wire format: base64(iv[16] || tag[16] || ciphertext).

from __future__ import annotations

import base64
import binascii
import json
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from workspace_gateway.errors import CipherError, SecretUnavailable
from workspace_gateway.secret_store import KEY_LENGTH_BYTES, SecretStore
from workspace_gateway.session.models import OAuthTokenSet

logger = logging.getLogger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16


class TokenCipher:
    """Encrypts and decrypts token payloads with the key from the secret store."""

    def __init__(self, secret_store: SecretStore):
        self.secret_store = secret_store
        self._aesgcm: AESGCM | None = None

    async def _cipher(self) -> AESGCM:
        if self._aesgcm is not None:
            return self._aesgcm

        key_hex = await self.secret_store.get_encryption_key()
        if not key_hex:
            raise SecretUnavailable(
                "Encryption key not available from Secret Manager or environment. "
                "Generate one with: openssl rand -hex 32"
            )
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise SecretUnavailable("Encryption key is not valid hex") from e
        if len(key) != KEY_LENGTH_BYTES:
            raise SecretUnavailable(
                f"Encryption key must be {KEY_LENGTH_BYTES} bytes "
                f"({KEY_LENGTH_BYTES * 2} hex characters), got {len(key)} bytes"
            )
        self._aesgcm = AESGCM(key)
        return self._aesgcm

    async def encrypt(self, plaintext: str) -> str:
        aesgcm = await self._cipher()
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the tag to the ciphertext
        sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    async def decrypt(self, payload: str) -> str:
        aesgcm = await self._cipher()
        try:
            combined = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CipherError("Decryption failed: payload is not base64") from e
        if len(combined) < IV_LENGTH + TAG_LENGTH:
            raise CipherError("Decryption failed: payload too short")

        iv = combined[:IV_LENGTH]
        tag = combined[IV_LENGTH : IV_LENGTH + TAG_LENGTH]
        ciphertext = combined[IV_LENGTH + TAG_LENGTH :]
        try:
            plaintext = aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise CipherError("Decryption failed: authentication tag mismatch") from e
        return plaintext.decode("utf-8")

    async def encrypt_tokens(self, tokens: OAuthTokenSet) -> str:
        return await self.encrypt(json.dumps(tokens.to_dict()))

    async def decrypt_tokens(self, payload: str) -> OAuthTokenSet:
        data = json.loads(await self.decrypt(payload))
        return OAuthTokenSet.from_dict(data)
