# Secret store adapter: Google Cloud Secret Manager with a local fallback.
# Created: 2026-09-14

from __future__ import annotations

import asyncio
import logging
import secrets

from google.api_core import exceptions as gcp_exceptions

from workspace_gateway.config import Settings

logger = logging.getLogger(__name__)

KEY_LENGTH_BYTES = 32


class SecretStore:
    """Resolves the token encryption key and other secrets.

    Values are cached process-wide after the first successful fetch. Outside
    production the ``encryption_key`` setting short-circuits the remote lookup.
    """

    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self._client = client
        self._cache: dict[str, str] = {}

    @property
    def client(self):
        if self._client is None:
            from google.cloud import secretmanager

            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def get_secret(self, secret_id: str, version: str = "latest") -> str | None:
        """Fetch a secret value, or None if it does not exist or access is denied."""
        cache_key = f"{secret_id}:{version}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        if not self.settings.gcp_project_id:
            logger.debug("No GCP project configured; skipping lookup of %s", secret_id)
            return None

        name = f"projects/{self.settings.gcp_project_id}/secrets/{secret_id}/versions/{version}"
        try:
            response = self.client.access_secret_version(request={"name": name})
        except gcp_exceptions.NotFound:
            logger.warning("Secret '%s' not found", secret_id)
            return None
        except gcp_exceptions.PermissionDenied:
            logger.warning("Permission denied for secret '%s'", secret_id)
            return None

        value = response.payload.data.decode("UTF-8").strip()
        self._cache[cache_key] = value
        logger.info("Loaded secret '%s' from Secret Manager", secret_id)
        return value

    async def get_encryption_key(self) -> str | None:
        """Return the hex-encoded AES-256 key, or None when it is unavailable."""
        local_key = self.settings.encryption_key
        if local_key and not self.settings.is_production:
            return local_key

        value = await asyncio.to_thread(self.get_secret, self.settings.encryption_key_secret_id)
        return value or None

    def clear_cache(self) -> None:
        self._cache.clear()


def generate_encryption_key() -> str:
    """New random 256-bit key as 64 hex characters."""
    return secrets.token_hex(KEY_LENGTH_BYTES)
