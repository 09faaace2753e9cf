# Shared HTTP plumbing for the Workspace API clients.
# Created: 2026-09-21

from __future__ import annotations

import logging
from typing import Any

import httpx

from workspace_gateway.errors import UpstreamError
from workspace_gateway.workspace.breaker import BreakerRegistry

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 15


class ApiClient:
    """Bearer-authenticated httpx calls, each routed through a named breaker.

    Holds no state beyond the access token; build a new one per request.
    """

    service = "workspace"

    def __init__(self, access_token: str, breakers: BreakerRegistry, timeout: float = HTTP_TIMEOUT):
        self._token = access_token
        self.breakers = breakers
        self.timeout = timeout

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.request(method, url, headers=self.headers, **kwargs)
        if resp.status_code >= 400:
            raise UpstreamError(resp.status_code, f"{self.service} API error: {_describe(resp)}")
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    async def request(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        """Perform *method url* under the breaker named ``<service>.<operation>``."""
        return await self.breakers.call(
            f"{self.service}.{operation}", self._send, method, url, **kwargs
        )


def _describe(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return f"{err['message']} (HTTP {resp.status_code})"
    return f"HTTP {resp.status_code}"
