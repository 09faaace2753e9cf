# HTTP layer: router aggregation.
# Created: 2026-09-24
#
# mount_routers(app) registers every domain router at the root; the public
# paths (/auth/login, /mcp, /token, ...) are what MCP clients expect.

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_ROUTERS: list[tuple[str, str]] = [
    # (module_path, tag)
    ("workspace_gateway.api.operational", "Operational"),
    ("workspace_gateway.api.auth", "Auth"),
    ("workspace_gateway.api.registration", "Registration"),
    ("workspace_gateway.api.tokens", "Tokens"),
    ("workspace_gateway.api.mcp", "MCP"),
    ("workspace_gateway.api.gdpr", "GDPR"),
]


def mount_routers(app: FastAPI) -> None:
    for module_path, tag in _ROUTERS:
        module = importlib.import_module(module_path)
        app.include_router(module.router, tags=[tag])
        logger.debug("Mounted router: %s (%s)", module_path, tag)
