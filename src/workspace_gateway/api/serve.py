"""Application factory and server runner for ``workspace-gateway serve``.

Builds the Gateway container once, hangs it on ``app.state`` and drives its
startup/shutdown from the FastAPI lifespan (health check, whitelist log,
cleanup scheduler).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from workspace_gateway.api.gateway import Gateway
from workspace_gateway.config import Settings

logger = logging.getLogger(__name__)

_BUILTIN_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def create_app(settings: Settings | None = None, gateway: Gateway | None = None):
    """Build the FastAPI application. Tests pass a pre-wired *gateway*."""
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from workspace_gateway import __version__
    from workspace_gateway.api import mount_routers
    from workspace_gateway.api.errors import install_error_handlers
    from workspace_gateway.config import get_settings

    if gateway is None:
        gateway = Gateway.build(settings or get_settings())
    settings = gateway.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await gateway.startup()
        logger.info(
            "Workspace gateway started (%s, base %s)",
            settings.environment,
            settings.base_url or "-",
        )
        try:
            yield
        finally:
            await gateway.shutdown()

    app = FastAPI(
        title="Workspace Gateway",
        description="Google Workspace tools for MCP clients, behind OAuth 2.1 + PKCE.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    # --- CORS -----------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_origin_regex=None if settings.is_production else _BUILTIN_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Mcp-Session-Id"],
    )

    install_error_handlers(app)
    mount_routers(app)
    return app


def run_server(host: str | None = None, port: int | None = None, dev: bool = False) -> None:
    """Start uvicorn on the gateway application."""
    import uvicorn

    from workspace_gateway.config import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    logger.info("Workspace gateway listening on http://%s:%d", host, port)
    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "workspace_gateway.api.serve:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        uvicorn.run(create_app(settings), host=host, port=port)
