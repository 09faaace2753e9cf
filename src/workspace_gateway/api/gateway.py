# Gateway container: every long-lived component, built once per process.
# Created: 2026-09-24

from __future__ import annotations

import logging
from dataclasses import dataclass

from redis.asyncio import Redis

from workspace_gateway.adapter import McpAdapter
from workspace_gateway.config import Settings
from workspace_gateway.gdpr import UserDataService
from workspace_gateway.oauth import (
    AuthorizationCodeManager,
    BearerTokenManager,
    ClientRegistrationManager,
    GoogleOAuthClient,
    OAuthFlowController,
    RedirectValidator,
)
from workspace_gateway.secret_store import SecretStore
from workspace_gateway.security.cipher import TokenCipher
from workspace_gateway.security.rate_limiter import RateLimitStore
from workspace_gateway.session import SessionManager
from workspace_gateway.session.cleanup import CleanupScheduler
from workspace_gateway.store.client import RedisHealth, create_redis
from workspace_gateway.workspace import BreakerConfig, BreakerRegistry

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    settings: Settings
    redis: Redis
    secrets: SecretStore
    cipher: TokenCipher
    sessions: SessionManager
    codes: AuthorizationCodeManager
    registrations: ClientRegistrationManager
    redirects: RedirectValidator
    bearer_tokens: BearerTokenManager
    google: GoogleOAuthClient
    flow: OAuthFlowController
    breakers: BreakerRegistry
    user_data: UserDataService
    adapter: McpAdapter
    health: RedisHealth
    cleanup: CleanupScheduler
    rate_limits: RateLimitStore

    @classmethod
    def build(
        cls,
        settings: Settings,
        redis: Redis | None = None,
        secrets: SecretStore | None = None,
        google: GoogleOAuthClient | None = None,
    ) -> Gateway:
        """Wire the components; *redis*, *secrets* and *google* may be injected."""
        redis = redis if redis is not None else create_redis(settings)
        secrets = secrets or SecretStore(settings)
        google = google or GoogleOAuthClient(settings)

        cipher = TokenCipher(secrets)
        sessions = SessionManager(
            redis,
            cipher,
            ttl=settings.session_ttl_seconds,
            idle_timeout=settings.session_idle_timeout_seconds,
        )
        codes = AuthorizationCodeManager(redis, ttl=settings.authorization_code_ttl_seconds)
        registrations = ClientRegistrationManager(redis)
        redirects = RedirectValidator(settings, registrations)
        bearer_tokens = BearerTokenManager(redis, ttl=settings.bearer_token_ttl_seconds)
        flow = OAuthFlowController(settings, sessions, codes, bearer_tokens, redirects, google)
        breakers = BreakerRegistry(BreakerConfig(timeout=settings.breaker_timeout_seconds))

        cleanup = CleanupScheduler(
            {
                "sessions": sessions.cleanup_expired_sessions,
                "tokens": bearer_tokens.cleanup_expired_tokens,
            },
            interval=settings.cleanup_interval_seconds,
        )
        return cls(
            settings=settings,
            redis=redis,
            secrets=secrets,
            cipher=cipher,
            sessions=sessions,
            codes=codes,
            registrations=registrations,
            redirects=redirects,
            bearer_tokens=bearer_tokens,
            google=google,
            flow=flow,
            breakers=breakers,
            user_data=UserDataService(sessions, bearer_tokens, google),
            adapter=McpAdapter(),
            health=RedisHealth(redis),
            cleanup=cleanup,
            rate_limits=RateLimitStore(redis),
        )

    async def startup(self) -> None:
        if not await self.health.check():
            logger.warning("Redis is not reachable at startup; /health will report degraded")
        self.redirects.log_whitelist()
        if self.settings.cleanup_enabled:
            self.cleanup.start()

    async def shutdown(self) -> None:
        await self.cleanup.stop()
        await self.redis.aclose()
        logger.info("Gateway stopped")
