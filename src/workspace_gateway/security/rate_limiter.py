"""Per-client token-bucket rate limiting, shared across instances through Redis.

Tiers used by the gateway routes:
  - auth:   login and upstream callback      1 req/s, burst 10
  - token:  bearer token minting / exchange  0.2 req/s, burst 10
  - api:    MCP JSON-RPC and token listing   10 req/s, burst 50
  - gdpr:   data export and erasure          1 req/min, burst 3

Each bucket is one Redis hash, ``ratelimit:{tier}:{client}``, holding the
token count and the time of the last refill. A server-side script refills
and spends in one step, so concurrent requests on any instance see a single
count. A bucket expires once it has been idle long enough to be full again.
"""

from __future__ import annotations

import logging
import math
import time

from redis.asyncio import Redis
from redis.exceptions import RedisError

from workspace_gateway.errors import ErrorKind, GatewayError, StorageUnavailable

__all__ = [
    "RATE_LIMIT_PREFIX",
    "RateLimitExceeded",
    "RateLimiter",
    "RateLimitInfo",
    "RateLimitStore",
    "api_limiter",
    "auth_limiter",
    "gdpr_limiter",
    "token_limiter",
]

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"

# KEYS[1] bucket; ARGV rate, capacity, now, idle ttl.
# Returns {allowed, tokens}; tokens as a string since Lua numbers truncate.
_TAKE_SCRIPT = """
local rate = tonumber(ARGV[1])
local capacity = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local state = redis.call('HMGET', KEYS[1], 'tokens', 'ts')
local tokens = tonumber(state[1])
local ts = tonumber(state[2])
if tokens == nil or ts == nil then
  tokens = capacity
  ts = now
end
tokens = math.min(capacity, tokens + math.max(0, now - ts) * rate)
local allowed = 0
if tokens >= 1 then
  tokens = tokens - 1
  allowed = 1
end
redis.call('HSET', KEYS[1], 'tokens', tostring(tokens), 'ts', tostring(now))
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[4]))
return {allowed, tostring(tokens)}
"""


class RateLimitInfo:
    """Outcome of a single ``check()``."""

    __slots__ = ("allowed", "limit", "remaining", "reset_after")

    def __init__(self, allowed: bool, limit: int, remaining: int, reset_after: float):
        self.allowed = allowed
        self.limit = limit
        self.remaining = remaining
        self.reset_after = reset_after

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_after))

    def headers(self) -> dict[str, str]:
        h = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_after)),
        }
        if not self.allowed:
            h["Retry-After"] = str(self.retry_after)
        return h


class RateLimitExceeded(GatewayError):
    """A limiter refused the request; carries the headers to send back."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, limiter: str, info: RateLimitInfo):
        super().__init__(
            "Too many requests, please try again later",
            retry_after=info.retry_after,
            details={"limiter": limiter},
        )
        self.info = info


class RateLimiter:
    """Token-bucket parameters for one tier.

    Parameters
    ----------
    name : str
        Limiter type, used in the bucket key and as the ``limiter_type`` metric label.
    rate : float
        Tokens added per second.
    capacity : int
        Burst size.
    """

    def __init__(self, name: str, rate: float, capacity: int):
        self.name = name
        self.rate = rate
        self.capacity = capacity

    @property
    def idle_ttl(self) -> int:
        """Seconds after which an untouched bucket is full again and can be dropped."""
        if self.rate <= 0:
            return 24 * 60 * 60
        return math.ceil(self.capacity / self.rate) + 1

    def key(self, client: str) -> str:
        return f"{RATE_LIMIT_PREFIX}{self.name}:{client}"

    def info(self, allowed: bool, tokens: float) -> RateLimitInfo:
        if allowed:
            reset_after = (self.capacity - tokens) / self.rate if self.rate > 0 else 0
            return RateLimitInfo(True, self.capacity, int(tokens), reset_after)
        reset_after = (1.0 - tokens) / self.rate if self.rate > 0 else 1.0
        return RateLimitInfo(False, self.capacity, 0, reset_after)


class RateLimitStore:
    """Bucket state in Redis; one atomic script call per request."""

    def __init__(self, redis: Redis):
        self.redis = redis
        self._take = redis.register_script(_TAKE_SCRIPT)

    async def check(
        self, limiter: RateLimiter, client: str, now: float | None = None
    ) -> RateLimitInfo:
        now = time.time() if now is None else now
        try:
            allowed, tokens = await self._take(
                keys=[limiter.key(client)],
                args=[limiter.rate, limiter.capacity, now, limiter.idle_ttl],
            )
        except RedisError as e:
            raise StorageUnavailable(f"Could not check rate limit: {e}") from e
        return limiter.info(bool(int(allowed)), float(tokens))

    async def enforce(
        self, limiter: RateLimiter, client: str, now: float | None = None
    ) -> RateLimitInfo:
        """Consume one token or raise a RATE_LIMIT GatewayError."""
        info = await self.check(limiter, client, now)
        if not info.allowed:
            from workspace_gateway.metrics import rate_limit_hits_total

            rate_limit_hits_total.labels(limiter_type=limiter.name).inc()
            logger.warning("Rate limit %s exceeded", limiter.name)
            raise RateLimitExceeded(limiter.name, info)
        return info


auth_limiter = RateLimiter("auth", rate=1.0, capacity=10)
token_limiter = RateLimiter("token", rate=0.2, capacity=10)
api_limiter = RateLimiter("api", rate=10.0, capacity=50)
gdpr_limiter = RateLimiter("gdpr", rate=1 / 60, capacity=3)
