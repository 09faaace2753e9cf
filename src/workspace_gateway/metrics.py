# Prometheus metrics for the gateway.
# Created: 2026-09-18
#
# All collectors live in one registry so /metrics exposes only gateway
# series (no default process collectors).

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

registry = CollectorRegistry()

oauth_requests_total = Counter(
    "oauth_requests_total",
    "OAuth requests by status and flow type",
    ["status", "flow_type"],
    registry=registry,
)

token_generation_total = Counter(
    "token_generation_total",
    "Bearer token generation attempts by status",
    ["status"],
    registry=registry,
)

mcp_request_duration_seconds = Histogram(
    "mcp_request_duration_seconds",
    "MCP request duration in seconds",
    ["method", "status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
    registry=registry,
)

redis_connections_active = Gauge(
    "redis_connections_active",
    "Active Redis connections (1=connected, 0=disconnected)",
    registry=registry,
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Rate limit hits by limiter type",
    ["limiter_type"],
    registry=registry,
)

circuit_breaker_state_changes_total = Counter(
    "circuit_breaker_state_changes_total",
    "Circuit breaker state transitions",
    ["state", "circuit"],
    registry=registry,
)


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and its content type."""
    return generate_latest(registry), CONTENT_TYPE_LATEST
