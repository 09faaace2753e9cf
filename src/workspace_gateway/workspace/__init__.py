from workspace_gateway.workspace.breaker import (
    BreakerConfig,
    BreakerRegistry,
    CircuitBreaker,
    CircuitState,
)
from workspace_gateway.workspace.factory import (
    WorkspaceClient,
    create_workspace_client,
    fresh_tokens,
)

__all__ = [
    "BreakerConfig",
    "BreakerRegistry",
    "CircuitBreaker",
    "CircuitState",
    "WorkspaceClient",
    "create_workspace_client",
    "fresh_tokens",
]
