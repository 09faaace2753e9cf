from workspace_gateway.store.client import (
    RedisHealth,
    create_redis,
    scan_keys,
)

__all__ = ["RedisHealth", "create_redis", "scan_keys"]
