"""MCP protocol adapter: JSON-RPC dispatch over the Workspace tools."""

from workspace_gateway.adapter.jsonrpc import PROTOCOL_VERSION, McpAdapter, RpcResponse
from workspace_gateway.adapter.prompts import PROMPTS, get_prompt
from workspace_gateway.adapter.tools import ToolRegistry, registry

__all__ = [
    "PROMPTS",
    "PROTOCOL_VERSION",
    "McpAdapter",
    "RpcResponse",
    "ToolRegistry",
    "get_prompt",
    "registry",
]
