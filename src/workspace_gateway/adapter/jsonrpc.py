# MCP JSON-RPC 2.0 adapter.
# Created: 2026-09-23
#
# Transport-agnostic: takes a decoded message and a lazy Workspace client
# factory, returns the response envelope (no body for notifications) plus
# the HTTP status the route should use.

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from workspace_gateway import __version__
from workspace_gateway.errors import (
    JSONRPC_INTERNAL_ERROR,
    JSONRPC_INVALID_PARAMS,
    JSONRPC_INVALID_REQUEST,
    JSONRPC_METHOD_NOT_FOUND,
    ErrorKind,
    GatewayError,
)
from workspace_gateway.adapter.prompts import PROMPTS, get_prompt
from workspace_gateway.adapter.tools import ToolRegistry, describe_error, registry
from workspace_gateway.metrics import mcp_request_duration_seconds
from workspace_gateway.workspace import WorkspaceClient

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "workspace-gateway"

CALENDAR_SCHEME = "gcalendar://calendar/"
DRIVE_SCHEME = "gdrive://file/"

WorkspaceFactory = Callable[[], Awaitable[WorkspaceClient]]

_HTTP_STATUS = {
    JSONRPC_INVALID_REQUEST: 400,
    JSONRPC_INVALID_PARAMS: 400,
    JSONRPC_METHOD_NOT_FOUND: 404,
}


@dataclass
class RpcResponse:
    body: dict[str, Any] | None
    status_code: int = 200


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


class McpAdapter:
    """Routes MCP methods to the tool registry, resources and prompts."""

    def __init__(self, tools: ToolRegistry = registry):
        self.tools = tools

    async def handle(self, message: Any, workspace: WorkspaceFactory) -> RpcResponse:
        if not isinstance(message, dict):
            return RpcResponse(
                _error(None, JSONRPC_INVALID_REQUEST, "Invalid Request: expected a JSON object"),
                400,
            )
        request_id = message.get("id")
        method = message.get("method")
        if message.get("jsonrpc") != "2.0" or not isinstance(method, str) or not method:
            return RpcResponse(
                _error(request_id, JSONRPC_INVALID_REQUEST, "Invalid Request: not JSON-RPC 2.0"),
                400,
            )
        params = message.get("params") or {}
        if not isinstance(params, dict):
            return RpcResponse(
                _error(request_id, JSONRPC_INVALID_PARAMS, "params must be an object"), 400
            )

        if method.startswith("notifications/"):
            logger.debug("MCP notification %s", method)
            return RpcResponse(None, 202)

        started = time.perf_counter()
        status = "success"
        try:
            result = await self._dispatch(method, params, workspace)
        except _MethodNotFound:
            status = "error"
            response = RpcResponse(
                _error(request_id, JSONRPC_METHOD_NOT_FOUND, f"Method not found: {method}"), 404
            )
        except GatewayError as e:
            status = "error"
            body = e.to_jsonrpc(request_id)
            response = RpcResponse(body, _HTTP_STATUS.get(body["error"]["code"], 200))
        except httpx.HTTPError as e:
            status = "error"
            logger.error("MCP %s upstream failure: %s", method, e)
            response = RpcResponse(_error(request_id, JSONRPC_INTERNAL_ERROR, str(e)))
        else:
            response = RpcResponse({"jsonrpc": "2.0", "id": request_id, "result": result})
            if isinstance(result, dict) and result.get("isError"):
                status = "error"
        finally:
            mcp_request_duration_seconds.labels(method=method, status=status).observe(
                time.perf_counter() - started
            )
        return response

    async def _dispatch(
        self, method: str, params: dict[str, Any], workspace: WorkspaceFactory
    ) -> dict[str, Any]:
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [_dump(t) for t in self.tools.list_tools()]}
        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                raise GatewayError("tools/call requires a tool name", ErrorKind.VALIDATION)
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                raise GatewayError("arguments must be an object", ErrorKind.VALIDATION)
            client = await workspace()
            return _dump(await self.tools.call(name, arguments, client))
        if method == "resources/list":
            return {"resources": await self._list_resources(await workspace())}
        if method == "resources/read":
            uri = params.get("uri")
            if not isinstance(uri, str) or not uri:
                raise GatewayError("resources/read requires a uri", ErrorKind.VALIDATION)
            return {"contents": await self._read_resource(uri, await workspace())}
        if method == "prompts/list":
            return {"prompts": [_dump(p.to_prompt()) for p in PROMPTS.values()]}
        if method == "prompts/get":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                raise GatewayError("prompts/get requires a prompt name", ErrorKind.VALIDATION)
            return _dump(get_prompt(name, params.get("arguments") or {}))
        raise _MethodNotFound(method)

    # -- resources -----------------------------------------------------------

    async def _list_resources(self, ws: WorkspaceClient) -> list[dict[str, Any]]:
        resources: list[dict[str, Any]] = []
        try:
            for cal in await ws.calendar.list_calendars():
                resources.append(
                    {
                        "uri": f"{CALENDAR_SCHEME}{cal['id']}",
                        "name": cal["summary"] or cal["id"],
                        "description": f"Calendar: {cal['summary']}"
                        + (" (Primary)" if cal["primary"] else ""),
                        "mimeType": "application/json",
                    }
                )
        except GatewayError as e:
            logger.warning("Could not list calendar resources: %s", describe_error(e, "calendar"))
        try:
            listing = await ws.drive.list_files(max_results=20)
            for f in listing["files"]:
                resources.append(
                    {
                        "uri": f"{DRIVE_SCHEME}{f['id']}",
                        "name": f.get("name", f["id"]),
                        "description": f"Drive file ({f.get('mimeType', 'unknown type')})",
                        "mimeType": "application/json",
                    }
                )
        except GatewayError as e:
            logger.warning("Could not list drive resources: %s", describe_error(e, "drive"))
        return resources

    async def _read_resource(self, uri: str, ws: WorkspaceClient) -> list[dict[str, Any]]:
        if uri.startswith(CALENDAR_SCHEME) and len(uri) > len(CALENDAR_SCHEME):
            listing = await ws.calendar.list_events(
                calendar_id=uri[len(CALENDAR_SCHEME):], max_results=50
            )
            payload: Any = listing["events"]
        elif uri.startswith(DRIVE_SCHEME) and len(uri) > len(DRIVE_SCHEME):
            payload = await ws.drive.get_file(uri[len(DRIVE_SCHEME):])
        else:
            raise GatewayError(f"Invalid resource URI: {uri}", ErrorKind.VALIDATION)
        return [{"uri": uri, "mimeType": "application/json", "text": json.dumps(payload, indent=2)}]


class _MethodNotFound(Exception):
    pass
