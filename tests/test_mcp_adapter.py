# Tests for the MCP JSON-RPC adapter and tool registry.
# Created: 2026-09-26

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from workspace_gateway.adapter import PROTOCOL_VERSION, McpAdapter, registry
from workspace_gateway.errors import CircuitOpenError, UpstreamError

EXPECTED_TOOLS = {
    "list_calendars",
    "list_events",
    "get_event",
    "create_event",
    "update_event",
    "delete_event",
    "search_events",
    "quick_add_event",
    "check_free_busy",
    "list_files",
    "search_files",
    "get_file",
    "create_folder",
    "delete_file",
    "list_messages",
    "get_message",
    "send_message",
    "list_labels",
    "get_form",
    "list_responses",
    "create_form",
}


@pytest.fixture
def workspace():
    calendar = SimpleNamespace(
        list_calendars=AsyncMock(
            return_value=[
                {"id": "primary", "summary": "Alice", "primary": True},
                {"id": "team@group.calendar.google.com", "summary": "Team", "primary": False},
            ]
        ),
        list_events=AsyncMock(return_value={"events": [{"id": "e1", "summary": "Standup"}]}),
    )
    drive = SimpleNamespace(
        list_files=AsyncMock(return_value={"files": [{"id": "f1", "name": "Plan.doc"}]}),
        get_file=AsyncMock(return_value={"id": "f1", "name": "Plan.doc"}),
    )
    return SimpleNamespace(calendar=calendar, drive=drive, gmail=None, forms=None)


@pytest.fixture
def factory(workspace):
    return AsyncMock(return_value=workspace)


@pytest.fixture
def adapter():
    return McpAdapter()


def _rpc(method, params=None, request_id=1):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


class TestEnvelope:
    async def test_initialize(self, adapter, factory):
        response = await adapter.handle(_rpc("initialize"), factory)
        assert response.status_code == 200
        result = response.body["result"]
        assert result["protocolVersion"] == PROTOCOL_VERSION
        assert set(result["capabilities"]) == {"tools", "resources", "prompts"}
        assert result["serverInfo"]["name"] == "workspace-gateway"
        factory.assert_not_awaited()

    async def test_ping(self, adapter, factory):
        response = await adapter.handle(_rpc("ping", request_id="abc"), factory)
        assert response.body == {"jsonrpc": "2.0", "id": "abc", "result": {}}

    async def test_notification_has_no_body(self, adapter, factory):
        message = {"jsonrpc": "2.0", "method": "notifications/initialized"}
        response = await adapter.handle(message, factory)
        assert response.body is None
        assert response.status_code == 202

    async def test_unknown_method(self, adapter, factory):
        response = await adapter.handle(_rpc("sampling/createMessage"), factory)
        assert response.status_code == 404
        assert response.body["error"]["code"] == -32601

    @pytest.mark.parametrize(
        "message",
        [
            [],
            "initialize",
            {"jsonrpc": "1.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "id": 1},
        ],
    )
    async def test_invalid_request(self, adapter, factory, message):
        response = await adapter.handle(message, factory)
        assert response.status_code == 400
        assert response.body["error"]["code"] == -32600

    async def test_params_must_be_object(self, adapter, factory):
        response = await adapter.handle(_rpc("tools/call", params=[1, 2]), factory)
        assert response.status_code == 400
        assert response.body["error"]["code"] == -32602


class TestTools:
    async def test_list_tools(self, adapter, factory):
        response = await adapter.handle(_rpc("tools/list"), factory)
        tools = {t["name"]: t for t in response.body["result"]["tools"]}
        assert set(tools) == EXPECTED_TOOLS
        schema = tools["list_events"]["inputSchema"]
        assert schema["type"] == "object"
        assert "calendarId" in schema["properties"]

    async def test_call_tool(self, adapter, factory, workspace):
        response = await adapter.handle(
            _rpc("tools/call", {"name": "list_events", "arguments": {"maxResults": 5}}), factory
        )
        result = response.body["result"]
        assert result["isError"] is False
        assert json.loads(result["content"][0]["text"]) == {
            "events": [{"id": "e1", "summary": "Standup"}]
        }
        assert workspace.calendar.list_events.await_args.kwargs["max_results"] == 5

    async def test_invalid_arguments_become_tool_error(self, adapter, factory):
        response = await adapter.handle(
            _rpc("tools/call", {"name": "get_event", "arguments": {}}), factory
        )
        result = response.body["result"]
        assert result["isError"] is True
        assert "Invalid arguments for get_event" in result["content"][0]["text"]

    async def test_unknown_tool(self, adapter, factory):
        response = await adapter.handle(_rpc("tools/call", {"name": "format_disk"}), factory)
        result = response.body["result"]
        assert result["isError"] is True
        assert "Unknown tool" in result["content"][0]["text"]

    async def test_missing_tool_name(self, adapter, factory):
        response = await adapter.handle(_rpc("tools/call", {"arguments": {}}), factory)
        assert response.status_code == 400
        assert response.body["error"]["code"] == -32602

    async def test_open_circuit_is_reported_in_result(self, adapter, factory, workspace):
        workspace.calendar.list_calendars.side_effect = CircuitOpenError(
            "calendar.list_calendars", 30
        )
        response = await adapter.handle(_rpc("tools/call", {"name": "list_calendars"}), factory)
        text = response.body["result"]["content"][0]["text"]
        assert response.body["result"]["isError"] is True
        assert "try again in 30 seconds" in text

    def test_registry_contains(self):
        assert "send_message" in registry
        assert "nonexistent" not in registry


class TestResources:
    async def test_list_resources(self, adapter, factory):
        response = await adapter.handle(_rpc("resources/list"), factory)
        resources = response.body["result"]["resources"]
        uris = [r["uri"] for r in resources]
        assert uris == [
            "gcalendar://calendar/primary",
            "gcalendar://calendar/team@group.calendar.google.com",
            "gdrive://file/f1",
        ]
        assert resources[0]["description"] == "Calendar: Alice (Primary)"

    async def test_list_resources_survives_one_source_failing(self, adapter, factory, workspace):
        workspace.drive.list_files.side_effect = UpstreamError(503, "Drive unavailable")
        response = await adapter.handle(_rpc("resources/list"), factory)
        assert len(response.body["result"]["resources"]) == 2

    async def test_read_calendar_resource(self, adapter, factory, workspace):
        response = await adapter.handle(
            _rpc("resources/read", {"uri": "gcalendar://calendar/primary"}), factory
        )
        content = response.body["result"]["contents"][0]
        assert content["mimeType"] == "application/json"
        assert json.loads(content["text"]) == [{"id": "e1", "summary": "Standup"}]
        workspace.calendar.list_events.assert_awaited_once_with(
            calendar_id="primary", max_results=50
        )

    async def test_read_drive_resource(self, adapter, factory, workspace):
        message = _rpc("resources/read", {"uri": "gdrive://file/f1"})
        response = await adapter.handle(message, factory)
        assert json.loads(response.body["result"]["contents"][0]["text"])["name"] == "Plan.doc"
        workspace.drive.get_file.assert_awaited_once_with("f1")

    @pytest.mark.parametrize("uri", ["gmail://inbox", "gdrive://file/", "gcalendar://calendar/"])
    async def test_read_invalid_uri(self, adapter, factory, uri):
        response = await adapter.handle(_rpc("resources/read", {"uri": uri}), factory)
        assert response.status_code == 400
        assert "Invalid resource URI" in response.body["error"]["message"]


class TestPrompts:
    async def test_list_prompts(self, adapter, factory):
        response = await adapter.handle(_rpc("prompts/list"), factory)
        names = {p["name"] for p in response.body["result"]["prompts"]}
        assert {"schedule_meeting", "daily_agenda", "summarize_inbox"} <= names

    async def test_get_prompt(self, adapter, factory):
        response = await adapter.handle(
            _rpc("prompts/get", {"name": "schedule_meeting", "arguments": {"topic": "Roadmap"}}),
            factory,
        )
        message = response.body["result"]["messages"][0]
        assert message["role"] == "user"
        assert "Roadmap" in message["content"]["text"]
        assert "to be decided" in message["content"]["text"]

    async def test_missing_required_argument(self, adapter, factory):
        response = await adapter.handle(_rpc("prompts/get", {"name": "schedule_meeting"}), factory)
        assert response.status_code == 400
        assert response.body["error"]["code"] == -32602
