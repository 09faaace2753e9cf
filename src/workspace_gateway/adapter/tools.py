# MCP tool registry: argument models and Workspace handlers.
# Created: 2026-09-23
#
# Each tool's inputSchema is the JSON Schema of its pydantic argument model,
# so the advertised schema and the validation are the same object.

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import httpx
from mcp import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from workspace_gateway.errors import CircuitOpenError, CircuitTimeoutError, GatewayError
from workspace_gateway.workspace import WorkspaceClient

logger = logging.getLogger(__name__)

Handler = Callable[[WorkspaceClient, Any], Awaitable[Any]]


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


SendUpdates = Literal["all", "externalOnly", "none"]


# -- Calendar -------------------------------------------------------------------


class NoArgs(ToolArgs):
    pass


class ListEventsArgs(ToolArgs):
    calendar_id: str = Field("primary", alias="calendarId")
    time_min: str | None = Field(None, alias="timeMin", description="RFC 3339 lower bound")
    time_max: str | None = Field(None, alias="timeMax", description="RFC 3339 upper bound")
    max_results: int = Field(25, alias="maxResults", ge=1, le=250)
    q: str | None = Field(None, description="Free text filter")
    page_token: str | None = Field(None, alias="pageToken")


class GetEventArgs(ToolArgs):
    calendar_id: str = Field("primary", alias="calendarId")
    event_id: str = Field(alias="eventId")


class CreateEventArgs(ToolArgs):
    calendar_id: str = Field("primary", alias="calendarId")
    summary: str
    start: str = Field(description="RFC 3339 date-time, or YYYY-MM-DD for all-day")
    end: str = Field(description="RFC 3339 date-time, or YYYY-MM-DD for all-day")
    description: str = ""
    location: str = ""
    attendees: list[str] | None = None
    time_zone: str | None = Field(None, alias="timeZone")
    send_updates: SendUpdates = Field("none", alias="sendUpdates")


class UpdateEventArgs(ToolArgs):
    calendar_id: str = Field("primary", alias="calendarId")
    event_id: str = Field(alias="eventId")
    summary: str | None = None
    start: str | None = None
    end: str | None = None
    description: str | None = None
    location: str | None = None
    attendees: list[str] | None = None
    time_zone: str | None = Field(None, alias="timeZone")
    send_updates: SendUpdates = Field("none", alias="sendUpdates")


class DeleteEventArgs(ToolArgs):
    calendar_id: str = Field("primary", alias="calendarId")
    event_id: str = Field(alias="eventId")
    send_updates: SendUpdates = Field("none", alias="sendUpdates")


class SearchEventsArgs(ToolArgs):
    query: str = Field(min_length=1)
    calendar_id: str = Field("primary", alias="calendarId")
    max_results: int = Field(25, alias="maxResults", ge=1, le=250)


class QuickAddArgs(ToolArgs):
    calendar_id: str = Field("primary", alias="calendarId")
    text: str = Field(min_length=1, description="e.g. 'Lunch with Sam tomorrow at noon'")


class FreeBusyArgs(ToolArgs):
    time_min: str = Field(alias="timeMin")
    time_max: str = Field(alias="timeMax")
    calendar_ids: list[str] | None = Field(None, alias="calendarIds")


# -- Drive ----------------------------------------------------------------------


class ListFilesArgs(ToolArgs):
    query: str | None = Field(None, description="Drive query language, e.g. name contains 'report'")
    max_results: int = Field(20, alias="maxResults", ge=1, le=100)
    page_token: str | None = Field(None, alias="pageToken")


class SearchFilesArgs(ToolArgs):
    query: str = Field(min_length=1)
    max_results: int = Field(20, alias="maxResults", ge=1, le=100)
    file_type: Literal["document", "spreadsheet", "presentation", "folder", "pdf"] | None = Field(
        None, alias="fileType"
    )


class FileIdArgs(ToolArgs):
    file_id: str = Field(alias="fileId")


class CreateFolderArgs(ToolArgs):
    name: str = Field(min_length=1)
    parent_id: str | None = Field(None, alias="parentId")


class DeleteFileArgs(ToolArgs):
    file_id: str = Field(alias="fileId")
    permanent: bool = False


# -- Gmail ----------------------------------------------------------------------


class ListMessagesArgs(ToolArgs):
    query: str = Field("", description="Gmail search syntax, e.g. is:unread from:alice")
    max_results: int = Field(10, alias="maxResults", ge=1, le=100)
    label_ids: list[str] | None = Field(None, alias="labelIds")


class GetMessageArgs(ToolArgs):
    message_id: str = Field(alias="messageId")


class SendMessageArgs(ToolArgs):
    to: str = Field(min_length=3)
    subject: str
    body: str
    cc: str | None = None
    bcc: str | None = None


# -- Forms ----------------------------------------------------------------------


class FormIdArgs(ToolArgs):
    form_id: str = Field(alias="formId")


class ListResponsesArgs(ToolArgs):
    form_id: str = Field(alias="formId")
    page_size: int = Field(50, alias="pageSize", ge=1, le=5000)


class CreateFormArgs(ToolArgs):
    title: str = Field(min_length=1)
    document_title: str | None = Field(None, alias="documentTitle")


# -- registry -------------------------------------------------------------------


@dataclass
class ToolSpec:
    name: str
    description: str
    args_model: type[ToolArgs]
    handler: Handler

    def to_tool(self) -> types.Tool:
        schema = self.args_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return types.Tool(name=self.name, description=self.description, inputSchema=schema)


def describe_error(error: Exception, tool: str) -> str:
    """User-facing text that separates breaker rejections and timeouts from API errors."""
    if isinstance(error, CircuitOpenError):
        return (
            f"Google Workspace is currently unavailable ({tool}). Repeated failures opened "
            f"the circuit breaker. Please try again in {error.retry_after} seconds."
        )
    if isinstance(error, CircuitTimeoutError):
        return (
            f"Google Workspace request timed out ({tool}) after {error.timeout:g} seconds. "
            "Please try again."
        )
    if isinstance(error, ValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'arguments'}: {e['msg']}"
            for e in error.errors()
        )
        return f"Invalid arguments for {tool}: {problems}"
    return str(error)


def _text_result(payload: Any, is_error: bool = False) -> types.CallToolResult:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)], isError=is_error
    )


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def tool(self, name: str, description: str, args_model: type[ToolArgs] = NoArgs):
        def decorator(fn: Handler) -> Handler:
            self._tools[name] = ToolSpec(name, description, args_model, fn)
            return fn

        return decorator

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[types.Tool]:
        return [tool.to_tool() for tool in self._tools.values()]

    async def call(
        self, name: str, arguments: dict[str, Any] | None, workspace: WorkspaceClient
    ) -> types.CallToolResult:
        """Run a tool. Failures become ``isError`` results rather than exceptions."""
        tool = self._tools.get(name)
        if tool is None:
            return _text_result(f"Error: Unknown tool: {name}", is_error=True)
        try:
            args = tool.args_model.model_validate(arguments or {})
            result = await tool.handler(workspace, args)
        except (ValidationError, GatewayError, httpx.HTTPError) as e:
            logger.warning("Tool %s failed: %s", name, e)
            return _text_result(f"Error: {describe_error(e, name)}", is_error=True)
        return _text_result(result)


registry = ToolRegistry()


@registry.tool("list_calendars", "List all calendars accessible by the user")
async def list_calendars(ws: WorkspaceClient, args: NoArgs) -> Any:
    return {"calendars": await ws.calendar.list_calendars()}


@registry.tool("list_events", "List upcoming events from a calendar", ListEventsArgs)
async def list_events(ws: WorkspaceClient, args: ListEventsArgs) -> Any:
    return await ws.calendar.list_events(
        calendar_id=args.calendar_id,
        time_min=args.time_min,
        time_max=args.time_max,
        max_results=args.max_results,
        query=args.q,
        page_token=args.page_token,
    )


@registry.tool("get_event", "Get full details of a specific event", GetEventArgs)
async def get_event(ws: WorkspaceClient, args: GetEventArgs) -> Any:
    return {"event": await ws.calendar.get_event(args.event_id, args.calendar_id)}


@registry.tool("create_event", "Create a new calendar event", CreateEventArgs)
async def create_event(ws: WorkspaceClient, args: CreateEventArgs) -> Any:
    event = await ws.calendar.create_event(
        summary=args.summary,
        start=args.start,
        end=args.end,
        calendar_id=args.calendar_id,
        description=args.description,
        location=args.location,
        attendees=args.attendees,
        time_zone=args.time_zone,
        send_updates=args.send_updates,
    )
    return {"event": event}


@registry.tool("update_event", "Update an existing event", UpdateEventArgs)
async def update_event(ws: WorkspaceClient, args: UpdateEventArgs) -> Any:
    event = await ws.calendar.update_event(
        args.event_id,
        calendar_id=args.calendar_id,
        summary=args.summary,
        start=args.start,
        end=args.end,
        description=args.description,
        location=args.location,
        attendees=args.attendees,
        time_zone=args.time_zone,
        send_updates=args.send_updates,
    )
    return {"event": event}


@registry.tool("delete_event", "Delete a calendar event", DeleteEventArgs)
async def delete_event(ws: WorkspaceClient, args: DeleteEventArgs) -> Any:
    await ws.calendar.delete_event(args.event_id, args.calendar_id, args.send_updates)
    return {"success": True, "action": "deleted"}


@registry.tool("search_events", "Search events by keyword", SearchEventsArgs)
async def search_events(ws: WorkspaceClient, args: SearchEventsArgs) -> Any:
    events = await ws.calendar.search_events(args.query, args.calendar_id, args.max_results)
    return {"query": args.query, "events": events}


@registry.tool("quick_add_event", "Quick add an event from natural language", QuickAddArgs)
async def quick_add_event(ws: WorkspaceClient, args: QuickAddArgs) -> Any:
    return {"event": await ws.calendar.quick_add(args.text, args.calendar_id)}


@registry.tool("check_free_busy", "Check free/busy status for calendars", FreeBusyArgs)
async def check_free_busy(ws: WorkspaceClient, args: FreeBusyArgs) -> Any:
    busy = await ws.calendar.free_busy(args.time_min, args.time_max, args.calendar_ids)
    return {"timeMin": args.time_min, "timeMax": args.time_max, "calendars": busy}


@registry.tool("list_files", "List files in Google Drive", ListFilesArgs)
async def list_files(ws: WorkspaceClient, args: ListFilesArgs) -> Any:
    return await ws.drive.list_files(args.query, args.max_results, args.page_token)


@registry.tool("search_files", "Full-text search across Drive files", SearchFilesArgs)
async def search_files(ws: WorkspaceClient, args: SearchFilesArgs) -> Any:
    files = await ws.drive.search_files(args.query, args.max_results, args.file_type)
    return {"query": args.query, "files": files}


@registry.tool("get_file", "Get metadata for a Drive file", FileIdArgs)
async def get_file(ws: WorkspaceClient, args: FileIdArgs) -> Any:
    return {"file": await ws.drive.get_file(args.file_id)}


@registry.tool("create_folder", "Create a folder in Drive", CreateFolderArgs)
async def create_folder(ws: WorkspaceClient, args: CreateFolderArgs) -> Any:
    return {"folder": await ws.drive.create_folder(args.name, args.parent_id)}


@registry.tool(
    "delete_file", "Move a Drive file to trash, or delete it permanently", DeleteFileArgs
)
async def delete_file(ws: WorkspaceClient, args: DeleteFileArgs) -> Any:
    return await ws.drive.delete_file(args.file_id, args.permanent)


@registry.tool("list_messages", "Search Gmail messages", ListMessagesArgs)
async def list_messages(ws: WorkspaceClient, args: ListMessagesArgs) -> Any:
    messages = await ws.gmail.list_messages(args.query, args.max_results, args.label_ids)
    return {"messages": messages}


@registry.tool("get_message", "Read a full Gmail message", GetMessageArgs)
async def get_message(ws: WorkspaceClient, args: GetMessageArgs) -> Any:
    return {"message": await ws.gmail.get_message(args.message_id)}


@registry.tool("send_message", "Send a plain text email", SendMessageArgs)
async def send_message(ws: WorkspaceClient, args: SendMessageArgs) -> Any:
    sent = await ws.gmail.send_message(args.to, args.subject, args.body, args.cc, args.bcc)
    return {"success": True, **sent}


@registry.tool("list_labels", "List Gmail labels")
async def list_labels(ws: WorkspaceClient, args: NoArgs) -> Any:
    return {"labels": await ws.gmail.list_labels()}


@registry.tool("get_form", "Get a Google Form and its questions", FormIdArgs)
async def get_form(ws: WorkspaceClient, args: FormIdArgs) -> Any:
    return {"form": await ws.forms.get_form(args.form_id)}


@registry.tool("list_responses", "List responses submitted to a form", ListResponsesArgs)
async def list_responses(ws: WorkspaceClient, args: ListResponsesArgs) -> Any:
    return await ws.forms.list_responses(args.form_id, args.page_size)


@registry.tool("create_form", "Create a new Google Form", CreateFormArgs)
async def create_form(ws: WorkspaceClient, args: CreateFormArgs) -> Any:
    return {"form": await ws.forms.create_form(args.title, args.document_title)}
