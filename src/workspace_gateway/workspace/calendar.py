# Google Calendar client: calendars, events, free/busy.
# Created: 2026-09-21

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote

from workspace_gateway.workspace.base import ApiClient

logger = logging.getLogger(__name__)

_CALENDAR_BASE = "https://www.googleapis.com/calendar/v3"


def _cal(calendar_id: str) -> str:
    return f"{_CALENDAR_BASE}/calendars/{quote(calendar_id, safe='')}"


def _event_summary(item: dict[str, Any]) -> dict[str, Any]:
    start = item.get("start", {})
    end = item.get("end", {})
    return {
        "id": item.get("id", ""),
        "summary": item.get("summary", "(no title)"),
        "start": start.get("dateTime", start.get("date", "")),
        "end": end.get("dateTime", end.get("date", "")),
        "location": item.get("location", ""),
        "description": item.get("description", ""),
        "attendees": [a.get("email", "") for a in item.get("attendees", [])],
        "htmlLink": item.get("htmlLink", ""),
        "status": item.get("status", ""),
    }


def _time_body(value: str, time_zone: str | None) -> dict[str, str]:
    # All-day events are plain dates.
    if len(value) == 10:
        return {"date": value}
    body = {"dateTime": value}
    if time_zone:
        body["timeZone"] = time_zone
    return body


class CalendarClient(ApiClient):
    """HTTP client for Google Calendar API v3."""

    service = "calendar"

    async def list_calendars(self) -> list[dict[str, Any]]:
        url = f"{_CALENDAR_BASE}/users/me/calendarList"
        data = await self.request("list_calendars", "GET", url)
        return [
            {
                "id": c.get("id", ""),
                "summary": c.get("summary", ""),
                "primary": bool(c.get("primary")),
                "accessRole": c.get("accessRole", ""),
                "timeZone": c.get("timeZone", ""),
            }
            for c in data.get("items", [])
        ]

    async def list_events(
        self,
        calendar_id: str = "primary",
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 10,
        query: str | None = None,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        """Upcoming events; defaults to the next seven days."""
        now = datetime.now(UTC)
        params: dict[str, Any] = {
            "timeMin": time_min or now.isoformat(),
            "timeMax": time_max or (now + timedelta(days=7)).isoformat(),
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if query:
            params["q"] = query
        if page_token:
            params["pageToken"] = page_token
        url = f"{_cal(calendar_id)}/events"
        data = await self.request("list_events", "GET", url, params=params)
        result: dict[str, Any] = {"events": [_event_summary(i) for i in data.get("items", [])]}
        if data.get("nextPageToken"):
            result["nextPageToken"] = data["nextPageToken"]
        return result

    async def get_event(self, event_id: str, calendar_id: str = "primary") -> dict[str, Any]:
        data = await self.request(
            "get_event", "GET", f"{_cal(calendar_id)}/events/{quote(event_id, safe='')}"
        )
        return _event_summary(data)

    async def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        calendar_id: str = "primary",
        description: str = "",
        location: str = "",
        attendees: list[str] | None = None,
        time_zone: str | None = None,
        send_updates: str = "none",
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": summary,
            "start": _time_body(start, time_zone),
            "end": _time_body(end, time_zone),
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if attendees:
            body["attendees"] = [{"email": e} for e in attendees]

        data = await self.request(
            "create_event",
            "POST",
            f"{_cal(calendar_id)}/events",
            params={"sendUpdates": send_updates},
            json=body,
        )
        logger.info("Calendar event created in %s", calendar_id)
        return _event_summary(data)

    async def update_event(
        self,
        event_id: str,
        calendar_id: str = "primary",
        summary: str | None = None,
        start: str | None = None,
        end: str | None = None,
        description: str | None = None,
        location: str | None = None,
        attendees: list[str] | None = None,
        time_zone: str | None = None,
        send_updates: str = "none",
    ) -> dict[str, Any]:
        """Patch only the fields given."""
        body: dict[str, Any] = {}
        if summary is not None:
            body["summary"] = summary
        if start is not None:
            body["start"] = _time_body(start, time_zone)
        if end is not None:
            body["end"] = _time_body(end, time_zone)
        if description is not None:
            body["description"] = description
        if location is not None:
            body["location"] = location
        if attendees is not None:
            body["attendees"] = [{"email": e} for e in attendees]

        data = await self.request(
            "update_event",
            "PATCH",
            f"{_cal(calendar_id)}/events/{quote(event_id, safe='')}",
            params={"sendUpdates": send_updates},
            json=body,
        )
        return _event_summary(data)

    async def delete_event(
        self, event_id: str, calendar_id: str = "primary", send_updates: str = "none"
    ) -> dict[str, Any]:
        await self.request(
            "delete_event",
            "DELETE",
            f"{_cal(calendar_id)}/events/{quote(event_id, safe='')}",
            params={"sendUpdates": send_updates},
        )
        return {"status": "deleted", "eventId": event_id}

    async def search_events(
        self, query: str, calendar_id: str = "primary", max_results: int = 25
    ) -> list[dict[str, Any]]:
        data = await self.request(
            "search_events",
            "GET",
            f"{_cal(calendar_id)}/events",
            params={"q": query, "maxResults": max_results, "singleEvents": "true"},
        )
        return [_event_summary(i) for i in data.get("items", [])]

    async def quick_add(self, text: str, calendar_id: str = "primary") -> dict[str, Any]:
        data = await self.request(
            "quick_add", "POST", f"{_cal(calendar_id)}/events/quickAdd", params={"text": text}
        )
        return _event_summary(data)

    async def free_busy(
        self, time_min: str, time_max: str, calendar_ids: list[str] | None = None
    ) -> dict[str, Any]:
        body = {
            "timeMin": time_min,
            "timeMax": time_max,
            "items": [{"id": cid} for cid in (calendar_ids or ["primary"])],
        }
        data = await self.request("free_busy", "POST", f"{_CALENDAR_BASE}/freeBusy", json=body)
        return {
            cid: info.get("busy", []) for cid, info in data.get("calendars", {}).items()
        }
