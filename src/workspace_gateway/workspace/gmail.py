# Gmail client: search and read messages, send mail, labels.
# Created: 2026-09-21

from __future__ import annotations

import base64
import logging
from email.mime.text import MIMEText
from typing import Any

from workspace_gateway.errors import UpstreamError
from workspace_gateway.workspace.base import ApiClient

logger = logging.getLogger(__name__)

_GMAIL_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"


def _header_map(payload: dict[str, Any]) -> dict[str, str]:
    return {h["name"]: h["value"] for h in payload.get("headers", [])}


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")


def extract_body(payload: dict[str, Any]) -> str:
    """First text/plain part of a message payload, searched depth-first."""
    if payload.get("mimeType") == "text/plain":
        data = payload.get("body", {}).get("data", "")
        if data:
            return _decode(data)
    for part in payload.get("parts", []):
        text = extract_body(part)
        if text:
            return text
    return ""


class GmailClient(ApiClient):
    """HTTP client for Gmail API v1."""

    service = "gmail"

    async def list_messages(
        self, query: str = "", max_results: int = 10, label_ids: list[str] | None = None
    ) -> list[dict[str, Any]]:
        """Message summaries (subject, sender, date, snippet) for *query*."""
        params: dict[str, Any] = {"maxResults": max_results}
        if query:
            params["q"] = query
        if label_ids:
            params["labelIds"] = label_ids
        data = await self.request("list_messages", "GET", f"{_GMAIL_BASE}/messages", params=params)

        results = []
        for msg in data.get("messages", [])[:max_results]:
            try:
                meta = await self.request(
                    "get_message",
                    "GET",
                    f"{_GMAIL_BASE}/messages/{msg['id']}",
                    params={"format": "metadata", "metadataHeaders": ["From", "Subject", "Date"]},
                )
            except UpstreamError as e:
                logger.warning("Failed to fetch message %s: %s", msg["id"], e)
                continue
            headers = _header_map(meta.get("payload", {}))
            results.append(
                {
                    "id": msg["id"],
                    "threadId": meta.get("threadId", ""),
                    "subject": headers.get("Subject", "(no subject)"),
                    "from": headers.get("From", ""),
                    "date": headers.get("Date", ""),
                    "snippet": meta.get("snippet", ""),
                }
            )
        return results

    async def get_message(self, message_id: str) -> dict[str, Any]:
        data = await self.request(
            "get_message",
            "GET",
            f"{_GMAIL_BASE}/messages/{message_id}",
            params={"format": "full"},
        )
        payload = data.get("payload", {})
        headers = _header_map(payload)
        return {
            "id": message_id,
            "threadId": data.get("threadId", ""),
            "subject": headers.get("Subject", "(no subject)"),
            "from": headers.get("From", ""),
            "to": headers.get("To", ""),
            "date": headers.get("Date", ""),
            "labelIds": data.get("labelIds", []),
            "body": extract_body(payload) or "(no text content)",
            "snippet": data.get("snippet", ""),
        }

    async def send_message(
        self, to: str, subject: str, body: str, cc: str | None = None, bcc: str | None = None
    ) -> dict[str, Any]:
        message = MIMEText(body)
        message["to"] = to
        message["subject"] = subject
        if cc:
            message["cc"] = cc
        if bcc:
            message["bcc"] = bcc
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()

        data = await self.request(
            "send_message", "POST", f"{_GMAIL_BASE}/messages/send", json={"raw": raw}
        )
        logger.info("Gmail message sent")
        return {"id": data.get("id", ""), "threadId": data.get("threadId", "")}

    async def list_labels(self) -> list[dict[str, Any]]:
        data = await self.request("list_labels", "GET", f"{_GMAIL_BASE}/labels")
        return [
            {"id": lb["id"], "name": lb["name"], "type": lb.get("type", "")}
            for lb in data.get("labels", [])
        ]
