# Google Forms client: read forms, list responses, create forms.
# Created: 2026-09-22

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from workspace_gateway.workspace.base import ApiClient

_FORMS_BASE = "https://forms.googleapis.com/v1/forms"


class FormsClient(ApiClient):
    """HTTP client for Google Forms API v1."""

    service = "forms"

    async def get_form(self, form_id: str) -> dict[str, Any]:
        data = await self.request("get_form", "GET", f"{_FORMS_BASE}/{quote(form_id, safe='')}")
        info = data.get("info", {})
        return {
            "formId": data.get("formId", form_id),
            "title": info.get("title", ""),
            "description": info.get("description", ""),
            "responderUri": data.get("responderUri", ""),
            "items": [
                {"itemId": i.get("itemId", ""), "title": i.get("title", "")}
                for i in data.get("items", [])
            ],
        }

    async def list_responses(self, form_id: str, page_size: int = 50) -> dict[str, Any]:
        data = await self.request(
            "list_responses",
            "GET",
            f"{_FORMS_BASE}/{quote(form_id, safe='')}/responses",
            params={"pageSize": page_size},
        )
        responses = data.get("responses", [])
        return {"formId": form_id, "count": len(responses), "responses": responses}

    async def create_form(self, title: str, document_title: str | None = None) -> dict[str, Any]:
        """Create an empty form. The API only accepts the title on create."""
        info: dict[str, Any] = {"title": title}
        if document_title:
            info["documentTitle"] = document_title
        data = await self.request("create_form", "POST", _FORMS_BASE, json={"info": info})
        return {
            "formId": data.get("formId", ""),
            "title": data.get("info", {}).get("title", title),
            "responderUri": data.get("responderUri", ""),
        }
