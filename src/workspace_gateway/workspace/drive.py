# Google Drive client: list, search, metadata, folders, trash.
# Created: 2026-09-21

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from workspace_gateway.workspace.base import ApiClient

_DRIVE_BASE = "https://www.googleapis.com/drive/v3"
_FILE_FIELDS = "id,name,mimeType,modifiedTime,size,webViewLink,parents"
_FOLDER_MIME = "application/vnd.google-apps.folder"

_TYPE_FILTERS = {
    "document": "application/vnd.google-apps.document",
    "spreadsheet": "application/vnd.google-apps.spreadsheet",
    "presentation": "application/vnd.google-apps.presentation",
    "folder": _FOLDER_MIME,
    "pdf": "application/pdf",
}


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient(ApiClient):
    """HTTP client for Google Drive API v3."""

    service = "drive"

    async def list_files(
        self,
        query: str | None = None,
        max_results: int = 20,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "pageSize": min(max_results, 100),
            "fields": f"nextPageToken,files({_FILE_FIELDS})",
            "orderBy": "modifiedTime desc",
        }
        if query:
            params["q"] = query
        if page_token:
            params["pageToken"] = page_token
        data = await self.request("list_files", "GET", f"{_DRIVE_BASE}/files", params=params)
        result: dict[str, Any] = {"files": data.get("files", [])}
        if data.get("nextPageToken"):
            result["nextPageToken"] = data["nextPageToken"]
        return result

    async def search_files(
        self, search: str, max_results: int = 20, file_type: str | None = None
    ) -> list[dict[str, Any]]:
        """Full-text search, optionally narrowed to a known file type."""
        clauses = [f"fullText contains '{_escape(search)}'", "trashed = false"]
        if file_type in _TYPE_FILTERS:
            clauses.append(f"mimeType = '{_TYPE_FILTERS[file_type]}'")
        params = {
            "q": " and ".join(clauses),
            "pageSize": min(max_results, 100),
            "fields": f"files({_FILE_FIELDS})",
        }
        data = await self.request("search_files", "GET", f"{_DRIVE_BASE}/files", params=params)
        return data.get("files", [])

    async def get_file(self, file_id: str) -> dict[str, Any]:
        return await self.request(
            "get_file",
            "GET",
            f"{_DRIVE_BASE}/files/{quote(file_id, safe='')}",
            params={"fields": _FILE_FIELDS},
        )

    async def create_folder(self, name: str, parent_id: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"name": name, "mimeType": _FOLDER_MIME}
        if parent_id:
            body["parents"] = [parent_id]
        return await self.request(
            "create_folder",
            "POST",
            f"{_DRIVE_BASE}/files",
            params={"fields": _FILE_FIELDS},
            json=body,
        )

    async def delete_file(self, file_id: str, permanent: bool = False) -> dict[str, Any]:
        """Trash by default; *permanent* deletes outright."""
        url = f"{_DRIVE_BASE}/files/{quote(file_id, safe='')}"
        if permanent:
            await self.request("delete_file", "DELETE", url)
            return {"status": "deleted", "fileId": file_id}
        await self.request("delete_file", "PATCH", url, json={"trashed": True})
        return {"status": "trashed", "fileId": file_id}
