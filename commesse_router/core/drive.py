"""
Thin Microsoft Graph (OneDrive) client.

Only the calls needed by the scanner and the mover are implemented:
- list the children of a folder (by path)
- fetch an item (by id or by path)
- rename an item in place
- move an item into a folder, creating the folder and resolving name
  conflicts with `_<n>` suffixes
- download an item's content
- connection test (`GET /me`)

HTTP failures are mapped to DriveError subclasses carrying the status code.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .errors import (
    DriveError,
    DriveItemNotFoundError,
    DrivePermissionError,
    DriveUnavailableError,
    InvalidPathError,
)
from .models import FileDescriptor
from .naming import split_extension
from ..utils.paths import join_drive_path, validate_drive_path

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
MAX_NAME_CONFLICTS = 100


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def item_to_descriptor(item: Dict[str, Any], parent_path: str) -> FileDescriptor:
    """Convert a Graph driveItem into a FileDescriptor."""
    file_facet = item.get("file") or {}
    parent_ref = item.get("parentReference") or {}
    return FileDescriptor(
        id=str(item["id"]),
        name=str(item["name"]),
        size=int(item.get("size") or 0),
        last_modified=_parse_timestamp(item.get("lastModifiedDateTime")),
        parent_path=parent_path,
        is_folder="folder" in item,
        mime_type=file_facet.get("mimeType") or "application/octet-stream",
        source="drive",
        drive_id=parent_ref.get("driveId"),
        download_url=item.get("@microsoft.graph.downloadUrl"),
        web_url=item.get("webUrl"),
    )


class DriveClient:
    """
    Microsoft Graph client bound to one access token.

    `session` can be any object with a `requests.Session`-compatible
    `request()` method; tests pass a fake.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = GRAPH_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"}

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        raw: bool = False,
    ) -> Any:
        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        logger.debug("Graph %s %s", method, endpoint)
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise DriveUnavailableError(f"Graph request failed: {method} {endpoint}: {exc}") from exc

        status = response.status_code
        if status == 404:
            raise DriveItemNotFoundError(f"Not found: {endpoint}", status_code=status)
        if status in (401, 403):
            raise DrivePermissionError(f"Access denied: {endpoint}", status_code=status)
        if status >= 500:
            raise DriveUnavailableError(f"Graph server error {status}: {endpoint}", status_code=status)
        if status >= 400:
            raise DriveError(f"Graph error {status}: {endpoint}: {response.text}", status_code=status)

        if raw:
            return response.content
        if status == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _path_endpoint(folder_path: str, suffix: str = "") -> str:
        if folder_path in ("", "/"):
            return f"/me/drive/root{'/' + suffix if suffix else ''}"
        encoded = quote(folder_path)
        return f"/me/drive/root:{encoded}{':/' + suffix if suffix else ''}"

    @staticmethod
    def _item_endpoint(item_id: str, drive_id: Optional[str] = None) -> str:
        if drive_id:
            return f"/drives/{drive_id}/items/{item_id}"
        return f"/me/drive/items/{item_id}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def test_connection(self) -> bool:
        try:
            self._request("GET", "/me")
        except DriveError as exc:
            logger.warning("OneDrive connection test failed: %s", exc)
            return False
        return True

    def list_children(self, folder_path: str) -> List[Dict[str, Any]]:
        """All children of a folder, following `@odata.nextLink` pages."""
        folder_path = validate_drive_path(folder_path)
        return self._get_all(self._path_endpoint(folder_path, "children"))

    def _get_all(self, endpoint: str) -> List[Dict[str, Any]]:
        data = self._request("GET", endpoint)
        items = list(data.get("value", []))
        next_link = data.get("@odata.nextLink")
        while next_link:
            data = self._request("GET", next_link)
            items.extend(data.get("value", []))
            next_link = data.get("@odata.nextLink")
        return items

    def get_item(self, item_id: str, drive_id: Optional[str] = None) -> Dict[str, Any]:
        return self._request("GET", self._item_endpoint(item_id, drive_id))

    def get_item_by_path(self, path: str) -> Dict[str, Any]:
        return self._request("GET", self._path_endpoint(validate_drive_path(path)))

    def download_content(self, item_id: str, drive_id: Optional[str] = None) -> bytes:
        return self._request("GET", self._item_endpoint(item_id, drive_id) + "/content", raw=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def rename_item(self, item_id: str, new_name: str, drive_id: Optional[str] = None) -> Dict[str, Any]:
        """Rename in place; raises DriveError unless Graph confirms the new name."""
        updated = self._request("PATCH", self._item_endpoint(item_id, drive_id), json={"name": new_name})
        if updated.get("name") != new_name:
            raise DriveError(f"OneDrive did not confirm the rename to {new_name!r}")
        return updated

    def ensure_folder(self, folder_path: str) -> str:
        """
        Return the id of `folder_path`, creating missing segments.

        Folders are created with conflictBehavior "fail": when another worker
        created the same folder in the meantime (409) the existing one is used.
        """
        folder_path = validate_drive_path(folder_path)
        if folder_path == "/":
            return self.get_item_by_path("/")["id"]
        try:
            return self.get_item_by_path(folder_path)["id"]
        except DriveItemNotFoundError:
            logger.info("Target folder %s not found; creating it", folder_path)

        current_path = ""
        current_id = "root"
        for part in [p for p in folder_path.split("/") if p]:
            current_path = join_drive_path(current_path, part)
            try:
                current_id = self.get_item_by_path(current_path)["id"]
            except DriveItemNotFoundError:
                current_id = self._create_folder(current_id, part, current_path)
        return current_id

    def _create_folder(self, parent_id: str, name: str, folder_path: str) -> str:
        try:
            created = self._request(
                "POST",
                f"/me/drive/items/{parent_id}/children",
                json={
                    "name": name,
                    "folder": {},
                    "@microsoft.graph.conflictBehavior": "fail",
                },
            )
        except DriveError as exc:
            if exc.status_code != 409:
                raise
            logger.debug("Folder %s already exists; reusing it", folder_path)
            return self.get_item_by_path(folder_path)["id"]
        logger.info("Created folder %s", folder_path)
        return created["id"]

    def resolve_name_conflict(self, folder_id: str, desired_name: str) -> str:
        """
        First free name in the folder: name, name_1, name_2, ...

        If the folder listing fails the desired name is returned unchanged.
        """
        try:
            children = self._get_all(f"/me/drive/items/{folder_id}/children")
        except DriveError as exc:
            logger.warning("Could not check for name conflicts, using %s: %s", desired_name, exc)
            return desired_name

        taken = {item.get("name") for item in children}
        if desired_name not in taken:
            return desired_name

        stem, extension = split_extension(desired_name)
        for counter in range(1, MAX_NAME_CONFLICTS + 1):
            candidate = f"{stem}_{counter}{extension}"
            if candidate not in taken:
                return candidate
        raise DriveError(f"Too many naming conflicts for {desired_name!r}")

    def move_item(
        self,
        item_id: str,
        target_folder_path: str,
        new_name: Optional[str] = None,
        drive_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move an item into `target_folder_path` (created when missing).

        Returns {"name", "path", "parent_folder_id"}.
        """
        if not item_id:
            raise InvalidPathError("Missing required file id")
        current = self.get_item(item_id, drive_id)

        target_folder_path = validate_drive_path(target_folder_path)
        folder_id = self.ensure_folder(target_folder_path)
        final_name = self.resolve_name_conflict(folder_id, new_name or current["name"])

        moved = self._request(
            "PATCH",
            self._item_endpoint(item_id, drive_id),
            json={"parentReference": {"id": folder_id}, "name": final_name},
        )
        return {
            "name": moved.get("name", final_name),
            "path": join_drive_path(target_folder_path, moved.get("name", final_name)),
            "parent_folder_id": folder_id,
        }
