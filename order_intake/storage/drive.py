"""Google Drive v3 REST backend.

Uses an ``httpx.AsyncClient`` with a bearer token. Credential acquisition and
refresh are not handled here: pass either a static access token or an async
callable returning a current one.

Idempotent reads (GET) are retried with exponential backoff on transport
errors, 429 and 5xx. Writes are never retried: a create whose response was
lost may still have happened, and retrying would duplicate it.
"""
from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx

from ..errors import NotFoundError, StorageFailure
from ..logging_conf import get_logger
from .base import FOLDER_MIME_TYPE, FolderNode, StoredFile

__all__ = ["DriveStorage", "escape_query_value"]

logger = get_logger("storage.drive")

API_URL = "https://www.googleapis.com/drive/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
_ITEM_FIELDS = "id, name, parents, mimeType, createdTime"
_PAGE_SIZE = 1000

TokenProvider = Callable[[], Awaitable[str]]


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside single quotes in a Drive ``q`` query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _parse_time(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _first_parent(item: dict[str, Any]) -> str | None:
    parents = item.get("parents") or []
    return parents[0] if parents else None


class DriveStorage:
    def __init__(
        self,
        *,
        access_token: str | None = None,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        read_retries: int = 3,
        backoff_base: float = 0.5,
    ) -> None:
        if access_token is None and token_provider is None:
            raise ValueError("DriveStorage needs an access_token or a token_provider")
        self._access_token = access_token
        self._token_provider = token_provider
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._read_retries = max(0, read_retries)
        self._backoff_base = backoff_base

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------
    # HTTP plumbing
    # ------------------------

    async def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        token = await self._token_provider() if self._token_provider else self._access_token
        headers = {"Authorization": f"Bearer {token}"}
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        attempts = 1 + (self._read_retries if method == "GET" else 0)
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    content=content,
                    headers=await self._headers(headers),
                )
            except httpx.HTTPError as e:
                failure = StorageFailure(f"{method} {url} failed: {e}", retryable=True)
            else:
                if response.status_code < 400:
                    return response
                if response.status_code == 404:
                    raise NotFoundError(f"{method} {url}: not found")
                retryable = response.status_code == 429 or response.status_code >= 500
                failure = StorageFailure(
                    f"{method} {url} returned {response.status_code}: {response.text[:300]}",
                    status_code=response.status_code,
                    retryable=retryable,
                )
            if not failure.retryable or attempt == attempts:
                raise failure
            delay = self._backoff_base * (2 ** (attempt - 1))
            logger.warning(
                "drive.retry",
                extra={
                    "event": "drive_retry",
                    "method": method,
                    "url": url,
                    "attempt": attempt,
                    "delay_s": delay,
                    "error": str(failure),
                },
            )
            await asyncio.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise StorageFailure(f"malformed JSON from Drive: {e}") from e
        if not isinstance(data, dict):
            raise StorageFailure("unexpected Drive response shape")
        return data

    async def _list(self, query: str, *, limit: int | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "q": query,
                "fields": f"nextPageToken, files({_ITEM_FIELDS})",
                "pageSize": min(limit or _PAGE_SIZE, _PAGE_SIZE),
                "spaces": "drive",
            }
            if page_token:
                params["pageToken"] = page_token
            data = self._json(await self._send("GET", f"{API_URL}/files", params=params))
            items.extend(data.get("files") or [])
            page_token = data.get("nextPageToken")
            if not page_token or (limit is not None and len(items) >= limit):
                return items[:limit] if limit is not None else items

    # ------------------------
    # ObjectStorage
    # ------------------------

    async def list_folders(self, parent_id: str, name: str | None = None) -> list[FolderNode]:
        query = (
            f"'{escape_query_value(parent_id)}' in parents"
            f" and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        )
        if name is not None:
            query += f" and name='{escape_query_value(name)}'"
        folders = [
            FolderNode(
                id=item["id"],
                name=item.get("name", ""),
                parent_id=_first_parent(item) or parent_id,
                created_time=_parse_time(item.get("createdTime")),
            )
            for item in await self._list(query)
        ]
        return sorted(folders, key=lambda f: f.name)

    async def create_folder(self, name: str, parent_id: str) -> FolderNode:
        response = await self._send(
            "POST",
            f"{API_URL}/files",
            params={"fields": _ITEM_FIELDS},
            json_body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )
        item = self._json(response)
        if "id" not in item:
            raise StorageFailure("Drive folder create returned no id")
        logger.info(
            "drive.folder_created",
            extra={
                "event": "drive_folder_created",
                "folder_id": item["id"],
                "folder_name": name,
            },
        )
        return FolderNode(
            id=item["id"],
            name=item.get("name", name),
            parent_id=_first_parent(item) or parent_id,
            created_time=_parse_time(item.get("createdTime")),
        )

    async def list_files(self, parent_id: str) -> list[StoredFile]:
        query = (
            f"'{escape_query_value(parent_id)}' in parents"
            f" and mimeType!='{FOLDER_MIME_TYPE}' and trashed=false"
        )
        return [self._stored_file(item, parent_id) for item in await self._list(query)]

    async def find_file(self, name: str, parent_id: str) -> StoredFile | None:
        query = (
            f"'{escape_query_value(parent_id)}' in parents"
            f" and name='{escape_query_value(name)}'"
            f" and mimeType!='{FOLDER_MIME_TYPE}' and trashed=false"
        )
        items = await self._list(query, limit=1)
        return self._stored_file(items[0], parent_id) if items else None

    async def read_text(self, file_id: str) -> str:
        response = await self._send(
            "GET", f"{API_URL}/files/{file_id}", params={"alt": "media"}
        )
        try:
            return response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageFailure(f"Drive file {file_id} is not valid UTF-8") from e

    async def create_file(
        self, name: str, parent_id: str, content: bytes, mime_type: str
    ) -> StoredFile:
        boundary = f"order-intake-{uuid.uuid4().hex}"
        metadata = json.dumps({"name": name, "parents": [parent_id]}).encode("utf-8")
        body = b"".join(
            [
                f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
                metadata,
                f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode(),
                content,
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )
        response = await self._send(
            "POST",
            f"{UPLOAD_URL}/files",
            params={"uploadType": "multipart", "fields": _ITEM_FIELDS},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        item = self._json(response)
        if "id" not in item:
            raise StorageFailure("Drive file create returned no id")
        return self._stored_file(item, parent_id, mime_type)

    async def update_file(self, file_id: str, content: bytes, mime_type: str) -> None:
        await self._send(
            "PATCH",
            f"{UPLOAD_URL}/files/{file_id}",
            params={"uploadType": "media"},
            content=content,
            headers={"Content-Type": mime_type},
        )

    def folder_url(self, folder_id: str) -> str:
        return f"https://drive.google.com/drive/folders/{folder_id}"

    @staticmethod
    def _stored_file(
        item: dict[str, Any], parent_id: str, mime_type: str | None = None
    ) -> StoredFile:
        return StoredFile(
            id=item["id"],
            name=item.get("name", ""),
            parent_id=_first_parent(item) or parent_id,
            mime_type=item.get("mimeType") or mime_type or "application/octet-stream",
            created_time=_parse_time(item.get("createdTime")),
        )
