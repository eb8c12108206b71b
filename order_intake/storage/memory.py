"""Process-local ObjectStorage, used for development and tests.

Every call yields to the event loop once, so concurrent callers interleave at
the same points they would against the real remote store.
"""
from __future__ import annotations

import asyncio
import itertools
from collections import Counter
from datetime import UTC, datetime, timedelta

from ..errors import FolderExistsError, NotFoundError, StorageFailure
from .base import ROOT_ID, FolderNode, StoredFile

__all__ = ["InMemoryStorage"]

_EPOCH = datetime(2020, 1, 1, tzinfo=UTC)


class InMemoryStorage:
    def __init__(self, *, unique_names: bool = False) -> None:
        self.unique_names = unique_names
        self.calls: Counter[str] = Counter()
        self._folders: dict[str, FolderNode] = {}
        self._files: dict[str, StoredFile] = {}
        self._content: dict[str, bytes] = {}
        self._ids = itertools.count(1)
        self._failures: Counter[str] = Counter()

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise StorageFailure."""
        self._failures[operation] += times

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        await asyncio.sleep(0)
        if self._failures[operation] > 0:
            self._failures[operation] -= 1
            raise StorageFailure(f"injected failure in {operation}", retryable=True)

    def _next(self, prefix: str) -> tuple[str, datetime]:
        n = next(self._ids)
        return f"{prefix}{n}", _EPOCH + timedelta(seconds=n)

    async def list_folders(self, parent_id: str, name: str | None = None) -> list[FolderNode]:
        await self._enter("list_folders")
        found = [
            f
            for f in self._folders.values()
            if f.parent_id == parent_id and (name is None or f.name == name)
        ]
        return sorted(found, key=lambda f: f.name)

    async def create_folder(self, name: str, parent_id: str) -> FolderNode:
        await self._enter("create_folder")
        if self.unique_names and any(
            f.parent_id == parent_id and f.name == name for f in self._folders.values()
        ):
            raise FolderExistsError(name, parent_id)
        folder_id, created = self._next("fld")
        node = FolderNode(id=folder_id, name=name, parent_id=parent_id, created_time=created)
        self._folders[folder_id] = node
        return node

    async def list_files(self, parent_id: str) -> list[StoredFile]:
        await self._enter("list_files")
        return sorted(
            (f for f in self._files.values() if f.parent_id == parent_id), key=lambda f: f.name
        )

    async def find_file(self, name: str, parent_id: str) -> StoredFile | None:
        await self._enter("find_file")
        for f in self._files.values():
            if f.parent_id == parent_id and f.name == name:
                return f
        return None

    async def read_text(self, file_id: str) -> str:
        await self._enter("read_text")
        if file_id not in self._content:
            raise NotFoundError(f"file {file_id} not found")
        try:
            return self._content[file_id].decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageFailure(f"file {file_id} is not valid UTF-8") from e

    async def create_file(
        self, name: str, parent_id: str, content: bytes, mime_type: str
    ) -> StoredFile:
        await self._enter("create_file")
        file_id, created = self._next("file")
        stored = StoredFile(
            id=file_id, name=name, parent_id=parent_id, mime_type=mime_type, created_time=created
        )
        self._files[file_id] = stored
        self._content[file_id] = bytes(content)
        return stored

    async def update_file(self, file_id: str, content: bytes, mime_type: str) -> None:
        await self._enter("update_file")
        if file_id not in self._files:
            raise NotFoundError(f"file {file_id} not found")
        self._content[file_id] = bytes(content)

    def folder_url(self, folder_id: str) -> str:
        return f"memory://folders/{folder_id}"

    # Inspection helpers for tests and local debugging.

    def folder(self, folder_id: str) -> FolderNode:
        return self._folders[folder_id]

    def children(self, parent_id: str = ROOT_ID) -> list[FolderNode]:
        return sorted(
            (f for f in self._folders.values() if f.parent_id == parent_id), key=lambda f: f.name
        )

    def content(self, file_id: str) -> bytes:
        return self._content[file_id]

