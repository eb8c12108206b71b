from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

__all__ = ["FOLDER_MIME_TYPE", "ROOT_ID", "FolderNode", "StoredFile", "ObjectStorage"]

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
# Alias of the account's top-level folder.
ROOT_ID = "root"


@dataclass(frozen=True)
class FolderNode:
    id: str
    name: str
    parent_id: str | None
    created_time: datetime | None = None


@dataclass(frozen=True)
class StoredFile:
    id: str
    name: str
    parent_id: str | None
    mime_type: str = "application/octet-stream"
    created_time: datetime | None = None


class ObjectStorage(Protocol):
    """Folder/file operations the core needs from the remote store.

    Every call may fail with ``StorageFailure``. ``create_folder`` may raise
    ``FolderExistsError`` on backends that enforce unique names per parent.
    """

    async def list_folders(self, parent_id: str, name: str | None = None) -> list[FolderNode]:
        ...

    async def create_folder(self, name: str, parent_id: str) -> FolderNode:
        ...

    async def list_files(self, parent_id: str) -> list[StoredFile]:
        ...

    async def find_file(self, name: str, parent_id: str) -> StoredFile | None:
        ...

    async def read_text(self, file_id: str) -> str:
        ...

    async def create_file(
        self, name: str, parent_id: str, content: bytes, mime_type: str
    ) -> StoredFile:
        ...

    async def update_file(self, file_id: str, content: bytes, mime_type: str) -> None:
        ...

    def folder_url(self, folder_id: str) -> str:
        ...
