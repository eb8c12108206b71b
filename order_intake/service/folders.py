"""Idempotent folder resolution in the remote store.

``get_or_create`` is serialized per ``(parent_id, name)`` inside this process
and memoized in a bounded LRU, so concurrent submissions in the same month share one year and
one month folder. Another process can still race us between list and create;
when that happens the duplicates are detected on the follow-up listing and
every caller converges on the oldest folder (``created_time``, then id). The
extra empty folder is left in place.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ..domain.orders import year_month
from ..errors import FolderExistsError, StorageFailure
from ..logging_conf import get_logger
from ..storage.base import ROOT_ID, FolderNode, ObjectStorage
from .cache import LruCache
from .locks import KeyedLock

__all__ = ["FolderResolver", "OrderHierarchy", "canonical_folder"]

logger = get_logger("service.folders")


@dataclass(frozen=True)
class OrderHierarchy:
    root_folder_id: str
    year_folder_id: str
    month_folder_id: str


def canonical_folder(folders: list[FolderNode]) -> FolderNode:
    """Deterministic pick among same-named siblings: oldest first, then lowest id."""
    return min(folders, key=lambda f: (f.created_time is None, f.created_time or 0, f.id))


class FolderResolver:
    def __init__(
        self,
        storage: ObjectStorage,
        *,
        root_folder_id: str | None = None,
        root_folder_name: str = "Ani-Defteri-Siparisler",
        cache_size: int = 1024,
    ) -> None:
        if not root_folder_id and not root_folder_name:
            raise ValueError("either root_folder_id or root_folder_name is required")
        self._storage = storage
        self._root_folder_id = root_folder_id
        self._root_folder_name = root_folder_name
        self._cache: LruCache[tuple[str, str], str] = LruCache(cache_size)
        self._locks = KeyedLock()

    def reset(self) -> None:
        """Forget memoized resolutions (e.g. after folders were moved by hand)."""
        self._cache.clear()

    async def resolve_root(self) -> str:
        if self._root_folder_id:
            return self._root_folder_id
        return await self.get_or_create(self._root_folder_name, ROOT_ID)

    async def get_or_create(self, name: str, parent_id: str) -> str:
        key = (parent_id, name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async with self._locks.hold(key):
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            existing = await self._storage.list_folders(parent_id, name)
            if existing:
                folder = canonical_folder(existing)
            else:
                folder = await self._create_and_reconcile(name, parent_id)

            self._cache[key] = folder.id
            return folder.id

    async def create(self, name: str, parent_id: str) -> str:
        """Unconditionally create a folder and return its id."""
        folder = await self._storage.create_folder(name, parent_id)
        logger.info(
            "folder.create",
            extra={
                "event": "folder_create",
                "folder_name": name,
                "parent_id": parent_id,
                "folder_id": folder.id,
            },
        )
        return folder.id

    async def resolve_order_hierarchy(self, order_date: date) -> OrderHierarchy:
        year, month = year_month(order_date)
        root_id = await self.resolve_root()
        year_id = await self.get_or_create(year, root_id)
        month_id = await self.get_or_create(month, year_id)
        return OrderHierarchy(root_folder_id=root_id, year_folder_id=year_id, month_folder_id=month_id)

    async def _create_and_reconcile(self, name: str, parent_id: str) -> FolderNode:
        try:
            created = await self._storage.create_folder(name, parent_id)
        except FolderExistsError:
            # Someone else won the race; adopt theirs.
            siblings = await self._storage.list_folders(parent_id, name)
            if not siblings:
                raise StorageFailure(
                    f"folder {name!r} reported as existing under {parent_id!r} but not listed"
                ) from None
            return canonical_folder(siblings)

        logger.info(
            "folder.create",
            extra={
                "event": "folder_create",
                "folder_name": name,
                "parent_id": parent_id,
                "folder_id": created.id,
            },
        )
        siblings = await self._storage.list_folders(parent_id, name)
        if len(siblings) <= 1:
            return created
        winner = canonical_folder(siblings)
        logger.warning(
            "folder.duplicates",
            extra={
                "event": "folder_duplicates",
                "folder_name": name,
                "parent_id": parent_id,
                "count": len(siblings),
                "adopted_id": winner.id,
                "created_id": created.id,
            },
        )
        return winner
