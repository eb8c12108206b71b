"""Order status state machine over the manifests stored in the remote tree.

The manifest's ``status`` is the only persisted state. Any of the five
statuses may follow any other; moving backwards in the pipeline is allowed
but logged as a warning.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import ValidationError

from ..domain.audit import AuditEntry
from ..domain.clock import Clock, utc_now
from ..domain.orders import OrderManifest, matches_order_folder, year_month_from_order_id
from ..domain.status import OrderStatus, parse_status
from ..errors import InvalidError, NotFoundError, OrderIntakeError, StorageFailure
from ..logging_conf import get_logger
from ..storage.base import FolderNode, ObjectStorage, StoredFile
from .audit import AuditLogger
from .cache import LruCache
from .folders import FolderResolver
from .locks import KeyedLock

__all__ = [
    "MANIFEST_NAME",
    "StatusChange",
    "BulkFailure",
    "BulkResult",
    "OrderSummary",
    "OrderWorkflow",
]

logger = get_logger("service.workflow")

MANIFEST_NAME = "order.json"
_MANIFEST_MIME = "application/json"


@dataclass(frozen=True)
class StatusChange:
    order_id: str
    old_status: OrderStatus
    new_status: OrderStatus


@dataclass(frozen=True)
class BulkFailure:
    order_id: str
    error_code: str
    error_message: str


@dataclass
class BulkResult:
    updated: list[StatusChange] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


@dataclass(frozen=True)
class OrderSummary:
    order_id: str
    customer_name: str
    created_at: datetime
    status: OrderStatus
    folder_name: str
    folder_id: str
    folder_url: str
    file_counts: dict[str, int]
    fields: dict[str, str]


class OrderWorkflow:
    def __init__(
        self,
        storage: ObjectStorage,
        folders: FolderResolver,
        audit: AuditLogger,
        *,
        clock: Clock = utc_now,
        index_size: int = 4096,
    ) -> None:
        self._storage = storage
        self._folders = folders
        self._audit = audit
        self._clock = clock
        self._index: LruCache[str, FolderNode] = LruCache(index_size)
        self._locks = KeyedLock()

    def register(self, order_id: str, folder: FolderNode) -> None:
        """Remember where an order lives so later lookups skip the tree walk."""
        self._index[order_id] = folder

    # ------------------------
    # Lookup
    # ------------------------

    async def find_order(self, order_id: str) -> FolderNode | None:
        """Locate the order folder whose name is exactly ``<order_id>`` or ``<order_id>__<slug>``.

        Tries the in-process index, then the year/month folder encoded in the
        id, then every year/month folder.
        """
        if not order_id:
            return None
        cached = self._index.get(order_id)
        if cached is not None:
            return cached

        root_id = await self._folders.resolve_root()
        searched: set[str] = set()

        ym = year_month_from_order_id(order_id)
        if ym is not None:
            year, month = ym
            for year_folder in await self._storage.list_folders(root_id, year):
                for month_folder in await self._storage.list_folders(year_folder.id, month):
                    searched.add(month_folder.id)
                    found = await self._match_in(month_folder.id, order_id)
                    if found is not None:
                        return found

        for year_folder in await self._storage.list_folders(root_id):
            for month_folder in await self._storage.list_folders(year_folder.id):
                if month_folder.id in searched:
                    continue
                found = await self._match_in(month_folder.id, order_id)
                if found is not None:
                    return found
        return None

    async def _match_in(self, month_folder_id: str, order_id: str) -> FolderNode | None:
        for folder in await self._storage.list_folders(month_folder_id):
            if matches_order_folder(folder.name, order_id):
                self.register(order_id, folder)
                return folder
        return None

    async def load_manifest(self, folder: FolderNode) -> tuple[StoredFile, OrderManifest]:
        stored = await self._storage.find_file(MANIFEST_NAME, folder.id)
        if stored is None:
            raise NotFoundError(f"{MANIFEST_NAME} not found in {folder.name}")
        raw = await self._storage.read_text(stored.id)
        try:
            return stored, OrderManifest.model_validate_json(raw)
        except ValidationError as e:
            raise StorageFailure(f"{MANIFEST_NAME} in {folder.name} is malformed: {e}") from e

    async def get_manifest(self, order_id: str) -> OrderManifest:
        folder = await self._require_order(order_id)
        _, manifest = await self.load_manifest(folder)
        return manifest

    async def history(self, order_id: str) -> list[AuditEntry]:
        folder = await self._require_order(order_id)
        return await self._audit.read(folder.id)

    async def _require_order(self, order_id: str) -> FolderNode:
        folder = await self.find_order(order_id)
        if folder is None:
            raise NotFoundError(f"Order {order_id} not found")
        return folder

    # ------------------------
    # Transitions
    # ------------------------

    async def set_status(
        self, order_id: str, new_status: OrderStatus | str, note: str | None = None
    ) -> StatusChange:
        """Move an order to ``new_status`` and append the change to its audit log.

        Raises:
            InvalidError: ``new_status`` is not a known status.
            NotFoundError: the order folder or its manifest is missing.
            StorageFailure: a remote call failed or the manifest is unreadable.
        """
        target = parse_status(new_status)

        async with self._locks.hold(order_id):
            folder = await self._require_order(order_id)
            stored, manifest = await self.load_manifest(folder)
            old = manifest.status

            manifest.status = target
            manifest.last_updated = self._clock()
            await self._storage.update_file(
                stored.id, manifest.to_json().encode("utf-8"), _MANIFEST_MIME
            )
            await self._audit.append(folder.id, order_id, old, target, note)

        if target.is_regression_from(old):
            logger.warning(
                "order.status_regression",
                extra={
                    "event": "order_status_regression",
                    "order_id": order_id,
                    "old_status": old.value,
                    "new_status": target.value,
                },
            )
        logger.info(
            "order.status",
            extra={
                "event": "order_status",
                "order_id": order_id,
                "old_status": old.value,
                "new_status": target.value,
            },
        )
        return StatusChange(order_id=order_id, old_status=old, new_status=target)

    async def bulk_set_status(
        self, order_ids: list[str], new_status: OrderStatus | str, note: str | None = None
    ) -> BulkResult:
        """Apply ``set_status`` to each id; failures are collected, never raised.

        The target status and the id list are checked up front: an unknown
        status or an empty list raises InvalidError before any order is touched.
        """
        target = parse_status(new_status)
        if not order_ids:
            raise InvalidError("at least one order id is required")

        result = BulkResult()
        for order_id in order_ids:
            try:
                result.updated.append(await self.set_status(order_id, target, note))
            except OrderIntakeError as e:
                logger.warning(
                    "order.bulk_failed",
                    extra={
                        "event": "order_bulk_failed",
                        "order_id": order_id,
                        "error_code": e.code,
                        "error": str(e),
                    },
                )
                result.failed.append(
                    BulkFailure(order_id=order_id, error_code=e.code, error_message=str(e))
                )

        logger.info(
            "order.bulk_status",
            extra={
                "event": "order_bulk_status",
                "new_status": target.value,
                "requested": len(order_ids),
                "updated": len(result.updated),
                "failed": len(result.failed),
            },
        )
        return result

    # ------------------------
    # Listing
    # ------------------------

    async def list_orders(self) -> list[OrderSummary]:
        """Every order with a readable manifest, newest first.

        Order folders without a manifest are skipped; unreadable ones are
        logged and skipped so one bad folder does not hide the rest.
        """
        root_id = await self._folders.resolve_root()
        summaries: list[OrderSummary] = []
        for year_folder in await self._storage.list_folders(root_id):
            for month_folder in await self._storage.list_folders(year_folder.id):
                for order_folder in await self._storage.list_folders(month_folder.id):
                    try:
                        summary = await self._summarize(order_folder)
                    except OrderIntakeError:
                        logger.exception(
                            "order.list_skip",
                            extra={"event": "order_list_skip", "folder": order_folder.name},
                        )
                        continue
                    if summary is not None:
                        summaries.append(summary)

        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return summaries

    async def _summarize(self, folder: FolderNode) -> OrderSummary | None:
        try:
            _, manifest = await self.load_manifest(folder)
        except NotFoundError:
            return None
        self.register(manifest.order_id, folder)

        counts: dict[str, int] = {}
        for sub in await self._storage.list_folders(folder.id):
            counts[sub.name] = len(await self._storage.list_files(sub.id))

        return OrderSummary(
            order_id=manifest.order_id,
            customer_name=manifest.customer_name,
            created_at=manifest.created_at,
            status=manifest.status,
            folder_name=folder.name,
            folder_id=folder.id,
            folder_url=self._storage.folder_url(folder.id),
            file_counts=counts,
            fields=dict(manifest.fields),
        )
