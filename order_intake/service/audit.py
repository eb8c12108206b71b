from __future__ import annotations

from ..domain.audit import AUDIT_LOG_NAME, AuditEntry, format_entry, parse_log
from ..domain.clock import Clock, utc_now
from ..domain.status import OrderStatus
from ..logging_conf import get_logger
from ..storage.base import ObjectStorage
from .folders import FolderResolver
from .locks import KeyedLock

__all__ = ["AuditLogger", "LOGS_FOLDER"]

logger = get_logger("service.audit")

LOGS_FOLDER = "logs"
_MIME = "text/plain"


def _status_value(status: OrderStatus | str) -> str:
    return status.value if isinstance(status, OrderStatus) else status


class AuditLogger:
    """Append-only status log, one ``logs/audit.log`` text object per order.

    The remote store cannot append, so each append rewrites the whole object.
    Appends for the same order run one at a time; different orders do not
    wait on each other.
    """

    def __init__(
        self, storage: ObjectStorage, folders: FolderResolver, *, clock: Clock = utc_now
    ) -> None:
        self._storage = storage
        self._folders = folders
        self._clock = clock
        self._locks = KeyedLock()

    async def append(
        self,
        order_folder_id: str,
        order_id: str,
        old_status: OrderStatus | str,
        new_status: OrderStatus | str,
        note: str | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            timestamp=self._clock(),
            old_status=_status_value(old_status),
            new_status=_status_value(new_status),
            note=(note or "").strip() or None,
        )

        async with self._locks.hold(order_id):
            logs_id = await self._folders.get_or_create(LOGS_FOLDER, order_folder_id)
            existing = await self._storage.find_file(AUDIT_LOG_NAME, logs_id)
            if existing is None:
                await self._storage.create_file(
                    AUDIT_LOG_NAME, logs_id, format_entry(entry).encode("utf-8"), _MIME
                )
            else:
                content = await self._storage.read_text(existing.id) + format_entry(entry)
                await self._storage.update_file(existing.id, content.encode("utf-8"), _MIME)

        logger.info(
            "audit.append",
            extra={
                "event": "audit_append",
                "order_id": order_id,
                "old_status": entry.old_status,
                "new_status": entry.new_status,
            },
        )
        return entry

    async def read(self, order_folder_id: str) -> list[AuditEntry]:
        """Entries of an order's log in append order; empty if none were written."""
        logs = await self._storage.list_folders(order_folder_id, LOGS_FOLDER)
        for folder in logs:
            existing = await self._storage.find_file(AUDIT_LOG_NAME, folder.id)
            if existing is not None:
                return parse_log(await self._storage.read_text(existing.id))
        return []
