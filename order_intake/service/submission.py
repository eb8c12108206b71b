"""Order submission: redeem the token, lay out the order folder, store artifacts."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, tzinfo
from pathlib import PurePosixPath

from ..domain.clock import Clock, utc_now
from ..domain.orders import (
    ORDER_SUBFOLDERS,
    OrderFiles,
    OrderManifest,
    customer_slug,
    generate_order_id,
    order_folder_name,
)
from ..errors import InvalidError
from ..logging_conf import get_logger
from ..storage.base import FolderNode, ObjectStorage
from .folders import FolderResolver
from .tokens import TokenLifecycleManager
from .workflow import MANIFEST_NAME, OrderWorkflow

__all__ = ["DETAILS_NAME", "Upload", "OrderIntake"]

logger = get_logger("service.submission")

DETAILS_NAME = "details.txt"
# Same prefix as the photos already stored in existing order folders.
GENERAL_PHOTO_PREFIX = "Foto"


@dataclass(frozen=True)
class Upload:
    field_name: str
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def _base_name(filename: str) -> str:
    return PurePosixPath((filename or "").replace("\\", "/")).name or "file"


class OrderIntake:
    def __init__(
        self,
        tokens: TokenLifecycleManager,
        folders: FolderResolver,
        storage: ObjectStorage,
        workflow: OrderWorkflow,
        *,
        clock: Clock = utc_now,
        timezone: tzinfo = UTC,
        general_photos_field: str = "12_Genel_Photos",
    ) -> None:
        self._tokens = tokens
        self._folders = folders
        self._storage = storage
        self._workflow = workflow
        self._clock = clock
        self._tz = timezone
        self._general_field = general_photos_field

    async def submit(
        self,
        customer_name: str,
        fields: Mapping[str, str],
        uploads: Iterable[Upload] = (),
        *,
        token: str | None = None,
    ) -> OrderManifest:
        """Create one order and return its manifest.

        When ``token`` is given it is consumed with the new order id before
        anything is written remotely; a later storage failure leaves the token
        used (the order id it is bound to is in the error log).

        Raises:
            InvalidError: blank customer name.
            NotFoundError, DeletedError, ConflictError, ExpiredError: token rejected.
            StorageFailure: a remote call failed.
        """
        name = (customer_name or "").strip()
        if not name:
            raise InvalidError("customer name is required")

        now = self._clock()
        local_now = now.astimezone(self._tz)
        order_id = generate_order_id(local_now)
        slug = customer_slug(name)

        if token:
            await self._tokens.consume(token, order_id)

        try:
            manifest = await self._write_order(order_id, name, slug, local_now, fields, uploads)
        except Exception:
            logger.exception(
                "order.submit_failed",
                extra={"event": "order_submit_failed", "order_id": order_id, "token_used": bool(token)},
            )
            raise

        logger.info(
            "order.submitted",
            extra={
                "event": "order_submitted",
                "order_id": order_id,
                "customer_slug": slug,
                "special_files": len(manifest.files.special),
                "general_files": len(manifest.files.general),
            },
        )
        return manifest

    async def _write_order(self, order_id, name, slug, local_now, fields, uploads) -> OrderManifest:
        hierarchy = await self._folders.resolve_order_hierarchy(local_now.date())
        folder_name = order_folder_name(order_id, slug)
        order_folder_id = await self._folders.create(folder_name, hierarchy.month_folder_id)
        subfolders = {
            sub: await self._folders.create(sub, order_folder_id) for sub in ORDER_SUBFOLDERS
        }

        files = OrderFiles()
        for upload in uploads:
            original = _base_name(upload.filename)
            if upload.field_name == self._general_field:
                stamp = int(self._clock().timestamp() * 1000)
                target = f"{GENERAL_PHOTO_PREFIX}_{stamp}_{original}"
                files.general.append(target)
                parent = subfolders["general"]
            else:
                target = f"{upload.field_name}{PurePosixPath(original).suffix}"
                files.special[upload.field_name] = target
                parent = subfolders["special"]
            await self._storage.create_file(target, parent, upload.content, upload.content_type)

        kept = {k: v for k, v in fields.items() if isinstance(v, str) and v.strip()}
        manifest = OrderManifest(
            order_id=order_id,
            customer_name=name,
            customer_slug=slug,
            created_at=self._clock(),
            fields=kept,
            files=files,
        )
        await self._storage.create_file(
            MANIFEST_NAME, order_folder_id, manifest.to_json().encode("utf-8"), "application/json"
        )
        details = "".join(f"{k}: {v}\r\n" for k, v in kept.items())
        await self._storage.create_file(
            DETAILS_NAME, order_folder_id, details.encode("utf-8"), "text/plain"
        )

        self._workflow.register(
            order_id,
            FolderNode(id=order_folder_id, name=folder_name, parent_id=hierarchy.month_folder_id),
        )
        return manifest
