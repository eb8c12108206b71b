"""Wires settings into one set of long-lived service objects per process."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import Settings
from .domain.clock import Clock, utc_now
from .errors import ConfigError
from .service import (
    AuditLogger,
    FixedWindowLimiter,
    FolderResolver,
    OrderIntake,
    OrderWorkflow,
    TokenLifecycleManager,
)
from .storage import DriveStorage, InMemoryStorage, ObjectStorage
from .store import TokenStore

__all__ = ["Services", "build_services", "build_storage"]


@dataclass
class Services:
    settings: Settings
    storage: ObjectStorage
    token_store: TokenStore
    tokens: TokenLifecycleManager
    folders: FolderResolver
    audit: AuditLogger
    workflow: OrderWorkflow
    intake: OrderIntake
    order_limiter: FixedWindowLimiter

    async def aclose(self) -> None:
        close = getattr(self.storage, "aclose", None)
        if close is not None:
            await close()


def build_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "memory":
        return InMemoryStorage()
    if settings.storage_backend == "drive":
        if not settings.drive_access_token:
            raise ConfigError("DRIVE_ACCESS_TOKEN is required for the drive backend")
        return DriveStorage(
            access_token=settings.drive_access_token,
            timeout=settings.drive_timeout,
            read_retries=settings.drive_read_retries,
        )
    raise ConfigError(f"unknown storage backend {settings.storage_backend!r}")


def build_services(
    settings: Settings,
    *,
    storage: ObjectStorage | None = None,
    token_store: TokenStore | None = None,
    clock: Clock = utc_now,
) -> Services:
    try:
        tz = ZoneInfo(settings.order_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown ORDER_TIMEZONE {settings.order_timezone!r}") from e

    storage = storage if storage is not None else build_storage(settings)
    token_store = token_store if token_store is not None else TokenStore(settings.tokens_file)
    tokens = TokenLifecycleManager(
        token_store, clock=clock, default_ttl_days=settings.token_ttl_days
    )
    folders = FolderResolver(
        storage,
        root_folder_id=settings.drive_root_folder_id,
        root_folder_name=settings.drive_root_folder_name,
    )
    audit = AuditLogger(storage, folders, clock=clock)
    workflow = OrderWorkflow(storage, folders, audit, clock=clock)
    intake = OrderIntake(
        tokens,
        folders,
        storage,
        workflow,
        clock=clock,
        timezone=tz,
        general_photos_field=settings.general_photos_field,
    )
    return Services(
        settings=settings,
        storage=storage,
        token_store=token_store,
        tokens=tokens,
        folders=folders,
        audit=audit,
        workflow=workflow,
        intake=intake,
        order_limiter=FixedWindowLimiter(
            settings.order_rate_limit,
            timedelta(minutes=settings.order_rate_window_minutes),
            clock=clock,
        ),
    )
