from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from order_intake.config import Settings
from order_intake.container import build_services
from order_intake.service import (
    AuditLogger,
    FolderResolver,
    OrderIntake,
    OrderWorkflow,
    TokenLifecycleManager,
)
from order_intake.storage import InMemoryStorage
from order_intake.store import TokenStore

ROOT_ID = "orders-root"


class FixedClock:
    """Manually advanced clock; every call returns the current fixed time."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 2, 2, 15, 34, tzinfo=UTC))


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(tmp_path / "customer-tokens.json")


@pytest.fixture
def tokens(token_store, clock):
    return TokenLifecycleManager(token_store, clock=clock)


@pytest.fixture
def folders(storage):
    return FolderResolver(storage, root_folder_id=ROOT_ID)


@pytest.fixture
def audit(storage, folders, clock):
    return AuditLogger(storage, folders, clock=clock)


@pytest.fixture
def workflow(storage, folders, audit, clock):
    return OrderWorkflow(storage, folders, audit, clock=clock)


@pytest.fixture
def intake(tokens, folders, storage, workflow, clock):
    return OrderIntake(tokens, folders, storage, workflow, clock=clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        tokens_file=tmp_path / "customer-tokens.json",
        storage_backend="memory",
        drive_root_folder_id=ROOT_ID,
        admin_username="admin",
        admin_password="s3cret",
        public_base_url="https://orders.example.com",
    )


@pytest.fixture
def services(settings, storage, clock):
    return build_services(settings, storage=storage, clock=clock)
