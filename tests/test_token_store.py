from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import pytest

from order_intake.domain.tokens import new_token_record
from order_intake.errors import StorageFailure
from order_intake.store import TokenStore

NOW = datetime(2026, 2, 2, 15, 34, tzinfo=UTC)


def test_missing_file_is_created_empty(tmp_path):
    path = tmp_path / "nested" / "tokens.json"
    store = TokenStore(path)

    assert asyncio.run(store.read_all()) == []
    assert json.loads(path.read_text(encoding="utf-8")) == {"tokens": []}


def test_replace_all_persists_camel_case_document(tmp_path):
    path = tmp_path / "tokens.json"
    record = new_token_record("Ayşe Yılmaz", now=NOW)

    asyncio.run(TokenStore(path).replace_all([record]))

    doc = json.loads(path.read_text(encoding="utf-8"))
    stored = doc["tokens"][0]
    assert stored["token"] == record.token
    assert stored["customerName"] == "Ayşe Yılmaz"
    assert set(stored) == {
        "token",
        "customerName",
        "createdAt",
        "expiresAt",
        "used",
        "usedAt",
        "orderId",
        "link",
        "whatsappMessage",
        "deleted",
        "deletedAt",
    }


def test_records_survive_a_new_store_instance(tmp_path):
    path = tmp_path / "tokens.json"
    first = new_token_record("A", now=NOW)
    second = new_token_record("B", now=NOW)
    asyncio.run(TokenStore(path).replace_all([first, second]))

    reloaded = asyncio.run(TokenStore(path).read_all())

    assert [r.token for r in reloaded] == [first.token, second.token]
    assert reloaded[0].expires_at == first.expires_at


def test_read_all_returns_copies(tmp_path):
    store = TokenStore(tmp_path / "tokens.json")

    async def scenario():
        await store.replace_all([new_token_record("A", now=NOW)])
        records = await store.read_all()
        records[0].used = True
        return await store.read_all()

    assert asyncio.run(scenario())[0].used is False


def test_unreadable_document_is_a_storage_failure(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageFailure):
        asyncio.run(TokenStore(path).read_all())


def test_in_memory_store_writes_nothing(tmp_path):
    store = TokenStore()

    async def scenario():
        await store.replace_all([new_token_record("A", now=NOW)])
        return await store.read_all()

    assert len(asyncio.run(scenario())) == 1
    assert store.path is None
    assert list(tmp_path.iterdir()) == []
