"""Token lifecycle: issue, validate, consume exactly once, revoke."""
from __future__ import annotations

import asyncio
import json

import pytest

from order_intake.domain.tokens import ValidationReason
from order_intake.errors import (
    ConflictError,
    DeletedError,
    ExpiredError,
    InvalidError,
    NotFoundError,
)
from order_intake.service import TokenLifecycleManager
from order_intake.store import TokenStore


class TestCreateAndValidate:
    def test_fresh_token_is_valid_and_unused(self, tokens):
        async def scenario():
            token = await tokens.create("Ayşe Yılmaz")
            return token, await tokens.validate(token)

        token, result = asyncio.run(scenario())
        assert result.valid is True
        assert result.reason is None
        assert result.token_data.used is False
        assert result.token_data.customer_name == "Ayşe Yılmaz"

    def test_default_expiry_is_seven_days(self, tokens, clock):
        async def scenario():
            return await tokens.get(await tokens.create("A"))

        record = asyncio.run(scenario())
        assert (record.expires_at - record.created_at).days == 7
        assert record.created_at == clock.now

    def test_unknown_and_malformed_tokens_are_not_found(self, tokens):
        async def scenario():
            return (
                await tokens.validate("0" * 32),
                await tokens.validate("not a token"),
            )

        unknown, malformed = asyncio.run(scenario())
        assert unknown.reason is ValidationReason.not_found
        assert malformed.reason is ValidationReason.not_found
        assert unknown.token_data is None

    def test_expired_after_ttl(self, tokens, clock):
        async def scenario():
            token = await tokens.create("A", ttl_days=1)
            clock.advance(days=1, seconds=1)
            return await tokens.validate(token)

        result = asyncio.run(scenario())
        assert result.valid is False
        assert result.reason is ValidationReason.expired

    def test_blank_name_and_bad_ttl_are_rejected(self, tokens):
        with pytest.raises(InvalidError):
            asyncio.run(tokens.create("   "))
        with pytest.raises(InvalidError):
            asyncio.run(tokens.create("A", ttl_days=0))

    def test_link_and_invitation_are_stored(self, tokens):
        async def scenario():
            token = await tokens.create("Berat", link_base="https://orders.example.com/")
            return token, await tokens.get(token)

        token, record = asyncio.run(scenario())
        assert record.link == f"https://orders.example.com/o/{token}"
        assert record.link in record.whatsapp_message
        assert "Berat" in record.whatsapp_message


class TestConcreteScenario:
    def test_ayse_redeems_her_link_once(self, tokens):
        order_id = "20260202-1534_A7B9C2"

        async def scenario():
            token = await tokens.create("Ayşe Yılmaz")
            before = await tokens.validate(token)
            marked = await tokens.mark_used(token, order_id)
            after = await tokens.validate(token)
            return before, marked, after

        before, marked, after = asyncio.run(scenario())
        assert before.valid is True
        assert marked is True
        assert after.valid is False
        assert after.reason is ValidationReason.already_used
        assert after.token_data.order_id == order_id


class TestMarkUsed:
    def test_unknown_token_returns_false(self, tokens):
        assert asyncio.run(tokens.mark_used("f" * 32, "X")) is False

    def test_second_call_does_not_rebind(self, tokens):
        async def scenario():
            token = await tokens.create("A")
            first = await tokens.mark_used(token, "ORDER-A")
            second = await tokens.mark_used(token, "ORDER-B")
            return first, second, await tokens.get(token)

        first, second, record = asyncio.run(scenario())
        assert (first, second) == (True, False)
        assert record.order_id == "ORDER-A"
        assert record.used_at is not None

    def test_concurrent_calls_bind_exactly_one_order(self, tokens):
        async def scenario():
            token = await tokens.create("A")
            results = await asyncio.gather(
                tokens.mark_used(token, "ORDER-A"), tokens.mark_used(token, "ORDER-B")
            )
            return results, await tokens.get(token)

        results, record = asyncio.run(scenario())
        assert sorted(results) == [False, True]
        winner = "ORDER-A" if results[0] else "ORDER-B"
        assert record.order_id == winner

    def test_concurrent_mutations_lose_no_update(self, tokens, token_store):
        async def scenario():
            created = await asyncio.gather(*(tokens.create(f"Customer {i}") for i in range(10)))
            await asyncio.gather(
                *(tokens.mark_used(t, f"ORDER-{i}") for i, t in enumerate(created[:5])),
                *(tokens.delete(t) for t in created[5:]),
            )
            return created

        created = asyncio.run(scenario())
        doc = json.loads(token_store.path.read_text(encoding="utf-8"))
        by_token = {t["token"]: t for t in doc["tokens"]}
        assert len(by_token) == 10
        assert all(by_token[t]["used"] for t in created[:5])
        assert all(by_token[t]["deleted"] for t in created[5:])


class TestConsume:
    def test_consume_binds_order(self, tokens):
        async def scenario():
            token = await tokens.create("A")
            return await tokens.consume(token, "ORDER-1")

        record = asyncio.run(scenario())
        assert record.used is True
        assert record.order_id == "ORDER-1"

    @pytest.mark.parametrize(
        "prepare, error",
        [
            ("unknown", NotFoundError),
            ("deleted", DeletedError),
            ("used", ConflictError),
            ("expired", ExpiredError),
        ],
    )
    def test_consume_rejects(self, tokens, clock, prepare, error):
        async def scenario():
            token = await tokens.create("A", ttl_days=1)
            if prepare == "unknown":
                token = "e" * 32
            elif prepare == "deleted":
                await tokens.delete(token)
            elif prepare == "used":
                await tokens.consume(token, "FIRST")
            elif prepare == "expired":
                clock.advance(days=2)
            await tokens.consume(token, "SECOND")

        with pytest.raises(error):
            asyncio.run(scenario())

    def test_concurrent_consume_has_one_winner(self, tokens):
        async def scenario():
            token = await tokens.create("A")
            return await asyncio.gather(
                *(tokens.consume(token, f"ORDER-{i}") for i in range(5)),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, ConflictError) for r in results if isinstance(r, Exception))


class TestDelete:
    def test_delete_wins_over_every_other_state(self, tokens, clock):
        async def scenario():
            plain = await tokens.create("A")
            used = await tokens.create("B")
            expired = await tokens.create("C", ttl_days=1)
            await tokens.mark_used(used, "ORDER")
            for t in (plain, used, expired):
                await tokens.delete(t)
            clock.advance(days=3)
            return [await tokens.validate(t) for t in (plain, used, expired)]

        results = asyncio.run(scenario())
        assert [r.reason for r in results] == [ValidationReason.deleted] * 3
        # used and deleted flags are both kept
        assert results[1].token_data.used is True
        assert results[1].token_data.order_id == "ORDER"

    def test_delete_is_idempotent(self, tokens, clock):
        async def scenario():
            token = await tokens.create("A")
            first = await tokens.delete(token)
            deleted_at = (await tokens.get(token)).deleted_at
            clock.advance(hours=1)
            second = await tokens.delete(token)
            return first, second, deleted_at, (await tokens.get(token)).deleted_at

        first, second, deleted_at, deleted_at_again = asyncio.run(scenario())
        assert first is True and second is True
        assert deleted_at_again == deleted_at

    def test_unknown_token_returns_false(self, tokens):
        assert asyncio.run(tokens.delete("a" * 32)) is False


def test_get_all_lists_everything_in_creation_order(tmp_path, clock):
    manager = TokenLifecycleManager(TokenStore(tmp_path / "t.json"), clock=clock)

    async def scenario():
        a = await manager.create("A")
        b = await manager.create("B")
        await manager.delete(a)
        return a, b, await manager.get_all()

    a, b, records = asyncio.run(scenario())
    assert [r.token for r in records] == [a, b]
    assert records[0].deleted is True


def test_timestamps_without_offset_are_read_as_utc(tmp_path, clock):
    path = tmp_path / "t.json"
    records = [
        {
            "token": "a" * 32,
            "customerName": "A",
            "createdAt": "2026-02-01T00:00:00",
            "expiresAt": "2026-03-01T00:00:00",
            "used": False,
        },
        {
            "token": "b" * 32,
            "customerName": "B",
            "createdAt": "2026-01-01T00:00:00",
            "expiresAt": "2026-01-08T00:00:00",
            "used": False,
        },
    ]
    path.write_text(json.dumps({"tokens": records}), encoding="utf-8")
    manager = TokenLifecycleManager(TokenStore(path), clock=clock)

    async def scenario():
        return await manager.validate("a" * 32), await manager.validate("b" * 32)

    fresh, stale = asyncio.run(scenario())
    assert fresh.valid is True
    assert fresh.token_data.expires_at.utcoffset().total_seconds() == 0
    assert stale.reason is ValidationReason.expired
