from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from order_intake.container import build_services
from order_intake.main import create_app

ADMIN = ("admin", "s3cret")


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as c:
        yield c


def _create_token(client, name="Ayşe Yılmaz", **extra) -> dict:
    r = client.post("/admin/tokens", json={"customer_name": name, **extra}, auth=ADMIN)
    assert r.status_code == 201, r.text
    return r.json()


def _submit(client, token=None, name="Ayşe Yılmaz", files=None, **fields):
    data = {"customer_name": name, **fields}
    if token:
        data["token"] = token
    return client.post("/api/orders", data=data, files=files or [])


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert r.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"


class TestAdminAuth:
    def test_missing_credentials(self, client):
        assert client.get("/admin/tokens").status_code == 401

    def test_wrong_password(self, client):
        r = client.get("/admin/tokens", auth=("admin", "nope"))
        assert r.status_code == 401
        assert r.headers["WWW-Authenticate"].startswith("Basic")
        assert r.json()["detail"]["error_code"] == "unauthorized"

    def test_public_routes_need_no_credentials(self, client):
        assert client.get(f"/api/tokens/{'0' * 32}").status_code == 200


class TestTokens:
    def test_create_returns_link_and_message(self, client):
        body = _create_token(client)
        assert len(body["token"]) == 32
        assert body["link"] == f"https://orders.example.com/o/{body['token']}"
        assert "Ayşe Yılmaz" in body["whatsapp_message"]

    def test_list_uses_stored_camel_case_shape(self, client):
        created = _create_token(client)
        r = client.get("/admin/tokens", auth=ADMIN)
        assert r.status_code == 200
        [token] = r.json()["tokens"]
        assert token["token"] == created["token"]
        assert token["customerName"] == "Ayşe Yılmaz"
        assert token["used"] is False

    def test_blank_name_is_rejected(self, client):
        r = client.post("/admin/tokens", json={"customer_name": "  "}, auth=ADMIN)
        assert r.status_code == 400
        assert r.json()["detail"]["error_code"] == "invalid"

    def test_check_fresh_token(self, client):
        created = _create_token(client)
        body = client.get(f"/api/tokens/{created['token']}").json()
        assert body == {
            "valid": True,
            "reason": None,
            "customer_name": "Ayşe Yılmaz",
            "order_id": None,
        }

    def test_check_unknown_and_malformed(self, client):
        assert client.get(f"/api/tokens/{'0' * 32}").json()["reason"] == "not_found"
        assert client.get("/api/tokens/short").json()["reason"] == "not_found"

    def test_delete_is_idempotent_and_wins(self, client):
        token = _create_token(client)["token"]
        assert client.delete(f"/admin/tokens/{token}", auth=ADMIN).status_code == 204
        assert client.delete(f"/admin/tokens/{token}", auth=ADMIN).status_code == 204
        body = client.get(f"/api/tokens/{token}").json()
        assert body["valid"] is False
        assert body["reason"] == "deleted"

    def test_delete_unknown_token(self, client):
        r = client.delete(f"/admin/tokens/{'a' * 32}", auth=ADMIN)
        assert r.status_code == 404
        assert r.json()["detail"]["error_code"] == "not_found"


class TestSubmitOrder:
    def test_submit_with_token(self, client, storage):
        token = _create_token(client)["token"]
        files = [
            ("01_Portrait", ("me.jpg", b"\xff\xd8jpeg", "image/jpeg")),
            ("12_Genel_Photos", ("beach.png", b"\x89PNG", "image/png")),
        ]

        r = _submit(client, token=token, files=files, phone="555")

        assert r.status_code == 201, r.text
        order_id = r.json()["order_id"]
        assert order_id in r.json()["message"]
        check = client.get(f"/api/tokens/{token}").json()
        assert check["reason"] == "already_used"
        assert check["order_id"] == order_id
        assert storage.calls["create_file"] == 4  # two uploads, order.json, details.txt

    def test_reused_token_is_a_conflict(self, client):
        token = _create_token(client)["token"]
        assert _submit(client, token=token).status_code == 201

        r = _submit(client, token=token)

        assert r.status_code == 409
        assert r.json()["detail"]["error_code"] == "conflict"

    def test_deleted_and_expired_tokens_are_gone(self, client, clock):
        deleted = _create_token(client)["token"]
        expired = _create_token(client, ttl_days=1)["token"]
        client.delete(f"/admin/tokens/{deleted}", auth=ADMIN)
        clock.advance(days=2)

        assert _submit(client, token=deleted).json()["detail"]["error_code"] == "deleted"
        r = _submit(client, token=expired)
        assert r.status_code == 410
        assert r.json()["detail"]["error_code"] == "expired"

    def test_non_image_upload_is_rejected(self, client, storage):
        files = [("01_Portrait", ("notes.txt", b"hello", "text/plain"))]
        r = _submit(client, files=files)
        assert r.status_code == 400
        assert storage.calls["create_folder"] == 0

    def test_oversized_upload_is_rejected(self, settings, storage, clock):
        small = build_services(
            replace(settings, max_upload_bytes=1024), storage=storage, clock=clock
        )
        files = [("01_Portrait", ("big.jpg", b"x" * 1025, "image/jpeg"))]
        with TestClient(create_app(services=small)) as client:
            r = _submit(client, files=files)
        assert r.status_code == 400
        assert "exceeds" in r.json()["detail"]["error_message"]

    def test_total_upload_size_is_capped(self, settings, storage, clock):
        capped = build_services(
            replace(settings, max_upload_bytes=1024, max_request_bytes=1500),
            storage=storage,
            clock=clock,
        )
        files = [
            ("01_Portrait", ("a.jpg", b"x" * 1000, "image/jpeg")),
            ("12_Genel_Photos", ("b.jpg", b"x" * 1000, "image/jpeg")),
        ]
        with TestClient(create_app(services=capped)) as client:
            r = _submit(client, files=files)
        assert r.status_code == 400
        assert "in total" in r.json()["detail"]["error_message"]
        assert storage.calls["create_folder"] == 0

    def test_blank_customer_name(self, client):
        r = _submit(client, name=" ")
        assert r.status_code == 400


class TestSubmitRateLimit:
    def test_sixth_submit_in_window_is_rejected(self, client, storage):
        for _ in range(5):
            assert _submit(client).status_code == 201

        r = _submit(client)

        assert r.status_code == 429
        assert r.json()["detail"]["error_code"] == "rate_limited"
        assert int(r.headers["Retry-After"]) == 15 * 60
        assert storage.calls["create_file"] == 5 * 2  # order.json and details.txt per order

    def test_window_reopens(self, client, clock):
        for _ in range(5):
            _submit(client)
        clock.advance(minutes=15)
        assert _submit(client).status_code == 201

    def test_rejected_submits_still_count(self, client):
        for _ in range(5):
            assert _submit(client, name=" ").status_code == 400
        assert _submit(client).status_code == 429

    def test_zero_disables_the_limit(self, settings, storage, clock):
        unlimited = build_services(
            replace(settings, order_rate_limit=0), storage=storage, clock=clock
        )
        with TestClient(create_app(services=unlimited)) as client:
            assert all(_submit(client).status_code == 201 for _ in range(7))


class TestOrderAdmin:
    def _order(self, client) -> str:
        r = _submit(client, phone="555")
        assert r.status_code == 201, r.text
        return r.json()["order_id"]

    def test_list_orders(self, client):
        order_id = self._order(client)
        r = client.get("/admin/orders", auth=ADMIN)
        assert r.status_code == 200
        [item] = r.json()["items"]
        assert item["order_id"] == order_id
        assert item["status"] == "submitted"
        assert item["fields"] == {"phone": "555"}

    def test_set_status_and_history(self, client):
        order_id = self._order(client)

        r = client.post(
            f"/admin/orders/{order_id}/status",
            json={"status": "psd_done", "note": "layers merged"},
            auth=ADMIN,
        )

        assert r.status_code == 200, r.text
        assert r.json() == {
            "order_id": order_id,
            "old_status": "submitted",
            "new_status": "psd_done",
        }
        history = client.get(f"/admin/orders/{order_id}/history", auth=ADMIN).json()
        assert [(h["old_status"], h["new_status"], h["note"]) for h in history] == [
            ("submitted", "psd_done", "layers merged")
        ]

    def test_unknown_status_is_invalid(self, client):
        order_id = self._order(client)
        r = client.post(f"/admin/orders/{order_id}/status", json={"status": "lost"}, auth=ADMIN)
        assert r.status_code == 400

    def test_unknown_order_is_not_found(self, client):
        r = client.post(
            "/admin/orders/20260202-1534_NOPE00/status", json={"status": "approved"}, auth=ADMIN
        )
        assert r.status_code == 404

    def test_bulk_status_reports_partial_success(self, client):
        a = self._order(client)
        c = self._order(client)
        missing = "20260202-1534_NOPE00"

        r = client.post(
            "/admin/orders/bulk-status",
            json={"order_ids": [a, missing, c], "status": "approved"},
            auth=ADMIN,
        )

        assert r.status_code == 200
        body = r.json()
        assert [u["order_id"] for u in body["updated"]] == [a, c]
        assert body["failed"] == [
            {
                "order_id": missing,
                "error_code": "not_found",
                "error_message": f"Order {missing} not found",
            }
        ]

    def test_storage_failure_maps_to_bad_gateway(self, client, storage):
        order_id = self._order(client)
        storage.fail_next("update_file")
        r = client.post(f"/admin/orders/{order_id}/status", json={"status": "approved"}, auth=ADMIN)
        assert r.status_code == 502
        assert r.json()["detail"]["error_code"] == "storage_failure"


def test_shutdown_closes_storage(services):
    closed = []

    async def aclose():
        closed.append(True)

    services.storage.aclose = aclose
    with TestClient(create_app(services=services)):
        pass
    assert closed == [True]
    # services remain usable for inspection after shutdown
    assert asyncio.run(services.tokens.get_all()) == []
