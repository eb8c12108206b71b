from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import Any

import httpx

from runner.logging_conf import get_logger
from runner.types import FixtureUpload, RequestError, SmokeError, UnexpectedResponse

logger = get_logger("runner.client")


class OrderIntakeClient:
    """Thin async client for the order-intake HTTP API.

    Transport errors and 5xx answers are retried ``retries`` times with a
    linear backoff; anything below 500 is returned to the caller, who decides
    whether it is the expected outcome.
    """

    def __init__(
        self,
        base_url: str,
        *,
        admin_auth: tuple[str, str],
        timeout: float = 10.0,
        retries: int = 2,
        backoff_s: float = 0.25,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._auth = httpx.BasicAuth(*admin_auth)
        self._retries = retries
        self._backoff_s = backoff_s

    async def __aenter__(self) -> OrderIntakeClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        admin: bool = False,
        retries: int | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        attempts = 1 + (self._retries if retries is None else retries)
        last_err = "no attempt made"
        for attempt in range(1, attempts + 1):
            try:
                r = await self._client.request(
                    method, url, auth=self._auth if admin else None, **kwargs
                )
            except httpx.TransportError as e:
                last_err = str(e) or type(e).__name__
            else:
                if r.status_code < 500:
                    return r
                last_err = f"HTTP {r.status_code}: {r.text[:200]}"
            if attempt < attempts:
                logger.warning(
                    "request.retry",
                    extra={
                        "event": "request_retry",
                        "method": method,
                        "url": url,
                        "attempt": attempt,
                        "error": last_err,
                    },
                )
                await asyncio.sleep(self._backoff_s * attempt)
        raise RequestError(f"{method} {url} failed after {attempts} attempts: {last_err}")

    @staticmethod
    def expect(r: httpx.Response, *codes: int) -> Any:
        if r.status_code not in codes:
            raise UnexpectedResponse(r.request.method, str(r.request.url), r.status_code, r.text)
        return r.json() if r.content else None

    async def wait_for_health(self, timeout_s: float = 20.0) -> None:
        """Ping /health until it returns ok or raise after a timeout."""
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            try:
                r = await self._client.get("/health")
                if r.status_code == 200 and r.json().get("ok") is True:
                    logger.info("health.ok", extra={"event": "health_ok"})
                    return
            except (httpx.TransportError, ValueError):
                pass
            await asyncio.sleep(0.25)
        raise SmokeError("Health check did not pass within timeout")

    async def create_token(self, customer_name: str, ttl_days: int | None = None) -> dict:
        payload: dict[str, Any] = {"customer_name": customer_name}
        if ttl_days is not None:
            payload["ttl_days"] = ttl_days
        r = await self._request("POST", "/admin/tokens", admin=True, json=payload)
        return self.expect(r, 201)

    async def check_token(self, token: str) -> dict:
        return self.expect(await self._request("GET", f"/api/tokens/{token}"), 200)

    async def submit_order(
        self,
        customer_name: str,
        *,
        token: str | None = None,
        fields: dict[str, str] | None = None,
        uploads: Iterable[FixtureUpload] = (),
    ) -> httpx.Response:
        """Post the order form and return the raw response.

        Never retried: a submit whose answer was lost may already have
        consumed the token.
        """
        data = {"customer_name": customer_name, **(fields or {})}
        if token:
            data["token"] = token
        files = [
            (u.field_name, (u.path.name, u.path.read_bytes(), u.content_type)) for u in uploads
        ]
        return await self._request("POST", "/api/orders", retries=0, data=data, files=files)

    async def set_status(self, order_id: str, status: str, note: str | None = None) -> dict:
        r = await self._request(
            "POST",
            f"/admin/orders/{order_id}/status",
            admin=True,
            json={"status": status, "note": note},
        )
        return self.expect(r, 200)

    async def history(self, order_id: str) -> list[dict]:
        r = await self._request("GET", f"/admin/orders/{order_id}/history", admin=True)
        return self.expect(r, 200)

    async def bulk_status(self, order_ids: list[str], status: str) -> dict:
        r = await self._request(
            "POST",
            "/admin/orders/bulk-status",
            admin=True,
            json={"order_ids": order_ids, "status": status},
        )
        return self.expect(r, 200)
