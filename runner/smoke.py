#!/usr/bin/env python3
"""High-level smoke runner orchestrating the end-to-end flow.

Steps:
- wait for server health
- issue a token and check it is valid
- submit an order with that token and the fixture images
- resubmit with the same token and expect a conflict
- walk the order through every status, then read its history
- bulk-update the order plus an unknown id and expect one failure
- emit a compact summary and exit code
"""
from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from runner.cli import parse_args
from runner.client import OrderIntakeClient
from runner.logging_conf import get_logger, setup_logging
from runner.types import CheckFailed, FixtureUpload, SmokeError, StepResult, UnexpectedResponse
from runner.utils import collect_fixture_uploads, summarize

logger = get_logger("runner")

STATUS_PIPELINE = ("psd_done", "preview_sent", "approved", "print_done")
UNKNOWN_ORDER_ID = "19700101-0000_NOPE00"


def _check(condition: bool, message: str) -> None:
    if not condition:
        raise CheckFailed(message)


class SmokeFlow:
    """One pass over the API; each step reads what earlier steps stored on ``self``."""

    def __init__(
        self,
        client: OrderIntakeClient,
        uploads: list[FixtureUpload],
        *,
        customer_name: str = "Smoke Test Müşteri",
        health_timeout_s: float = 30.0,
    ) -> None:
        self.client = client
        self.uploads = uploads
        self.customer_name = customer_name
        self.health_timeout_s = health_timeout_s
        self.token: str | None = None
        self.order_id: str | None = None

    def steps(self) -> list[tuple[str, Callable[[], Awaitable[None]]]]:
        return [
            ("health", self.health),
            ("issue_token", self.issue_token),
            ("check_token", self.check_token),
            ("submit_order", self.submit_order),
            ("reuse_rejected", self.reuse_rejected),
            ("status_walk", self.status_walk),
            ("history", self.history),
            ("bulk_status", self.bulk_status),
        ]

    async def health(self) -> None:
        await self.client.wait_for_health(self.health_timeout_s)

    async def issue_token(self) -> None:
        data = await self.client.create_token(self.customer_name)
        self.token = data["token"]
        link = data.get("link") or ""
        _check(self.token in link, f"link {link!r} does not carry the token")

    async def check_token(self) -> None:
        data = await self.client.check_token(self.token)
        _check(data["valid"] is True, f"fresh token reported invalid: {data.get('reason')}")
        _check(data["customer_name"] == self.customer_name, "customer name mismatch")

    async def submit_order(self) -> None:
        r = await self.client.submit_order(
            self.customer_name,
            token=self.token,
            fields={"phone": "5550000000", "notes": "smoke run"},
            uploads=self.uploads,
        )
        data = OrderIntakeClient.expect(r, 201)
        self.order_id = data["order_id"]
        logger.info("order.created", extra={"event": "order_created", "order_id": self.order_id})

    async def reuse_rejected(self) -> None:
        r = await self.client.submit_order(self.customer_name, token=self.token)
        _check(r.status_code == 409, f"reused token answered {r.status_code}, expected 409")
        data = await self.client.check_token(self.token)
        _check(data["reason"] == "already_used", f"token reason is {data['reason']}")
        _check(data["order_id"] == self.order_id, "token is bound to a different order")

    async def status_walk(self) -> None:
        previous = "submitted"
        for status in STATUS_PIPELINE:
            change = await self.client.set_status(self.order_id, status, note=f"smoke: {status}")
            _check(
                (change["old_status"], change["new_status"]) == (previous, status),
                f"unexpected transition {change['old_status']} -> {change['new_status']}",
            )
            previous = status

    async def history(self) -> None:
        entries = await self.client.history(self.order_id)
        _check(
            [e["new_status"] for e in entries] == list(STATUS_PIPELINE),
            f"history has {len(entries)} entries, expected {len(STATUS_PIPELINE)}",
        )

    async def bulk_status(self) -> None:
        data = await self.client.bulk_status([self.order_id, UNKNOWN_ORDER_ID], "approved")
        _check([u["order_id"] for u in data["updated"]] == [self.order_id], "order not updated")
        _check(
            [(f["order_id"], f["error_code"]) for f in data["failed"]]
            == [(UNKNOWN_ORDER_ID, "not_found")],
            f"unexpected bulk failures: {data['failed']}",
        )


async def _run_steps(flow: SmokeFlow) -> list[StepResult]:
    results: list[StepResult] = []
    for name, step in flow.steps():
        started = time.perf_counter()
        try:
            await step()
        except (SmokeError, httpx.HTTPError, KeyError) as e:
            elapsed = (time.perf_counter() - started) * 1000.0
            results.append(StepResult(name, False, elapsed, f"{type(e).__name__}: {e}"))
            logger.error(
                "step.failed",
                extra={
                    "event": "step_failed",
                    "step": name,
                    "status_code": e.status_code if isinstance(e, UnexpectedResponse) else None,
                    "error": str(e),
                },
            )
            # later steps depend on this one
            break
        elapsed = (time.perf_counter() - started) * 1000.0
        results.append(StepResult(name, True, elapsed))
        logger.info(
            "step.ok", extra={"event": "step_ok", "step": name, "elapsed_ms": round(elapsed, 2)}
        )
    return results


async def run_smoke(
    *,
    base_url: str,
    admin_auth: tuple[str, str],
    fixtures_dir: Path,
    special_field: str = "01_Portrait",
    general_field: str = "12_Genel_Photos",
    timeout_s: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[dict, int]:
    uploads = collect_fixture_uploads(
        fixtures_dir, special_field=special_field, general_field=general_field
    )
    async with OrderIntakeClient(base_url, admin_auth=admin_auth, transport=transport) as client:
        flow = SmokeFlow(client, uploads, health_timeout_s=timeout_s)
        results = await _run_steps(flow)
    summary, exit_code = summarize(results, expected_steps=len(flow.steps()))
    summary["order_id"] = flow.order_id
    logger.info("runner.summary", extra=summary)
    return summary, exit_code


def main(argv: list[str] | None = None) -> None:
    setup_logging()
    args = parse_args(argv or sys.argv[1:])
    _, code = asyncio.run(
        run_smoke(
            base_url=args.base_url,
            admin_auth=(args.admin_user, args.admin_password),
            fixtures_dir=Path(args.fixtures),
            special_field=args.special_field,
            general_field=args.general_field,
            timeout_s=args.timeout,
        )
    )
    raise SystemExit(code)


if __name__ == "__main__":
    main()
