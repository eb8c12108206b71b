from __future__ import annotations

from datetime import timedelta

import pytest

from order_intake.errors import RateLimitedError
from order_intake.service import FixedWindowLimiter


def test_clients_are_counted_separately(clock):
    limiter = FixedWindowLimiter(2, timedelta(minutes=15), clock=clock)
    limiter.hit("10.0.0.1")
    limiter.hit("10.0.0.1")
    limiter.hit("10.0.0.2")

    with pytest.raises(RateLimitedError) as info:
        limiter.hit("10.0.0.1")
    assert info.value.retry_after == 15 * 60


def test_retry_after_counts_down_from_first_hit(clock):
    limiter = FixedWindowLimiter(1, timedelta(minutes=15), clock=clock)
    limiter.hit("a")
    clock.advance(minutes=10)

    with pytest.raises(RateLimitedError) as info:
        limiter.hit("a")
    assert info.value.retry_after == 5 * 60


def test_ended_windows_are_forgotten(clock):
    limiter = FixedWindowLimiter(1, timedelta(minutes=1), clock=clock)
    for key in ("a", "b", "c"):
        limiter.hit(key)
    clock.advance(minutes=1)
    limiter.hit("d")

    assert list(limiter._windows) == ["d"]
