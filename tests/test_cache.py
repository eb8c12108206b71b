from __future__ import annotations

import pytest

from order_intake.service.cache import LruCache


def test_least_recently_used_entry_is_evicted():
    cache: LruCache[str, int] = LruCache(2)
    cache["a"] = 1
    cache["b"] = 2
    assert cache.get("a") == 1
    cache["c"] = 3

    assert "b" not in cache
    assert cache.get("a") == 1
    assert len(cache) == 2


def test_size_must_be_positive():
    with pytest.raises(ValueError):
        LruCache(0)
