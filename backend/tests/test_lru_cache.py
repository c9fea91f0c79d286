"""
Tests for the in-process LRU map
"""

import threading

import pytest

from utils.lru import LRUCache


def test_get_set_and_stats():
    cache = LRUCache(3)
    cache.set("a", 1)
    assert cache.get("a") == 1
    assert cache.get("missing") is None
    assert cache.stats()["hits"] == 1
    assert cache.stats()["misses"] == 1


def test_evicts_least_recently_used():
    cache = LRUCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert cache.stats()["evictions"] == 1


def test_entries_expire(clock):
    cache = LRUCache(10, default_ttl_seconds=5, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl_seconds=60)

    clock.advance(5)
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert len(cache) == 1


def test_pop_and_clear():
    cache = LRUCache(10)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.pop("a") == 1
    assert cache.pop("a") is None
    cache.clear()
    assert len(cache) == 0


def test_rejects_zero_capacity():
    with pytest.raises(ValueError):
        LRUCache(0)


def test_concurrent_writers_respect_capacity():
    cache = LRUCache(50)

    def writer(offset):
        for i in range(500):
            cache.set(f"{offset}-{i}", i)
            cache.get(f"{offset}-{i // 2}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 50
