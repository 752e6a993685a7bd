"""Tests for the catalog cache: usage tracking, staleness and the namespace ceiling."""

import asyncio
import threading
import time

import pytest

from toolspace.catalog.cache import CatalogCache
from toolspace.catalog.models import Operation, OperationSpec


def make_ops(namespace, *names):
    return [Operation.from_spec(OperationSpec(name=n), namespace, namespace, now=0.0) for n in names]


class TestPutAndGet:
    def test_put_registers_qualified_names(self, cache):
        registered = cache.put("gmail", make_ops("gmail", "send_email", "search"))
        assert [op.name for op in registered] == ["gmail__send_email", "gmail__search"]
        assert cache.is_loaded("gmail")
        assert cache.get("gmail__send_email").original_name == "send_email"

    def test_put_does_not_count_as_usage(self, cache):
        cache.put("gmail", make_ops("gmail", "send_email"))
        assert cache.usage_count("gmail") == 0

    def test_get_and_list_record_usage(self, cache):
        cache.put("gmail", make_ops("gmail", "send_email"))
        cache.get("gmail__send_email")
        cache.list_namespace_operations("gmail")
        assert cache.usage_count("gmail") == 2

    def test_get_missing(self, cache):
        cache.put("gmail", make_ops("gmail", "send_email"))
        assert cache.get("gmail__nope") is None
        assert cache.get("slack__send") is None
        assert cache.usage_count("gmail") == 0

    def test_put_replaces_whole_namespace(self, cache):
        cache.put("gmail", make_ops("gmail", "a", "b"))
        cache.put("gmail", make_ops("gmail", "c"))
        assert cache.get("gmail__a") is None
        assert [op.name for op in cache.list_namespace_operations("gmail")] == ["gmail__c"]

    def test_lookup_namespace_distinguishes_absent_from_empty(self, cache):
        cache.put("empty", [])
        assert cache.lookup_namespace("empty") == ()
        assert cache.lookup_namespace("absent") is None
        assert cache.list_namespace_operations("absent") == ()

    def test_stats(self, cache):
        cache.put("gmail", make_ops("gmail", "a", "b"))
        cache.put("slack", make_ops("slack", "c"))
        cache.get("slack__c")
        assert cache.stats() == {
            "total_tools": 3,
            "total_namespaces": 2,
            "top_used_namespaces": ["slack"],
        }


class TestSweep:
    def test_stale_namespaces_are_evicted(self, cache, clock):
        cache.put("old", make_ops("old", "a"))
        clock.advance(200)
        cache.put("fresh", make_ops("fresh", "b"))
        clock.advance(150)

        assert cache.sweep() == ["old"]
        assert not cache.is_loaded("old")
        assert cache.is_loaded("fresh")

    def test_access_refreshes_staleness(self, cache, clock):
        cache.put("gmail", make_ops("gmail", "a"))
        clock.advance(250)
        cache.get("gmail__a")
        clock.advance(250)
        assert cache.sweep() == []

    def test_top_used_namespaces_are_pinned_against_staleness(self, clock):
        cache = CatalogCache(max_age=300, max_namespaces=20, pinned_top_k=1, clock=clock)
        cache.put("popular", make_ops("popular", "a"))
        cache.put("unused", make_ops("unused", "b"))
        for _ in range(3):
            cache.get("popular__a")
        clock.advance(1000)

        assert cache.sweep() == ["unused"]
        assert cache.is_loaded("popular")

    def test_namespaces_never_used_are_not_pinned(self, clock):
        cache = CatalogCache(max_age=300, max_namespaces=20, pinned_top_k=5, clock=clock)
        cache.put("a", make_ops("a", "x"))
        cache.put("b", make_ops("b", "y"))
        clock.advance(301)
        assert sorted(cache.sweep()) == ["a", "b"]

    def test_ceiling_evicts_least_recently_used_unpinned_first(self, clock):
        cache = CatalogCache(max_age=10_000, max_namespaces=2, pinned_top_k=1, clock=clock)
        cache.put("pinned", make_ops("pinned", "a"))
        cache.get("pinned__a")
        clock.advance(1)
        cache.put("older", make_ops("older", "b"))
        clock.advance(1)
        cache.put("newer", make_ops("newer", "c"))

        assert cache.sweep() == ["older"]
        assert sorted(cache.namespaces()) == ["newer", "pinned"]

    def test_ceiling_holds_even_when_pinned_exceed_it(self, clock):
        cache = CatalogCache(max_age=10_000, max_namespaces=1, pinned_top_k=3, clock=clock)
        for ns in ("a", "b", "c"):
            cache.put(ns, make_ops(ns, "op"))
            cache.get(f"{ns}__op")
            clock.advance(1)

        evicted = cache.sweep()
        assert evicted == ["a", "b"]
        assert cache.namespaces() == ["c"]

    def test_usage_survives_eviction(self, clock):
        cache = CatalogCache(max_age=300, max_namespaces=20, pinned_top_k=0, clock=clock)
        cache.put("gmail", make_ops("gmail", "a"))
        cache.get("gmail__a")
        clock.advance(301)

        assert cache.sweep() == ["gmail"]
        assert cache.usage_count("gmail") == 1
        assert cache.top_used(present_only=False) == ["gmail"]

    def test_clear_resets_usage(self, cache):
        cache.put("gmail", make_ops("gmail", "a"))
        cache.get("gmail__a")
        cache.clear()
        assert cache.namespaces() == []
        assert cache.usage_count("gmail") == 0

    def test_top_used_order(self, cache):
        for ns, hits in (("a", 1), ("b", 3), ("c", 3)):
            cache.put(ns, make_ops(ns, "op"))
            for _ in range(hits):
                cache.get(f"{ns}__op")
        assert cache.top_used(2) == ["b", "c"]


class TestConcurrentAccess:
    def test_readers_never_see_partial_namespaces_during_sweeps(self):
        cache = CatalogCache(max_age=0.001, max_namespaces=3, pinned_top_k=1)
        namespaces = [f"ns{i}" for i in range(6)]
        full = {ns: tuple(f"{ns}__{op}" for op in ("a", "b", "c")) for ns in namespaces}
        stop = threading.Event()
        violations: list[tuple[str, tuple[str, ...]]] = []

        def writer():
            while not stop.is_set():
                for ns in namespaces:
                    cache.put(ns, make_ops(ns, "a", "b", "c"))

        def reader():
            while not stop.is_set():
                for ns in namespaces:
                    names = tuple(op.name for op in cache.list_namespace_operations(ns))
                    if names not in ((), full[ns]):
                        violations.append((ns, names))
                    op = cache.get(f"{ns}__b")
                    if op is not None and op.namespace != ns:
                        violations.append((ns, (op.name,)))

        def sweeper():
            while not stop.is_set():
                cache.sweep()

        threads = [threading.Thread(target=writer), threading.Thread(target=sweeper)]
        threads += [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        time.sleep(0.3)
        stop.set()
        for t in threads:
            t.join()

        assert violations == []
        cache.sweep()
        assert len(cache.namespaces()) <= 3
        assert cache.stats()["total_tools"] == 3 * len(cache.namespaces())


class TestSweeper:
    @pytest.mark.asyncio
    async def test_background_sweeper_evicts_and_stops(self, clock):
        cache = CatalogCache(max_age=5, max_namespaces=20, pinned_top_k=0, clock=clock)
        cache.put("stale", make_ops("stale", "a"))
        clock.advance(10)

        task = cache.start_sweeper(0.01)
        assert cache.sweeper_running
        assert cache.start_sweeper(0.01) is task

        for _ in range(100):
            if not cache.is_loaded("stale"):
                break
            await asyncio.sleep(0.01)
        assert not cache.is_loaded("stale")

        await cache.stop_sweeper()
        assert not cache.sweeper_running
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, cache):
        await cache.stop_sweeper()
        assert not cache.sweeper_running
