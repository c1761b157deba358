"""
Unit tests for the in-process cache store.
"""

import threading

import pytest

from service_booking.app.caching.store import CacheStore, NO_EXPIRY


class TestCacheStoreBasics:
    """get/set/delete/has semantics."""

    def test_set_then_get_before_expiry(self, store, clock):
        assert store.set("doctors:list", ["A", "B"], ttl=60) is True
        clock.advance(59)

        assert store.get("doctors:list") == ["A", "B"]

    def test_get_after_ttl_is_absent_without_sweep(self, store, clock):
        store.set("k", "v", ttl=10)
        clock.advance(10)

        assert store.get("k") is None
        assert store.stats().key_count == 0

    def test_get_returns_default_on_miss(self, store):
        assert store.get("missing", default="fallback") == "fallback"

    def test_set_overwrites_value_and_resets_expiry(self, store, clock):
        store.set("k", "old", ttl=10)
        clock.advance(8)
        store.set("k", "new", ttl=10)
        clock.advance(8)

        assert store.get("k") == "new"
        assert store.stats().key_count == 1

    def test_default_ttl_applies_when_none(self, store, clock):
        store.set("k", "v")
        clock.advance(299)
        assert store.has("k")

        clock.advance(1)
        assert not store.has("k")

    def test_zero_ttl_never_expires(self, store, clock):
        store.set("k", "v", ttl=NO_EXPIRY)
        clock.advance(10 ** 9)

        assert store.get("k") == "v"
        assert store.sweep() == 0

    @pytest.mark.parametrize("ttl", [-1, "60", True])
    def test_invalid_ttl_is_rejected_without_raising(self, store, ttl):
        assert store.set("k", "v", ttl=ttl) is False
        assert store.get("k") is None

    def test_invalid_default_ttl_raises(self, clock):
        with pytest.raises(ValueError):
            CacheStore(default_ttl=-5, clock=clock)

    def test_delete_is_idempotent(self, store):
        store.set("k", "v")

        assert store.delete("k") == 1
        assert store.delete("k") == 0
        assert store.get("k") is None

    def test_delete_removes_regardless_of_ttl(self, store):
        store.set("forever", "v", ttl=NO_EXPIRY)
        store.delete("forever")

        assert store.get("forever") is None

    def test_has_uses_freshness_without_counting(self, store, clock):
        store.set("k", "v", ttl=5)
        assert store.has("k") is True

        clock.advance(5)
        assert store.has("k") is False

        stats = store.stats()
        assert stats.hits == 0
        assert stats.misses == 0

    def test_flush_clears_everything(self, store):
        store.set("a", 1)
        store.set("b", 2, ttl=NO_EXPIRY)
        store.flush()

        assert store.keys() == []
        assert store.stats().key_count == 0


class TestCacheStoreBulkAndIntrospection:
    """Multi-key operations, prefix deletes and stats."""

    def test_get_many_returns_only_live_entries(self, store, clock):
        store.set("a", 1, ttl=5)
        store.set("b", 2, ttl=50)
        clock.advance(10)

        assert store.get_many(["a", "b", "c"]) == {"b": 2}
        stats = store.stats()
        assert stats.hits == 1
        assert stats.misses == 2

    def test_set_many_shares_ttl(self, store, clock):
        assert store.set_many({"a": 1, "b": 2}, ttl=30) is True
        clock.advance(30)

        assert store.get_many(["a", "b"]) == {}

    def test_set_many_rejects_invalid_ttl(self, store):
        assert store.set_many({"a": 1}, ttl=-1) is False
        assert store.stats().key_count == 0

    def test_keys_and_size_hide_expired_entries(self, store, clock):
        store.set("short", 1, ttl=5)
        store.set("long", 2, ttl=500)
        clock.advance(6)

        assert store.keys() == ["long"]
        assert store.size() == 1
        # Not yet physically removed
        assert store.stats().key_count == 2

    def test_delete_prefix(self, store):
        store.set("cache:/api/v1/doctors", 1)
        store.set("cache:/api/v1/doctors/doc-1", 2)
        store.set("cache:/api/v1/appointments", 3)

        assert store.delete_prefix("cache:/api/v1/doctors") == 2
        assert store.keys() == ["cache:/api/v1/appointments"]

    def test_stats_counts_hits_misses_sets_and_deletes(self, store):
        store.set("k", "v")
        store.get("k")
        store.get("k")
        store.get("nope")
        store.delete("k")

        assert store.stats().to_dict() == {
            "hits": 2,
            "misses": 1,
            "key_count": 0,
            "sets": 1,
            "deletes": 1,
            "expired": 0,
        }


class TestCacheStoreExpiry:
    """TTL differentiation and proactive sweeping."""

    def test_detail_and_list_ttls_expire_independently(self, store, clock):
        store.set("cache:/api/v1/doctors/doc-1", "detail", ttl=300)
        store.set("cache:/api/v1/doctors", "list", ttl=600)

        clock.advance(301)
        assert store.get("cache:/api/v1/doctors/doc-1") is None
        assert store.get("cache:/api/v1/doctors") == "list"

        clock.advance(300)
        assert store.get("cache:/api/v1/doctors") is None

    def test_sweep_evicts_expired_without_reads(self, store, clock):
        for key in ("a", "b", "c"):
            store.set(key, key, ttl=1)
        store.set("keep", "v", ttl=1000)
        clock.advance(601)

        assert store.sweep() == 3
        stats = store.stats()
        assert stats.key_count == 1
        assert stats.expired == 3
        assert stats.hits == 0 and stats.misses == 0

    def test_sweep_keeps_entries_refreshed_after_snapshot(self, clock):
        store = CacheStore(default_ttl=10, clock=clock)
        store.set("k", "old", ttl=1)
        clock.advance(2)

        real_clock = store.clock
        refreshed = []

        def clock_that_refreshes():
            # First call inside the sweep batch: another request re-populates the key
            if not refreshed:
                refreshed.append(True)
                store.set("k", "new", ttl=100)
            return real_clock()

        store.clock = clock_that_refreshes
        assert store.sweep() == 0
        store.clock = real_clock
        assert store.get("k") == "new"

    def test_sweep_handles_more_than_one_batch(self, store, clock):
        store.set_many({f"key-{i}": i for i in range(600)}, ttl=1)
        clock.advance(2)

        assert store.sweep() == 600
        assert store.stats().key_count == 0


class TestCacheStoreConcurrency:
    """Concurrent writers never corrupt an entry."""

    def test_concurrent_sets_resolve_to_one_writer(self, store):
        values = [f"value-{i}" for i in range(32)]
        barrier = threading.Barrier(len(values))

        def writer(value):
            barrier.wait()
            for _ in range(200):
                store.set("shared", value, ttl=60)

        threads = [threading.Thread(target=writer, args=(value,)) for value in values]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("shared") in values
        assert store.stats().key_count == 1

    def test_concurrent_readers_writers_and_sweeps(self, store, clock):
        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                value = store.get("hot")
                if value is not None and not value.startswith("v"):
                    errors.append(value)

        def writer():
            for i in range(2000):
                store.set("hot", f"v{i}", ttl=1)
                store.set(f"cold-{i}", "x", ttl=1)

        def sweeper():
            while not stop.is_set():
                store.sweep()

        readers = [threading.Thread(target=reader) for _ in range(4)]
        background = readers + [threading.Thread(target=sweeper)]
        for thread in background:
            thread.start()
        writer()
        stop.set()
        for thread in background:
            thread.join()

        assert errors == []
        clock.advance(2)
        store.sweep()
        assert store.stats().key_count == 0
