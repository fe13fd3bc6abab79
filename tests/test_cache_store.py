from __future__ import annotations

from datetime import timedelta

import pytest

from recordsync.sync.cache_store import CacheStore
from sync_fakes import FakeClock


def test_entry_valid_until_ttl_elapses():
    clock = FakeClock()
    store = CacheStore(clock, default_ttl=timedelta(seconds=60))
    entry = store.set("all", [{"id": "1"}])

    clock.advance(59)
    assert store.is_valid(entry) is True

    clock.advance(1)
    assert store.is_valid(entry) is False
    assert store.is_stale(entry) is False


def test_expired_entry_without_swr_is_evicted_on_access():
    clock = FakeClock()
    store = CacheStore(clock, default_ttl=timedelta(seconds=10))
    store.set("eq-1", {"id": "eq-1"})

    clock.advance(11)

    assert store.evict_if_expired("eq-1") is None
    assert store.get("eq-1") is None
    assert store.keys() == []


def test_stale_entry_is_kept_and_reported_stale():
    clock = FakeClock()
    store = CacheStore(clock, default_ttl=timedelta(seconds=10), stale_while_revalidate=True)
    store.set("all", ["v1"])

    clock.advance(20)
    entry = store.evict_if_expired("all")

    assert entry is not None
    assert entry.data == ["v1"]
    assert store.is_stale(entry) is True


def test_set_overrides_defaults_per_entry():
    clock = FakeClock()
    store = CacheStore(clock, default_ttl=timedelta(minutes=5))
    entry = store.set("all", [], ttl=timedelta(seconds=1), stale_while_revalidate=True)

    assert entry.ttl == timedelta(seconds=1)
    assert entry.stale_while_revalidate is True
    assert entry.timestamp == clock.now()


def test_invalidate_key_bumps_generation_and_clear_all_bumps_epoch():
    clock = FakeClock()
    store = CacheStore(clock)
    store.set("all", [])
    store.set("eq-1", {})

    before = store.generation("eq-1")
    store.invalidate("eq-1")
    assert store.get("eq-1") is None
    assert store.get("all") is not None
    assert store.generation("eq-1") != before

    before_all = store.generation("all")
    store.invalidate()
    assert store.keys() == []
    assert store.generation("all") != before_all


def test_mark_stale_ages_entry_and_enables_revalidation():
    clock = FakeClock()
    store = CacheStore(clock, default_ttl=timedelta(minutes=5))
    store.set("all", ["v1"])

    assert store.mark_stale("all") is True
    entry = store.get("all")
    assert store.is_valid(entry) is False
    assert store.is_stale(entry) is True
    assert store.mark_stale("missing") is False


def test_non_positive_ttl_rejected():
    with pytest.raises(ValueError):
        CacheStore(FakeClock(), default_ttl=timedelta(0))
