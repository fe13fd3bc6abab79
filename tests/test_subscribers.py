from __future__ import annotations

from recordsync.domain.models import CacheEvent, CacheEventKind
from recordsync.sync.subscribers import SubscriberRegistry


def _event(key="all", kind=CacheEventKind.INVALIDATED):
    return CacheEvent(collection="equipment", key=key, kind=kind)


def test_notify_reaches_only_subscribers_of_key():
    registry = SubscriberRegistry()
    seen_all, seen_item = [], []
    registry.subscribe("all", seen_all.append)
    registry.subscribe("eq-1", seen_item.append)

    delivered = registry.notify(_event("all"))

    assert delivered == 1
    assert len(seen_all) == 1
    assert seen_item == []


def test_unsubscribe_removes_empty_key():
    registry = SubscriberRegistry()
    unsubscribe = registry.subscribe("all", lambda event: None)
    assert registry.keys() == ["all"]

    unsubscribe()
    unsubscribe()

    assert registry.keys() == []
    assert registry.count("all") == 0


def test_failing_subscriber_does_not_block_others():
    registry = SubscriberRegistry()
    seen = []

    def broken(event):
        raise RuntimeError("ui gone")

    registry.subscribe("all", broken)
    registry.subscribe("all", seen.append)

    assert registry.notify(_event(kind=CacheEventKind.STALE)) == 2
    assert seen[0].kind == CacheEventKind.STALE
