from __future__ import annotations

import asyncio

import pytest

from recordsync.config import Settings
from recordsync.datasets.registry import get_spec
from recordsync.domain.error_codes import ErrorCode
from recordsync.domain.exceptions import ApplicationError, TransportBlockedError
from recordsync.domain.models import CacheEventKind, WriteState
from recordsync.sync.collection import CollectionSync
from recordsync.sync.placeholder import is_placeholder
from sync_fakes import FakeClock, FakeFallback, FakePrimary

PUMP = {"id": "eq-1", "name": "Насос", "type": "pump", "status": "active"}
BOILER = {"id": "eq-2", "name": "Котёл", "type": "boiler", "status": "active"}


def _sync(collection="equipment", settings=None, records=None, **scope):
    clock = FakeClock()
    primary = FakePrimary(records if records is not None else [PUMP, BOILER])
    fallback = FakeFallback()
    sync = CollectionSync(get_spec(collection), primary, fallback, clock, settings or Settings(), scope=scope)
    return sync, primary, fallback, clock


def test_concurrent_get_by_id_issues_one_network_call():
    sync, primary, _, _ = _sync()

    async def scenario():
        return await asyncio.gather(sync.get_by_id("eq-1"), sync.get_by_id("eq-1"))

    first, second = asyncio.run(scenario())

    assert len(primary.get_calls) == 1
    assert first == second == PUMP


def test_valid_entry_served_without_network():
    sync, primary, _, clock = _sync()

    async def scenario():
        await sync.get_all()
        clock.advance(299)
        return await sync.get_all()

    data = asyncio.run(scenario())

    assert data == [PUMP, BOILER]
    assert len(primary.list_calls) == 1


def test_expired_entry_refetched_synchronously():
    sync, primary, _, clock = _sync()

    async def scenario():
        await sync.get_all()
        clock.advance(301)
        primary.records = [PUMP]
        return await sync.get_all()

    assert asyncio.run(scenario()) == [PUMP]
    assert len(primary.list_calls) == 2


def test_stale_entry_returned_immediately_and_refreshed_in_background():
    sync, primary, _, clock = _sync(settings=Settings(stale_while_revalidate=True))
    events = []
    sync.subscribe("all", events.append)

    async def scenario():
        await sync.get_all()
        clock.advance(600)
        primary.records = [PUMP]
        served = await sync.get_all()
        calls_before_refresh = len(primary.list_calls)
        await sync.wait_background()
        return served, calls_before_refresh

    served, calls_before_refresh = asyncio.run(scenario())

    assert served == [PUMP, BOILER]
    assert calls_before_refresh == 1
    assert len(primary.list_calls) == 2
    assert sync.cache.get("all").data == [PUMP]
    assert events[-1].kind == CacheEventKind.UPDATED
    assert events[-1].data == [PUMP]


def test_background_refresh_failure_keeps_stale_value():
    sync, primary, _, clock = _sync(settings=Settings(stale_while_revalidate=True))

    async def scenario():
        await sync.get_all()
        clock.advance(600)
        primary.list_responses = [ApplicationError("HTTP 500", code=ErrorCode.HTTP_5XX)]
        served = await sync.get_all()
        await sync.wait_background()
        return served

    assert asyncio.run(scenario()) == [PUMP, BOILER]
    assert sync.cache.get("all").data == [PUMP, BOILER]


def test_unexpected_background_refresh_error_is_absorbed():
    sync, primary, _, clock = _sync(settings=Settings(stale_while_revalidate=True))
    seen = []
    sync.subscribe("all", seen.append)

    async def scenario():
        await sync.get_all()
        clock.advance(600)
        primary.list_responses = [TypeError("Object of type set is not JSON serializable")]
        served = await sync.get_all()
        await sync.wait_background()
        return served

    assert asyncio.run(scenario()) == [PUMP, BOILER]
    assert sync.cache.get("all").data == [PUMP, BOILER]
    assert seen == []


def test_direct_write_updates_entity_key_and_invalidates_list():
    sync, primary, _, _ = _sync()
    updated = {**PUMP, "status": "repair"}
    primary.direct_result = updated
    item_events, list_events = [], []
    sync.subscribe("eq-1", item_events.append)
    sync.subscribe("all", list_events.append)

    async def scenario():
        await sync.get_all()
        await sync.get_by_id("eq-1")
        outcome = await sync.update("eq-1", {"status": "repair"})
        primary.records = [updated, BOILER]
        return outcome, await sync.get_by_id("eq-1"), await sync.get_all()

    outcome, entity, listing = asyncio.run(scenario())

    assert outcome.state == WriteState.DONE_OK
    assert entity == updated
    assert listing == [updated, BOILER]
    assert len(primary.get_calls) == 1
    assert len(primary.list_calls) == 2
    assert item_events[0].kind == CacheEventKind.UPDATED
    assert list_events[0].kind == CacheEventKind.INVALIDATED


def test_delete_invalidates_entity_and_list():
    sync, primary, _, _ = _sync()

    async def scenario():
        await sync.get_all()
        await sync.get_by_id("eq-2")
        await sync.delete("eq-2")
        primary.records = [PUMP]
        return await sync.get_all(), await sync.get_by_id("eq-2")

    listing, entity = asyncio.run(scenario())

    assert listing == [PUMP]
    assert entity is None
    assert primary.submits == [("delete", {"id": "eq-2"})]


def test_fetch_started_before_invalidation_is_not_cached():
    sync, primary, _, _ = _sync()
    primary.gate = asyncio.Event()

    async def scenario():
        reader = asyncio.ensure_future(sync.get_all())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        sync.invalidate("all")
        primary.gate.set()
        return await reader

    data = asyncio.run(scenario())

    assert data == [PUMP, BOILER]
    assert sync.cache.get("all") is None


def test_invalidating_entity_also_invalidates_list():
    sync, _, _, _ = _sync()
    kinds = []
    sync.subscribe("all", lambda event: kinds.append(event.kind))

    async def scenario():
        await sync.get_all()
        await sync.get_by_id("eq-1")
        sync.invalidate("eq-1")

    asyncio.run(scenario())

    assert sync.cache.keys() == []
    assert kinds == [CacheEventKind.INVALIDATED]


def test_blocked_read_serves_cached_entry():
    sync, primary, _, clock = _sync()

    async def scenario():
        await sync.get_all()
        clock.advance(1000)
        primary.list_responses = [TransportBlockedError("offline")]
        return await sync.get_all()

    assert asyncio.run(scenario()) == [PUMP, BOILER]


def test_blocked_read_without_cache_reports_network_unavailable():
    sync, primary, _, _ = _sync()
    primary.list_responses = [TransportBlockedError("offline")]

    with pytest.raises(ApplicationError) as excinfo:
        asyncio.run(sync.get_all())

    assert excinfo.value.code == ErrorCode.NETWORK_UNAVAILABLE.value


def test_placeholder_never_cached_and_dropped_on_natural_refresh():
    settings = Settings(create_poll_attempts=2, create_initial_delay_seconds=0)
    sync, primary, fallback, _ = _sync("maintenance", settings=settings, records=[], equipmentId="eq-1")
    primary.direct_error = TransportBlockedError("opaque response")
    kinds = []
    sync.subscribe("all", lambda event: kinds.append(event.kind))

    async def scenario():
        await sync.get_all()
        outcome = await sync.create({"date": "2024-01-15", "type": "Осмотр", "performedBy": "Иванов И.И."})
        entry = sync.cache.get("all")
        stale = sync.cache.is_stale(entry)
        served = await sync.get_all()
        await sync.wait_background()
        return outcome, stale, served, await sync.get_all()

    outcome, stale, served, refreshed = asyncio.run(scenario())

    assert outcome.placeholder is True
    assert is_placeholder(outcome.entity)
    assert stale is True
    assert CacheEventKind.STALE in kinds
    assert all(not is_placeholder(item) for item in served)
    assert all(item["id"] != outcome.entity["id"] for item in refreshed)
    assert primary.list_calls[-1] == ("getMaintenanceLog", {"equipmentId": "eq-1"})


def test_unknown_scope_rejected():
    with pytest.raises(ValueError):
        _sync("equipment", equipmentId="eq-1")
