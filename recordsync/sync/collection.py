from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, Mapping

from recordsync.config import Settings
from recordsync.datasets.spec import CollectionSpec
from recordsync.domain.error_codes import ErrorCode
from recordsync.domain.exceptions import ApplicationError, TransportBlockedError
from recordsync.domain.models import ALL_KEY, CacheEvent, CacheEventKind, Entity, WriteKind, WriteOutcome, WriteState
from recordsync.domain.ports.clock import ClockProtocol
from recordsync.domain.ports.transport import FallbackTransportProtocol, PrimaryTransportProtocol
from recordsync.errors import AppError
from recordsync.loggingSetup import EventLogger
from recordsync.sync.cache_store import CacheStore
from recordsync.sync.deduplicator import RequestDeduplicator
from recordsync.sync.subscribers import Subscriber, SubscriberRegistry
from recordsync.sync.write_protocol import WriteProtocol

Fetch = Callable[[], Awaitable[Any]]


class CollectionSync:
    """
    Назначение/ответственность:
        Одна коллекция (с учётом scope): путь чтения через кэш и дедупликатор,
        запись через WriteProtocol, инвалидация и уведомления подписчиков.

    Инварианты/гарантии:
        - Ключи кэша: "all" и id сущности; инвалидация id инвалидирует и "all".
        - Чтение, начатое после завершения записи, не видит данных старше этой записи:
          запись снимает маркеры in-flight, а результат чтения, начатого до инвалидации,
          в кэш не попадает.
        - Placeholder в кэш не кладётся; затронутые ключи помечаются устаревшими.

    Взаимодействия:
        - CacheStore / RequestDeduplicator / SubscriberRegistry — собственные экземпляры.
        - PrimaryTransportProtocol — чтения; WriteProtocol — записи.
    """

    def __init__(
        self,
        spec: CollectionSpec,
        primary: PrimaryTransportProtocol,
        fallback: FallbackTransportProtocol,
        clock: ClockProtocol,
        settings: Settings,
        events: EventLogger | None = None,
        scope: Mapping[str, Any] | None = None,
    ):
        self.spec = spec
        self.primary = primary
        self.clock = clock
        self.events = events or EventLogger()
        self.scope = {k: v for k, v in (scope or {}).items() if v is not None}
        unknown = set(self.scope) - set(spec.scope_params)
        if unknown:
            raise ValueError(f"Unsupported scope for {spec.name}: {', '.join(sorted(unknown))}")

        self.cache = CacheStore(
            clock,
            default_ttl=timedelta(seconds=settings.cache_ttl_seconds),
            stale_while_revalidate=settings.stale_while_revalidate,
        )
        self.dedup = RequestDeduplicator(self.events)
        self.subscribers = SubscriberRegistry(self.events)
        self.writer = WriteProtocol(spec, primary, fallback, clock, settings, self.events, self.scope)
        self._background: set[asyncio.Task] = set()

    # ---------- read path ----------

    async def get_all(self, use_cache: bool = True) -> list[Entity]:
        return await self._read(ALL_KEY, self._fetch_all, use_cache)

    async def get_by_id(self, entity_id: str, use_cache: bool = True) -> Entity | None:
        key = str(entity_id)

        async def fetch() -> Entity | None:
            return await self._fetch_one(key)

        return await self._read(key, fetch, use_cache)

    async def _fetch_all(self) -> list[Entity]:
        return await self.primary.list_all(self.spec.list_action, self.scope or None)

    async def _fetch_one(self, entity_id: str) -> Entity | None:
        if self.spec.get_action:
            return await self.primary.get_by_id(self.spec.get_action, self.spec.id_param, entity_id)
        for record in await self._fetch_all():
            if str(record.get(self.spec.id_field)) == entity_id:
                return record
        return None

    async def _read(self, key: str, fetch: Fetch, use_cache: bool) -> Any:
        """
        Назначение:
            Политика чтения ключа.
        Алгоритм:
            - valid запись -> данные без сети.
            - stale запись -> данные сразу + фоновое обновление.
            - иначе -> синхронная загрузка через дедупликатор.
            - TransportBlocked -> любая закэшированная запись, иначе NETWORK_UNAVAILABLE.
        """
        previous = self.cache.get(key)
        generation = self.cache.generation(key)
        if use_cache:
            entry = self.cache.evict_if_expired(key)
            if entry is not None:
                if self.cache.is_valid(entry):
                    self.events.debug("cache", f"{self.spec.name} hit key={key}")
                    return entry.data
                self.events.debug("cache", f"{self.spec.name} stale key={key}, revalidating")
                self._refresh_in_background(key, fetch)
                return entry.data

        try:
            return await self._load(key, fetch)
        except TransportBlockedError as exc:
            entry = self.cache.get(key)
            if entry is None and self.cache.generation(key) == generation:
                entry = previous
            if entry is not None:
                self.events.warning("cache", f"{self.spec.name} key={key} served from cache, network blocked")
                return entry.data
            raise ApplicationError(
                f"Network unavailable while reading {self.spec.name} key={key}",
                code=ErrorCode.NETWORK_UNAVAILABLE,
                retryable=True,
                details=exc.details,
            ) from exc

    async def _load(self, key: str, fetch: Fetch) -> Any:
        generation = self.cache.generation(key)

        async def operation() -> Any:
            data = await fetch()
            if self.cache.generation(key) == generation:
                self.cache.set(key, data)
            else:
                self.events.debug("cache", f"{self.spec.name} key={key} invalidated during fetch, result not cached")
            return data

        return await self.dedup.run(key, operation)

    def _refresh_in_background(self, key: str, fetch: Fetch) -> None:
        if self.dedup.in_flight(key):
            return
        task = asyncio.ensure_future(self._refresh(key, fetch))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh(self, key: str, fetch: Fetch) -> None:
        try:
            data = await self._load(key, fetch)
        except AppError as exc:
            self.events.warning("cache", f"{self.spec.name} background refresh key={key} failed: {exc.code} {exc.message}")
            return
        except Exception as exc:
            self.events.error("cache", f"{self.spec.name} background refresh key={key} crashed: {exc!r}")
            return
        self._notify(key, CacheEventKind.UPDATED, data)

    async def wait_background(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background))

    def cancel_background(self) -> None:
        for task in list(self._background):
            task.cancel()

    # ---------- write path ----------

    async def create(self, payload: Mapping[str, Any]) -> WriteOutcome:
        outcome = await self.writer.create(payload)
        self._apply_write(WriteKind.CREATE, outcome, None)
        return outcome

    async def update(self, entity_id: str, changes: Mapping[str, Any]) -> WriteOutcome:
        outcome = await self.writer.update(str(entity_id), changes)
        self._apply_write(WriteKind.UPDATE, outcome, str(entity_id))
        return outcome

    async def delete(self, entity_id: str) -> WriteOutcome:
        outcome = await self.writer.delete(str(entity_id))
        self._apply_write(WriteKind.DELETE, outcome, str(entity_id))
        return outcome

    def _apply_write(self, kind: WriteKind, outcome: WriteOutcome, target_id: str | None) -> None:
        entity = outcome.entity

        if outcome.state == WriteState.DONE_PLACEHOLDER:
            keys = [ALL_KEY] + ([target_id] if target_id else [])
            for key in keys:
                self.cache.mark_stale(key)
                self._notify(key, CacheEventKind.STALE)
            return

        if outcome.state == WriteState.DONE_OK and kind != WriteKind.DELETE and entity is not None:
            entity_id = entity.get(self.spec.id_field)
            if entity_id is not None:
                key = str(entity_id)
                self._forget(key)
                self.cache.set(key, entity)
                self._forget(ALL_KEY)
                self._notify(key, CacheEventKind.UPDATED, entity)
                self._notify(ALL_KEY, CacheEventKind.INVALIDATED)
                return

        if entity is not None and entity.get(self.spec.id_field) is not None:
            target_id = target_id or str(entity.get(self.spec.id_field))
        self.invalidate(target_id or ALL_KEY)

    # ---------- invalidation / subscriptions ----------

    def invalidate(self, key: str | None = None) -> None:
        """
        key=None сбрасывает всю коллекцию; id сущности сбрасывает и "all".
        Подписчики каждого затронутого ключа получают INVALIDATED.
        """
        if key is None:
            keys = set(self.cache.keys()) | set(self.subscribers.keys())
            self.cache.invalidate()
            self.dedup.forget()
            for k in sorted(keys):
                self._notify(k, CacheEventKind.INVALIDATED)
            return

        keys = [str(key)] if str(key) == ALL_KEY else [str(key), ALL_KEY]
        for k in keys:
            self._forget(k)
        for k in keys:
            self._notify(k, CacheEventKind.INVALIDATED)

    def _forget(self, key: str) -> None:
        self.cache.invalidate(key)
        self.dedup.forget(key)

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        return self.subscribers.subscribe(str(key), callback)

    def _notify(self, key: str, kind: CacheEventKind, data: Any = None) -> None:
        delivered = self.subscribers.notify(CacheEvent(collection=self.spec.name, key=key, kind=kind, data=data))
        if delivered:
            self.events.debug("cache", f"{self.spec.name} {kind.value} key={key} subscribers={delivered}")
