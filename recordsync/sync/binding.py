from __future__ import annotations

import asyncio
from typing import Any, Mapping

from recordsync.domain.models import ALL_KEY, CacheEvent, CacheEventKind, Entity, WriteOutcome
from recordsync.loggingSetup import EventLogger
from recordsync.sync.collection import CollectionSync


class CancellationToken:
    """Флаг отмены владельца представления (компонент закрыт, пользователь ушёл со страницы)."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class CollectionBinding:
    """
    Назначение/ответственность:
        Локальный оптимистичный список для представления, отделённый от кэша.
        Согласуется с кэшем только через подписку на ключ "all".

    Инварианты/гарантии:
        - Кэш CollectionSync список не меняет напрямую, и наоборот.
        - Placeholder живёт только в локальном списке, до ближайшего обновления данных.
        - После close() локальный список не меняется; общий кэш и идущая сверка не отменяются.

    Алгоритм реакции на события:
        - UPDATED   -> список заменяется данными события.
        - INVALIDATED -> перечитывание через CollectionSync.
        - STALE     -> запускается перепроверка: при записи в кэше список ждёт UPDATED
                       от фонового обновления, без неё заменяется прочитанными данными.
    """

    def __init__(
        self,
        sync: CollectionSync,
        token: CancellationToken | None = None,
        events: EventLogger | None = None,
    ):
        self.sync = sync
        self.token = token or CancellationToken()
        self.events = events or sync.events
        self.items: list[Entity] = []
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = sync.subscribe(ALL_KEY, self._on_event)

    async def load(self) -> list[Entity]:
        data = await self.sync.get_all()
        if not self.token.cancelled:
            self.items = list(data or [])
        return self.items

    async def add(self, payload: Mapping[str, Any]) -> WriteOutcome:
        outcome = await self.sync.create(payload)
        if self.token.cancelled or outcome.entity is None:
            return outcome
        id_field = self.sync.spec.id_field
        new_id = outcome.entity.get(id_field)
        if all(item.get(id_field) != new_id for item in self.items):
            self.items.insert(0, outcome.entity)
        return outcome

    def close(self) -> None:
        self.token.cancel()
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()

    async def settle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_event(self, event: CacheEvent) -> None:
        if self.token.cancelled:
            return
        if event.kind == CacheEventKind.UPDATED and isinstance(event.data, list):
            self.items = list(event.data)
            return
        if event.kind == CacheEventKind.INVALIDATED:
            self._spawn(self.load())
        elif event.kind == CacheEventKind.STALE:
            self._spawn(self._revalidate(self.sync.cache.get(ALL_KEY) is not None))

    async def _revalidate(self, cached: bool) -> None:
        # без записи в кэше get_all читает синхронно и UPDATED не рассылает
        data = await self.sync.get_all()
        if not cached and not self.token.cancelled:
            self.items = list(data or [])

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.events.warning("binding", f"{self.sync.spec.name} reload failed: {exc}")
