from __future__ import annotations

from datetime import timedelta
from typing import Any

from recordsync.domain.models import CacheEntry
from recordsync.domain.ports.clock import ClockProtocol


class CacheStore:
    """
    Назначение/ответственность:
        Последние известные результаты чтения по ключам одной коллекции, с TTL
        и опциональным режимом stale-while-revalidate.
    Инварианты/гарантии:
        - На ключ не более одной записи.
        - Методы синхронные: между проверкой и изменением нет точек await.
        - generation(key) растёт при каждой инвалидации ключа; по нему чтение,
          начатое до инвалидации, понимает, что его результат уже нельзя класть в кэш.
    """

    def __init__(
        self,
        clock: ClockProtocol,
        default_ttl: timedelta = timedelta(minutes=5),
        stale_while_revalidate: bool = False,
    ):
        if default_ttl <= timedelta(0):
            raise ValueError("default_ttl must be positive")
        self.clock = clock
        self.default_ttl = default_ttl
        self.default_swr = stale_while_revalidate
        self._entries: dict[str, CacheEntry] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def set(
        self,
        key: str,
        data: Any,
        ttl: timedelta | None = None,
        stale_while_revalidate: bool | None = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            data=data,
            timestamp=self.clock.now(),
            ttl=ttl if ttl is not None else self.default_ttl,
            stale_while_revalidate=self.default_swr if stale_while_revalidate is None else stale_while_revalidate,
        )
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str | None = None) -> None:
        """key=None очищает всё (выход пользователя, ручной сброс кэша)."""
        if key is None:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1
            return
        self._entries.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1

    def generation(self, key: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def is_valid(self, entry: CacheEntry) -> bool:
        return self.clock.now() - entry.timestamp < entry.ttl

    def is_stale(self, entry: CacheEntry) -> bool:
        return not self.is_valid(entry) and entry.stale_while_revalidate

    def evict_if_expired(self, key: str) -> CacheEntry | None:
        """
        Назначение:
            Вытеснение по TTL при обращении.
        Контракт:
            - valid или stale запись возвращается без изменений.
            - Просроченная запись без stale-while-revalidate удаляется, возвращается None.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.is_valid(entry) or self.is_stale(entry):
            return entry
        del self._entries[key]
        return None

    def mark_stale(self, key: str) -> bool:
        """
        Назначение:
            Пометить ключ устаревшим: следующее чтение отдаст значение один раз
            и сразу запустит фоновое обновление.
        Выходные данные:
            True, если запись была; иначе False (следующее чтение и так пойдёт в сеть).
        """
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.timestamp = self.clock.now() - entry.ttl
        entry.stale_while_revalidate = True
        return True

    def keys(self) -> list[str]:
        return list(self._entries.keys())
