from __future__ import annotations

from typing import Callable

from recordsync.domain.models import CacheEvent
from recordsync.loggingSetup import EventLogger

Subscriber = Callable[[CacheEvent], None]


class SubscriberRegistry:
    """
    Назначение/ответственность:
        Подписки наблюдателей на ключи кэша, уведомление без опроса.
    Инварианты/гарантии:
        - Пустой набор подписчиков ключа удаляется сразу.
        - Ошибка одного подписчика логируется и не мешает остальным.
        - Уведомление синхронное.
    """

    def __init__(self, events: EventLogger | None = None):
        self.events = events or EventLogger()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """Возвращает функцию отписки (повторный вызов безопасен)."""
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if not callbacks:
                return
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                del self._subscribers[key]

        return unsubscribe

    def notify(self, event: CacheEvent) -> int:
        callbacks = list(self._subscribers.get(event.key, ()))
        for callback in callbacks:
            try:
                callback(event)
            except Exception as exc:
                self.events.error("cache", f"subscriber failed key={event.key} kind={event.kind.value}: {exc}")
        return len(callbacks)

    def keys(self) -> list[str]:
        return list(self._subscribers.keys())

    def count(self, key: str) -> int:
        return len(self._subscribers.get(key, ()))
