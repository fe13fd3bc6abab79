from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from recordsync.loggingSetup import EventLogger


class RequestDeduplicator:
    """
    Назначение/ответственность:
        Не более одного сетевого чтения на ключ одновременно: параллельные вызовы
        с тем же ключом получают общий результат.
    Инварианты/гарантии:
        - Маркер in-flight снимается при завершении операции (успех или ошибка).
        - Проверка и регистрация маркера выполняются без await между ними.
        - Отмена одного ожидающего не отменяет общую операцию (asyncio.shield).
    """

    def __init__(self, events: EventLogger | None = None):
        self.events = events or EventLogger()
        self._in_flight: dict[str, asyncio.Task] = {}

    async def run(self, key: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(operation())
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._settle(key, done))
        else:
            self.events.debug("dedup", f"join in-flight key={key}")
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # помечаем исключение полученным: ожидающих может не остаться
            task.exception()

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def forget(self, key: str | None = None) -> None:
        """
        Назначение:
            Снять маркер(ы) без отмены операций: следующий вызов начнёт новую операцию,
            текущие ожидающие досчитают свою.
        """
        if key is None:
            self._in_flight.clear()
            return
        self._in_flight.pop(key, None)
