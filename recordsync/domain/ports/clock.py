from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ClockProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт времени: текущий момент и задержки сверки.
    Взаимодействия:
        CacheStore (TTL), ReconciliationPoller (backoff), PlaceholderGenerator (id/createdAt).
        В тестах подменяется часами, которые сдвигают время без реального ожидания.
    """

    def now(self) -> datetime:
        """Текущий момент, timezone-aware UTC."""
        ...

    async def sleep(self, seconds: float) -> None:
        ...
