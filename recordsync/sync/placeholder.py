from __future__ import annotations

from typing import Any

from recordsync.domain.models import PLACEHOLDER_PREFIX, Entity, WriteIntent, WriteKind
from recordsync.domain.ports.clock import ClockProtocol

PLACEHOLDER_FLAG = "isPlaceholder"
PLACEHOLDER_REF_FIELD = "placeholderFor"


def is_placeholder(value: Entity | str | None, id_field: str = "id") -> bool:
    """Принимает сущность или id."""
    if value is None:
        return False
    if isinstance(value, dict):
        value = value.get(id_field)
    return isinstance(value, str) and value.startswith(PLACEHOLDER_PREFIX)


class PlaceholderGenerator:
    """
    Назначение/ответственность:
        Синтез временной сущности, когда сверка не нашла результат записи за отведённые попытки.
    Инварианты/гарантии:
        - id = "temp-<epoch ms>", уникален в пределах генератора; реальные id такого префикса не имеют.
        - createdAt проставляется локально (ISO 8601 UTC).
        - Placeholder никогда не отправляется на сервер и не кладётся в кэш.
    """

    def __init__(self, clock: ClockProtocol, id_field: str = "id"):
        self.clock = clock
        self.id_field = id_field
        self._last_ms = 0

    def _next_id(self) -> str:
        now_ms = int(self.clock.now().timestamp() * 1000)
        if now_ms <= self._last_ms:
            now_ms = self._last_ms + 1
        self._last_ms = now_ms
        return f"{PLACEHOLDER_PREFIX}{now_ms}"

    def build(self, intent: WriteIntent) -> Entity:
        entity: dict[str, Any] = dict(intent.payload)
        if intent.kind == WriteKind.UPDATE and intent.entity_id is not None:
            entity[PLACEHOLDER_REF_FIELD] = intent.entity_id
        entity[self.id_field] = self._next_id()
        entity["createdAt"] = self.clock.now().isoformat()
        entity[PLACEHOLDER_FLAG] = True
        return entity
