from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

Entity = dict[str, Any]

ALL_KEY = "all"
PLACEHOLDER_PREFIX = "temp-"


@dataclass
class CacheEntry:
    """
    Назначение:
        Последний известный результат чтения по логическому ключу ("all" или id сущности).
    Инварианты/гарантии:
        - Принадлежит только CacheStore; одна запись на ключ.
        - ttl > 0; timestamp — время успешного чтения по часам CacheStore.
    """

    key: str
    data: Any
    timestamp: datetime
    ttl: timedelta
    stale_while_revalidate: bool = False


class WriteKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class WriteState(str, Enum):
    """
    Назначение:
        Состояния протокола записи. DONE_* — терминальные.
    """

    ATTEMPT_DIRECT = "ATTEMPT_DIRECT"
    FALLBACK_SEND = "FALLBACK_SEND"
    RECONCILE_POLL = "RECONCILE_POLL"
    DONE_OK = "DONE_OK"
    DONE_RECONCILED = "DONE_RECONCILED"
    DONE_PLACEHOLDER = "DONE_PLACEHOLDER"

    @property
    def terminal(self) -> bool:
        return self.value.startswith("DONE_")


@dataclass(frozen=True)
class WriteIntent:
    """
    Назначение:
        Намерение записи, ушедшее через fallback-канал.
    Контракт:
        - payload — ровно то, что отправлялось (без action).
        - match_fields — поля, по которым ищется результат записи при сверке.
        - entity_id задан для update/delete.
        - date_fields сравниваются с точностью до календарного дня, остальные поля как есть.
        - Живёт только в рамках одной операции записи.
    """

    action: str
    payload: dict[str, Any]
    match_fields: tuple[str, ...]
    submitted_at: datetime
    kind: WriteKind = WriteKind.CREATE
    collection: str | None = None
    entity_id: str | None = None
    partial_match_fields: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = ()


class CacheEventKind(str, Enum):
    UPDATED = "updated"
    INVALIDATED = "invalidated"
    STALE = "stale"


@dataclass(frozen=True)
class CacheEvent:
    """
    Назначение:
        Уведомление подписчиков ключа кэша.
    Контракт:
        - UPDATED: data содержит новое состояние.
        - INVALIDATED / STALE: data=None, подписчик сам решает перечитать.
    """

    collection: str
    key: str
    kind: CacheEventKind
    data: Any = None


@dataclass
class WriteOutcome:
    """
    Назначение:
        Итог протокола записи.
    Инварианты/гарантии:
        - state терминальный.
        - DONE_PLACEHOLDER -> entity является placeholder (для delete entity=None).
        - confirmed=False означает: результат записи не подтверждён чтением.
    """

    state: WriteState
    entity: Entity | None = None
    intent: WriteIntent | None = None
    attempts: int = 0
    matched_by: str | None = None
    confirmed: bool = True
    transitions: list[WriteState] = field(default_factory=list)

    @property
    def placeholder(self) -> bool:
        return self.state == WriteState.DONE_PLACEHOLDER
