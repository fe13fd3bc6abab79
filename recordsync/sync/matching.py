from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable, Protocol, Sequence

from recordsync.common.time import parseIsoDatetime, toCalendarDay
from recordsync.domain.models import Entity, WriteIntent


class MatchStrategy(Protocol):
    """
    Назначение:
        Одна стратегия поиска записи, порождённой WriteIntent, в свежепрочитанной коллекции.
    Контракт:
        - find возвращает первый подходящий элемент в порядке чтения или None.
        - Не изменяет records.
    """

    name: str

    def find(self, intent: WriteIntent, records: Sequence[Entity]) -> Entity | None:
        ...


@dataclass(frozen=True)
class MatchResult:
    entity: Entity
    strategy: str


def normalize_value(value: Any, as_date: bool = False) -> Any:
    """
    Назначение:
        Нормализация значения для сравнения полей.
    Алгоритм:
        - as_date: дата/дата-время/ISO-строка -> YYYY-MM-DD.
        - Строка -> без крайних пробелов.
        - Остальное без изменений.
    """
    if as_date:
        day = toCalendarDay(value)
        if day is not None:
            return day
    if isinstance(value, str):
        return value.strip()
    return value


def fields_equal(
    record: Entity,
    payload: dict[str, Any],
    fields: Iterable[str],
    date_fields: Iterable[str] = (),
) -> bool:
    dates = set(date_fields)
    for name in fields:
        if name not in payload:
            return False
        as_date = name in dates
        if normalize_value(record.get(name), as_date) != normalize_value(payload[name], as_date):
            return False
    return True


@dataclass(frozen=True)
class ExactMatch:
    """Все match_fields намерения совпадают."""

    name: str = "exact"

    def find(self, intent: WriteIntent, records: Sequence[Entity]) -> Entity | None:
        if not intent.match_fields:
            return None
        for record in records:
            if fields_equal(record, intent.payload, intent.match_fields, intent.date_fields):
                return record
        return None


@dataclass(frozen=True)
class PartialMatch:
    """
    Совпадает подмножество полей (обычно без свободного текста).
    fields=None -> берутся intent.partial_match_fields.
    """

    fields: tuple[str, ...] | None = None
    name: str = "partial"

    def find(self, intent: WriteIntent, records: Sequence[Entity]) -> Entity | None:
        fields = self.fields if self.fields is not None else intent.partial_match_fields
        if not fields:
            return None
        for record in records:
            if fields_equal(record, intent.payload, fields, intent.date_fields):
                return record
        return None


@dataclass(frozen=True)
class TargetMatch:
    """
    Запись с id = intent.entity_id (update).
    fields=None -> дополнительно совпадают все match_fields намерения; () -> достаточно id.
    """

    id_field: str = "id"
    fields: tuple[str, ...] | None = None
    name: str = "exact"

    def find(self, intent: WriteIntent, records: Sequence[Entity]) -> Entity | None:
        if intent.entity_id is None:
            return None
        fields = self.fields if self.fields is not None else intent.match_fields
        for record in records:
            if str(record.get(self.id_field)) != str(intent.entity_id):
                continue
            if fields_equal(record, intent.payload, fields, intent.date_fields):
                return record
        return None


def _newest(records: Sequence[Entity], newest_first: bool) -> Entity | None:
    if not records:
        return None
    return records[0] if newest_first else records[-1]


@dataclass(frozen=True)
class RecencyFallback:
    """
    Самая новая запись принимается без сравнения полей, если её время создания
    лежит в окне window вокруг intent.submitted_at.
    Возможна ошибочная привязка к чужой записи, созданной в том же окне.
    """

    window: timedelta = timedelta(seconds=60)
    created_field: str = "createdAt"
    newest_first: bool = True
    name: str = "recency"

    def find(self, intent: WriteIntent, records: Sequence[Entity]) -> Entity | None:
        newest = _newest(records, self.newest_first)
        if newest is None:
            return None
        created = parseIsoDatetime(newest.get(self.created_field))
        if created is None:
            return None
        if abs(created - intent.submitted_at) <= self.window:
            return newest
        return None


@dataclass(frozen=True)
class SameDayFallback:
    """Самая новая запись с тем же календарным днём, что и в намерении."""

    date_field: str = "date"
    newest_first: bool = True
    name: str = "same_day"

    def find(self, intent: WriteIntent, records: Sequence[Entity]) -> Entity | None:
        newest = _newest(records, self.newest_first)
        if newest is None:
            return None
        expected = toCalendarDay(intent.payload.get(self.date_field))
        if expected is None:
            return None
        if toCalendarDay(newest.get(self.date_field)) == expected:
            return newest
        return None


class HeuristicMatcher:
    """
    Назначение/ответственность:
        Упорядоченный по приоритету список стратегий: первая сработавшая побеждает.
    Инварианты/гарантии:
        - exact > partial > recency (> same_day, если включена).
        - Результат зависит только от (intent, records), не от номера попытки.
    """

    def __init__(self, strategies: Sequence[MatchStrategy] | None = None):
        self.strategies: tuple[MatchStrategy, ...] = tuple(strategies) if strategies else default_strategies()

    def match(self, intent: WriteIntent, records: Sequence[Entity]) -> MatchResult | None:
        for strategy in self.strategies:
            found = strategy.find(intent, records)
            if found is not None:
                return MatchResult(entity=found, strategy=strategy.name)
        return None


def default_strategies(
    recency_window: timedelta = timedelta(seconds=60),
    created_field: str = "createdAt",
    newest_first: bool = True,
    same_day_field: str | None = None,
) -> tuple[MatchStrategy, ...]:
    strategies: list[MatchStrategy] = [
        ExactMatch(),
        PartialMatch(),
        RecencyFallback(window=recency_window, created_field=created_field, newest_first=newest_first),
    ]
    if same_day_field:
        strategies.append(SameDayFallback(date_field=same_day_field, newest_first=newest_first))
    return tuple(strategies)


def is_absent(records: Sequence[Entity], entity_id: str, id_field: str = "id") -> bool:
    """Проверка удаления: записи с entity_id в прочитанной коллекции нет."""
    return all(str(record.get(id_field)) != str(entity_id) for record in records)


def update_strategies(id_field: str = "id") -> tuple[MatchStrategy, ...]:
    """Сверка update: сначала id + изменённые поля, затем только id."""
    return (
        TargetMatch(id_field=id_field),
        TargetMatch(id_field=id_field, fields=(), name="partial"),
    )
