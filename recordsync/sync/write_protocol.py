from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable, Mapping

from recordsync.common.time import toCalendarDay
from recordsync.config import Settings
from recordsync.datasets.spec import CollectionSpec
from recordsync.domain.exceptions import TransportBlockedError
from recordsync.domain.models import Entity, WriteIntent, WriteKind, WriteOutcome, WriteState
from recordsync.domain.ports.clock import ClockProtocol
from recordsync.domain.ports.transport import FallbackTransportProtocol, PrimaryTransportProtocol
from recordsync.loggingSetup import EventLogger
from recordsync.sync.matching import HeuristicMatcher, default_strategies, update_strategies
from recordsync.sync.placeholder import PlaceholderGenerator
from recordsync.sync.reconciliation import PollPolicy, PollResult, ReconciliationPoller

Reconcile = Callable[[WriteIntent], Awaitable[PollResult]]


@dataclass(frozen=True)
class WritePolicies:
    create: PollPolicy
    update: PollPolicy
    delete: PollPolicy

    @classmethod
    def from_settings(cls, settings: Settings) -> "WritePolicies":
        return cls(
            create=PollPolicy(
                max_attempts=settings.create_poll_attempts,
                base_delay=settings.create_poll_delay_seconds,
                initial_delay=settings.create_initial_delay_seconds,
            ),
            update=PollPolicy(
                max_attempts=settings.update_poll_attempts,
                base_delay=settings.update_poll_delay_seconds,
            ),
            delete=PollPolicy(
                max_attempts=settings.delete_poll_attempts,
                base_delay=settings.delete_poll_delay_seconds,
            ),
        )


def normalize_date_fields(payload: Mapping[str, Any], date_fields: Iterable[str]) -> dict[str, Any]:
    """
    Назначение:
        Перед fallback-отправкой даты приводятся к YYYY-MM-DD.
    Контракт:
        - Значения, которые не распознаются как дата, остаются как есть.
        - Исходный payload не меняется.
    """
    result = dict(payload)
    for name in date_fields:
        day = toCalendarDay(result.get(name))
        if day is not None:
            result[name] = day
    return result


def _present(fields: Iterable[str], payload: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(name for name in fields if name in payload)


class WriteProtocol:
    """
    Назначение/ответственность:
        Запись с восстановлением при недоступном ответе:
        ATTEMPT_DIRECT -> DONE_OK
        ATTEMPT_DIRECT -> FALLBACK_SEND -> RECONCILE_POLL -> DONE_RECONCILED | DONE_PLACEHOLDER

    Инварианты/гарантии:
        - В fallback переводит только TransportBlockedError; ApplicationError пробрасывается
          без изменений и без fallback.
        - PermanentFailureError из fallback-канала пробрасывается вызывающему.
        - Исчерпание сверки не бросает исключение: результат — placeholder (confirmed=False).
        - Кэш не трогает: инвалидация и уведомления на стороне CollectionSync.

    Взаимодействия:
        - primary / fallback — порты транспорта.
        - ReconciliationPoller + HeuristicMatcher — поиск результата записи.
        - PlaceholderGenerator — временная сущность при исчерпании попыток.
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
        self.fallback = fallback
        self.clock = clock
        self.events = events or EventLogger()
        self.scope = dict(scope or {})
        self.policies = WritePolicies.from_settings(settings)
        self.poller = ReconciliationPoller(clock, self.events)
        self.placeholders = PlaceholderGenerator(clock, spec.id_field)
        same_day_field = spec.date_fields[0] if spec.same_day_fallback and spec.date_fields else None
        self.create_matcher = HeuristicMatcher(
            default_strategies(
                recency_window=timedelta(seconds=settings.recency_window_seconds),
                created_field=spec.created_field,
                newest_first=spec.newest_first,
                same_day_field=same_day_field,
            )
        )
        self.update_matcher = HeuristicMatcher(update_strategies(spec.id_field))

    async def create(self, payload: Mapping[str, Any]) -> WriteOutcome:
        body = {**payload, **self.scope}

        async def reconcile(intent: WriteIntent) -> PollResult:
            return await self.poller.find_written(intent, self._read_all, self.create_matcher, self.policies.create)

        return await self._run(
            kind=WriteKind.CREATE,
            action=self.spec.create_action,
            body=body,
            entity_id=None,
            match_fields=self.spec.match_fields,
            partial_match_fields=self.spec.partial_match_fields,
            reconcile=reconcile,
        )

    async def update(self, entity_id: str, changes: Mapping[str, Any]) -> WriteOutcome:
        body = {self.spec.id_param: entity_id, **changes}
        changed = tuple(name for name in changes if name not in (self.spec.id_param, self.spec.id_field))

        async def reconcile(intent: WriteIntent) -> PollResult:
            async def reader() -> list[Entity]:
                return await self._read_one(entity_id)

            return await self.poller.find_written(intent, reader, self.update_matcher, self.policies.update)

        return await self._run(
            kind=WriteKind.UPDATE,
            action=self.spec.update_action,
            body=body,
            entity_id=entity_id,
            match_fields=changed,
            partial_match_fields=(),
            reconcile=reconcile,
        )

    async def delete(self, entity_id: str) -> WriteOutcome:
        body = {self.spec.id_param: entity_id}

        async def reconcile(intent: WriteIntent) -> PollResult:
            async def reader() -> list[Entity]:
                return await self._read_one(entity_id)

            return await self.poller.confirm_deleted(entity_id, reader, self.policies.delete, self.spec.id_field)

        return await self._run(
            kind=WriteKind.DELETE,
            action=self.spec.delete_action,
            body=body,
            entity_id=entity_id,
            match_fields=(),
            partial_match_fields=(),
            reconcile=reconcile,
        )

    async def _run(
        self,
        kind: WriteKind,
        action: str,
        body: dict[str, Any],
        entity_id: str | None,
        match_fields: tuple[str, ...],
        partial_match_fields: tuple[str, ...],
        reconcile: Reconcile,
    ) -> WriteOutcome:
        transitions = [WriteState.ATTEMPT_DIRECT]
        label = f"{self.spec.name} {kind.value}"

        try:
            entity = await self.primary.submit_direct(action, body)
        except TransportBlockedError as exc:
            self.events.warning("write", f"{label} direct response unavailable, switching to fallback: {exc.message}")
        else:
            transitions.append(WriteState.DONE_OK)
            self.events.info("write", f"{label} confirmed by direct response")
            return WriteOutcome(state=WriteState.DONE_OK, entity=entity, transitions=transitions)

        transitions.append(WriteState.FALLBACK_SEND)
        sent = normalize_date_fields(body, self.spec.date_fields)
        intent = WriteIntent(
            action=action,
            payload=sent,
            match_fields=_present(match_fields, sent),
            submitted_at=self.clock.now(),
            kind=kind,
            collection=self.spec.name,
            entity_id=entity_id,
            partial_match_fields=_present(partial_match_fields, sent),
            date_fields=tuple(self.spec.date_fields),
        )
        self.events.info("write", f"{label} sending through fallback channel")
        await self.fallback.submit_fallback(action, sent)

        transitions.append(WriteState.RECONCILE_POLL)
        result = await reconcile(intent)

        if result.found:
            transitions.append(WriteState.DONE_RECONCILED)
            self.events.info("write", f"{label} reconciled by {result.strategy} after {result.attempts} attempt(s)")
            return WriteOutcome(
                state=WriteState.DONE_RECONCILED,
                entity=result.entity,
                intent=intent,
                attempts=result.attempts,
                matched_by=result.strategy,
                transitions=transitions,
            )

        transitions.append(WriteState.DONE_PLACEHOLDER)
        placeholder = None if kind == WriteKind.DELETE else self.placeholders.build(intent)
        self.events.warning(
            "write",
            f"{label} not confirmed after {result.attempts} attempt(s); "
            f"placeholder={placeholder.get(self.spec.id_field) if placeholder else None}",
        )
        return WriteOutcome(
            state=WriteState.DONE_PLACEHOLDER,
            entity=placeholder,
            intent=intent,
            attempts=result.attempts,
            confirmed=False,
            transitions=transitions,
        )

    async def _read_all(self) -> list[Entity]:
        return await self.primary.list_all(self.spec.list_action, self.scope or None)

    async def _read_one(self, entity_id: str) -> list[Entity]:
        if self.spec.get_action:
            entity = await self.primary.get_by_id(self.spec.get_action, self.spec.id_param, entity_id)
            return [entity] if entity is not None else []
        return [
            record
            for record in await self._read_all()
            if str(record.get(self.spec.id_field)) == str(entity_id)
        ]
