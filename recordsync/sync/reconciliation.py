from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from recordsync.domain.models import Entity, WriteIntent
from recordsync.domain.ports.clock import ClockProtocol
from recordsync.errors import AppError
from recordsync.loggingSetup import EventLogger
from recordsync.sync.matching import HeuristicMatcher, is_absent

Reader = Callable[[], Awaitable[list[Entity]]]


@dataclass(frozen=True)
class PollPolicy:
    """
    Назначение:
        Бюджет сверки: число попыток и линейно растущая задержка base_delay * attempt.
    Инварианты/гарантии:
        - max_attempts >= 1, задержки >= 0.
        - Суммарное ожидание ограничено total_wait().
    """

    max_attempts: int
    base_delay: float
    initial_delay: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.initial_delay < 0:
            raise ValueError("delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt

    def total_wait(self) -> float:
        n = self.max_attempts
        return self.initial_delay + self.base_delay * n * (n + 1) / 2


@dataclass(frozen=True)
class PollResult:
    found: bool
    attempts: int
    entity: Entity | None = None
    strategy: str | None = None


class ReconciliationPoller:
    """
    Назначение/ответственность:
        После fallback-отправки перечитывает коллекцию и ищет след записи.
    Взаимодействия:
        - reader — чтение через основной транспорт (без кэша).
        - HeuristicMatcher — поиск созданной/обновлённой записи.
        - ClockProtocol — все задержки; в тестах время сдвигается без ожидания.
    Ограничения:
        Ошибка чтения на попытке логируется и считается промахом; попытки продолжаются.
    """

    def __init__(self, clock: ClockProtocol, events: EventLogger | None = None):
        self.clock = clock
        self.events = events or EventLogger()

    async def find_written(
        self,
        intent: WriteIntent,
        reader: Reader,
        matcher: HeuristicMatcher,
        policy: PollPolicy,
    ) -> PollResult:
        def check(records: Sequence[Entity]) -> PollResult | None:
            result = matcher.match(intent, records)
            if result is None:
                return None
            return PollResult(found=True, attempts=0, entity=result.entity, strategy=result.strategy)

        return await self._poll(f"action={intent.action}", reader, policy, check)

    async def confirm_deleted(
        self,
        entity_id: str,
        reader: Reader,
        policy: PollPolicy,
        id_field: str = "id",
    ) -> PollResult:
        def check(records: Sequence[Entity]) -> PollResult | None:
            if is_absent(records, entity_id, id_field):
                return PollResult(found=True, attempts=0, strategy="absent")
            return None

        return await self._poll(f"delete id={entity_id}", reader, policy, check)

    async def _poll(
        self,
        label: str,
        reader: Reader,
        policy: PollPolicy,
        check: Callable[[Sequence[Entity]], PollResult | None],
    ) -> PollResult:
        if policy.initial_delay:
            await self.clock.sleep(policy.initial_delay)

        for attempt in range(1, policy.max_attempts + 1):
            delay = policy.delay_for(attempt)
            self.events.debug("reconcile", f"{label} attempt {attempt}/{policy.max_attempts} delay={delay}s")
            await self.clock.sleep(delay)
            try:
                records = await reader()
            except AppError as exc:
                self.events.warning("reconcile", f"{label} attempt {attempt} read failed: {exc.code} {exc.message}")
                continue

            result = check(records)
            if result is not None:
                self.events.info(
                    "reconcile",
                    f"{label} matched on attempt {attempt} by {result.strategy} (records={len(records)})",
                )
                return PollResult(found=True, attempts=attempt, entity=result.entity, strategy=result.strategy)

        self.events.warning("reconcile", f"{label} not confirmed after {policy.max_attempts} attempts")
        return PollResult(found=False, attempts=policy.max_attempts)
