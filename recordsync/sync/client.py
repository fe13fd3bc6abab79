from __future__ import annotations

import asyncio
from typing import Any

from recordsync.config import Settings
from recordsync.datasets.registry import get_spec
from recordsync.domain.ports.clock import ClockProtocol
from recordsync.domain.ports.transport import FallbackTransportProtocol, PrimaryTransportProtocol
from recordsync.infra.clock import SystemClock
from recordsync.infra.http.api_client import RecordApiClient
from recordsync.infra.http.fallback_transport import FormFallbackTransport
from recordsync.infra.http.primary_transport import HttpPrimaryTransport
from recordsync.loggingSetup import EventLogger
from recordsync.sync.collection import CollectionSync


class SyncClient:
    """
    Назначение/ответственность:
        Точка входа слоя синхронизации: выдаёт изолированные CollectionSync
        по (имя коллекции, scope) и управляет их жизненным циклом.

    Инварианты/гарантии:
        - Модульного состояния нет: всё хранится в экземпляре.
        - Для одной пары (name, scope) возвращается один и тот же CollectionSync.
    """

    def __init__(
        self,
        settings: Settings,
        primary: PrimaryTransportProtocol,
        fallback: FallbackTransportProtocol,
        clock: ClockProtocol | None = None,
        events: EventLogger | None = None,
        api_client: RecordApiClient | None = None,
    ):
        self.settings = settings
        self.primary = primary
        self.fallback = fallback
        self.clock = clock or SystemClock()
        self.events = events or EventLogger()
        self._api_client = api_client
        self._collections: dict[tuple[str, tuple[tuple[str, str], ...]], CollectionSync] = {}

    @classmethod
    def from_settings(cls, settings: Settings, events: EventLogger | None = None, clock: ClockProtocol | None = None) -> "SyncClient":
        if not settings.api_url:
            raise ValueError("api_url is required")
        events = events or EventLogger()
        api = RecordApiClient(
            baseUrl=settings.api_url,
            timeoutSeconds=settings.timeout_seconds,
            retries=settings.retries,
            retryBackoffSeconds=settings.retry_backoff_seconds,
            fallbackTimeoutSeconds=settings.fallback_timeout_seconds,
        )
        return cls(
            settings,
            HttpPrimaryTransport(api, events),
            FormFallbackTransport(api, events),
            clock=clock,
            events=events,
            api_client=api,
        )

    def collection(self, name: str, **scope: Any) -> CollectionSync:
        scope_key = tuple(sorted((k, str(v)) for k, v in scope.items() if v is not None))
        key = (name, scope_key)
        sync = self._collections.get(key)
        if sync is None:
            sync = CollectionSync(
                get_spec(name),
                self.primary,
                self.fallback,
                self.clock,
                self.settings,
                self.events,
                scope,
            )
            self._collections[key] = sync
        return sync

    def invalidate_all(self) -> None:
        for sync in self._collections.values():
            sync.invalidate()

    async def wait_background(self) -> None:
        await asyncio.gather(*(sync.wait_background() for sync in self._collections.values()))

    async def aclose(self) -> None:
        for sync in self._collections.values():
            sync.cancel_background()
        if self._api_client is not None:
            await self._api_client.aclose()
