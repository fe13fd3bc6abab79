from __future__ import annotations

from typing import Any

from recordsync.common.sanitize import describePayload
from recordsync.domain.error_codes import ErrorCode
from recordsync.domain.exceptions import ApplicationError
from recordsync.domain.models import Entity
from recordsync.domain.ports.transport import PrimaryTransportProtocol
from recordsync.infra.http.api_client import RecordApiClient
from recordsync.loggingSetup import EventLogger


class HttpPrimaryTransport(PrimaryTransportProtocol):
    """
    Назначение/ответственность:
        Адаптер PrimaryTransportProtocol поверх RecordApiClient.
        Нормализует форму ответа (списки/сущности) и пишет запросы в лог.
    Ограничения:
        - Ретраи/таймауты управляются самим клиентом.
        - Классификация ошибок (ApplicationError / TransportBlockedError) приходит из клиента как есть.
    """

    def __init__(self, client: RecordApiClient, events: EventLogger | None = None):
        self.client = client
        self.events = events or EventLogger()

    async def list_all(self, action: str, params: dict[str, Any] | None = None) -> list[Entity]:
        self.events.debug("api", f"GET action={action} params={params or {}}")
        data = await self.client.getAction(action, params)
        items = _extract_items(data)
        self.events.debug("api", f"GET action={action} items={len(items)}")
        return items

    async def get_by_id(self, action: str, id_param: str, entity_id: str) -> Entity | None:
        self.events.debug("api", f"GET action={action} {id_param}={entity_id}")
        try:
            data = await self.client.getAction(action, {id_param: entity_id})
        except ApplicationError as exc:
            if exc.code == ErrorCode.NOT_FOUND.value:
                return None
            raise
        if isinstance(data, dict):
            return data
        return None

    async def submit_direct(self, action: str, payload: dict[str, Any]) -> Entity | None:
        safe = describePayload(payload)
        self.events.debug("api", f"POST action={action} payload={safe}")
        data = await self.client.postAction(action, payload)
        if isinstance(data, dict):
            return data
        return None


def _extract_items(data: Any) -> list[Entity]:
    """Пытается вытащить массив записей из data (список или обёртка)."""
    if data is None:
        return []
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        for key in ("items", "data", "entries", "result"):
            if key in data and isinstance(data[key], list):
                return [item for item in data[key] if isinstance(item, dict)]
    raise ApplicationError(
        "Unexpected response format: no items array",
        code=ErrorCode.INVALID_JSON,
    )
