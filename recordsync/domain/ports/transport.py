from __future__ import annotations

from typing import Any, Protocol

from recordsync.domain.models import Entity


class PrimaryTransportProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт основного транспорта: запрос и наблюдаемый ответ (данные или ошибка).
    Взаимодействия:
        Используется кэшем/дедупликатором для чтения и протоколом записи для прямой попытки.
    Ограничения:
        Каждый вызов ограничен жёстким таймаутом; таймаут — ApplicationError, не TransportBlocked.
    """

    async def list_all(self, action: str, params: dict[str, Any] | None = None) -> list[Entity]:
        """
        Контракт:
            Возвращает всю коллекцию в естественном порядке сервера.
        Ошибки/исключения:
            ApplicationError, TransportBlockedError.
        """
        ...

    async def get_by_id(self, action: str, id_param: str, entity_id: str) -> Entity | None:
        """
        Контракт:
            Возвращает сущность или None, если сервер сообщил «не найдено».
        """
        ...

    async def submit_direct(self, action: str, payload: dict[str, Any]) -> Entity | None:
        """
        Контракт:
            - Успех: сущность из ответа (None, если сервер тело не вернул, например для delete).
            - ApplicationError: прикладная ошибка, пробрасывается как есть.
            - TransportBlockedError: ответ недоступен, запускается fallback.
        """
        ...


class FallbackTransportProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт fallback-записи: отправка, результат которой вызывающему не виден.
    """

    async def submit_fallback(self, action: str, payload: dict[str, Any]) -> None:
        """
        Контракт:
            - Подтверждает только факт отправки, не эффект.
            - PermanentFailureError, если отправить невозможно (payload не сериализуется).
        """
        ...
