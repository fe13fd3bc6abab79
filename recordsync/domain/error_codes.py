from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок транспорта и синхронизации.
    """

    TRANSPORT_BLOCKED = "TRANSPORT_BLOCKED"
    NETWORK_UNAVAILABLE = "NETWORK_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    INVALID_JSON = "INVALID_JSON"
    API_ERROR = "API_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PERMANENT_FAILURE = "PERMANENT_FAILURE"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorCode":
        """
        Назначение:
            Подбор общего кода по HTTP-статусу.
        """
        if status_code == 404:
            return cls.NOT_FOUND
        if status_code == 409:
            return cls.CONFLICT
        if status_code == 422:
            return cls.VALIDATION_FAILED
        if status_code is not None and 500 <= status_code <= 599:
            return cls.HTTP_5XX
        return cls.HTTP_4XX

    @classmethod
    def from_message(cls, message: str | None) -> "ErrorCode":
        """
        Назначение:
            Подбор кода по тексту ошибки из конверта ответа ({"success": false, "error": ...}).
        Пояснения:
            Сервер не отдаёт машинных кодов, только текст (часто на русском).
        """
        text = (message or "").lower()
        if "not found" in text or "не найден" in text:
            return cls.NOT_FOUND
        if "validation" in text or "обязател" in text or "валидац" in text:
            return cls.VALIDATION_FAILED
        if "conflict" in text or "already exists" in text or "уже существует" in text:
            return cls.CONFLICT
        return cls.API_ERROR
