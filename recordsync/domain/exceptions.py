from __future__ import annotations

from typing import Any

from recordsync.domain.error_codes import ErrorCode
from recordsync.errors import CATEGORY_APPLICATION, CATEGORY_FALLBACK, CATEGORY_TRANSPORT, AppError


class TransportBlockedError(AppError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """
        Назначение:
            Сетевой вызов не дал HTTP-статуса: неотличимо от отброшенного cross-origin ответа.
        Контракт:
            - Единственный класс ошибок, который переводит запись в fallback.
            - Наружу не пробрасывается: поглощается протоколом записи.
        """
        super().__init__(
            category=CATEGORY_TRANSPORT,
            code=ErrorCode.TRANSPORT_BLOCKED.value,
            message=message,
            retryable=True,
            details=details or {},
        )


class ApplicationError(AppError):
    def __init__(
        self,
        message: str,
        code: ErrorCode | str = ErrorCode.API_ERROR,
        status_code: int | None = None,
        body_snippet: str | None = None,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ):
        """
        Назначение:
            Корректно оформленная ошибка сервера (валидация, not-found, конфликт) или таймаут.
        Контракт:
            - Пробрасывается вызывающему без изменений, fallback не запускает.
        """
        super().__init__(
            category=CATEGORY_APPLICATION,
            code=code.value if isinstance(code, ErrorCode) else code,
            message=message,
            retryable=retryable,
            details=details or {},
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class PermanentFailureError(AppError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """
        Назначение:
            Fallback-отправка не состоялась ещё до отправки (например, payload не сериализуется).
        """
        super().__init__(
            category=CATEGORY_FALLBACK,
            code=ErrorCode.PERMANENT_FAILURE.value,
            message=message,
            retryable=False,
            details=details or {},
        )


__all__ = ["ApplicationError", "PermanentFailureError", "TransportBlockedError"]
