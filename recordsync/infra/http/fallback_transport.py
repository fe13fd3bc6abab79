from __future__ import annotations

import json
from typing import Any

import httpx

from recordsync.common.sanitize import describePayload
from recordsync.domain.exceptions import PermanentFailureError
from recordsync.domain.ports.transport import FallbackTransportProtocol
from recordsync.infra.http.api_client import RecordApiClient
from recordsync.loggingSetup import EventLogger


def encode_form(action: str, payload: dict[str, Any]) -> dict[str, str]:
    """
    Назначение:
        Кодирует намерение записи в поля формы.
    Контракт:
        - Первое поле — action.
        - None пропускается, dict/list сериализуются в JSON, остальное — str().
        - Несериализуемое значение -> PermanentFailureError (отправки не было).
    """
    form: dict[str, str] = {"action": action}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            try:
                form[key] = json.dumps(value, ensure_ascii=False)
            except (TypeError, ValueError) as exc:
                raise PermanentFailureError(
                    f"Cannot serialize field '{key}' for fallback dispatch",
                    details={"action": action, "field": key},
                ) from exc
        elif isinstance(value, bool):
            form[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            form[key] = str(value)
        else:
            raise PermanentFailureError(
                f"Unsupported value type for field '{key}': {type(value).__name__}",
                details={"action": action, "field": key},
            )
    return form


class FormFallbackTransport(FallbackTransportProtocol):
    """
    Назначение/ответственность:
        Fallback-канал записи: form-urlencoded POST, ответ которого не читается.
    Ограничения:
        - Ошибки сети после начала отправки поглощаются: канал «успешен» по определению.
        - Ошибки кодирования payload'а пробрасываются как PermanentFailureError.
    """

    def __init__(self, client: RecordApiClient, events: EventLogger | None = None):
        self.client = client
        self.events = events or EventLogger()

    async def submit_fallback(self, action: str, payload: dict[str, Any]) -> None:
        form = encode_form(action, payload)
        safe = describePayload(payload)
        self.events.info("fallback", f"dispatch action={action} fields={len(form) - 1} payload={safe}")
        try:
            await self.client.dispatchForm(form)
        except httpx.HTTPError as exc:
            self.events.debug("fallback", f"dispatch action={action} response discarded: {exc.__class__.__name__}")
