from __future__ import annotations

import asyncio
from typing import Any

import httpx

from recordsync.common.sanitize import truncateText
from recordsync.domain.error_codes import ErrorCode
from recordsync.domain.exceptions import ApplicationError, TransportBlockedError


class RecordApiClient:
    def __init__(
        self,
        baseUrl: str,
        timeoutSeconds: float = 10.0,
        retries: int = 2,
        retryBackoffSeconds: float = 0.5,
        fallbackTimeoutSeconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Назначение:
            Async-клиент единого endpoint'а хранилища записей (action-протокол).
        Контракт:
            - GET  ?action=<name>&<params>            -> {"success", "data", "error"}
            - POST JSON {"action": <name>, **payload}  -> {"success", "data", "error"}
            - POST form-urlencoded (fallback)          -> ответ не читается
            - retries/retryBackoffSeconds управляют повторами таймаутов и 429/5xx.
        """
        if not baseUrl:
            raise ValueError("baseUrl is required")
        self.baseUrl = baseUrl
        self.retries = retries
        self.retryBackoffSeconds = retryBackoffSeconds
        self.fallbackTimeoutSeconds = fallbackTimeoutSeconds
        self.retry_attempts = 0

        self.client = httpx.AsyncClient(
            timeout=timeoutSeconds,
            transport=transport,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def getRetryAttempts(self) -> int:
        """Возвращает количество выполненных повторных попыток."""
        return self.retry_attempts

    def _headers(self) -> dict[str, str]:
        return {"accept": "application/json"}

    def _should_retry(self, resp: httpx.Response) -> bool:
        """Решает, стоит ли повторить запрос (429 или 5xx)."""
        if resp.status_code == 429:
            return True
        if 500 <= resp.status_code <= 599:
            return True
        return False

    async def _sleep_backoff(self, attempt: int) -> None:
        """Задержка с экспоненциальным ростом для ретраев."""
        delay = self.retryBackoffSeconds * (2 ** attempt)
        await asyncio.sleep(delay)

    async def _send(self, method: str, params: dict[str, Any] | None, jsonBody: Any | None) -> httpx.Response:
        """
        Алгоритм:
            - Таймаут: повтор до retries, затем ApplicationError(TIMEOUT) (fallback не запускается).
            - Прочая транспортная ошибка без HTTP-статуса: TransportBlockedError сразу.
            - 429/5xx: повтор до retries, затем ApplicationError по статусу.
        """
        attempt = 0
        while True:
            try:
                resp = await self.client.request(
                    method,
                    self.baseUrl,
                    params=params,
                    json=jsonBody,
                    headers=self._headers(),
                )
            except httpx.TimeoutException as exc:
                if attempt >= self.retries:
                    raise ApplicationError(
                        "Request timed out",
                        code=ErrorCode.TIMEOUT,
                        retryable=True,
                        details={"attempts": attempt + 1},
                    ) from exc
                self.retry_attempts += 1
                await self._sleep_backoff(attempt)
                attempt += 1
                continue
            except httpx.TransportError as exc:
                raise TransportBlockedError(
                    f"Network error: {exc.__class__.__name__}",
                    details={"method": method},
                ) from exc

            if 200 <= resp.status_code <= 299:
                return resp

            if self._should_retry(resp) and attempt < self.retries:
                self.retry_attempts += 1
                await self._sleep_backoff(attempt)
                attempt += 1
                continue

            body_snippet = truncateText(resp.text, 200) if resp.text else None
            raise ApplicationError(
                f"HTTP {resp.status_code}",
                code=ErrorCode.from_status(resp.status_code),
                status_code=resp.status_code,
                body_snippet=body_snippet,
                retryable=self._should_retry(resp),
                details={"body_snippet": body_snippet},
            )

    def _unwrap(self, resp: httpx.Response) -> Any:
        """Разбирает конверт {"success", "data", "error"}; success=false -> ApplicationError."""
        try:
            envelope = resp.json()
        except ValueError as exc:
            raise ApplicationError(
                "Invalid JSON response",
                code=ErrorCode.INVALID_JSON,
                status_code=resp.status_code,
                body_snippet=truncateText(resp.text, 200),
            ) from exc

        if not isinstance(envelope, dict) or "success" not in envelope:
            raise ApplicationError(
                "Unexpected response format: no success flag",
                code=ErrorCode.INVALID_JSON,
                status_code=resp.status_code,
            )
        if not envelope.get("success"):
            message = str(envelope.get("error") or "Unknown error")
            raise ApplicationError(
                message,
                code=ErrorCode.from_message(message),
                status_code=resp.status_code,
                details={"error": message},
            )
        return envelope.get("data")

    async def getAction(self, action: str, params: dict[str, Any] | None = None) -> Any:
        """GET ?action=...; возвращает data из конверта."""
        query: dict[str, Any] = {"action": action}
        for key, value in (params or {}).items():
            if value is not None:
                query[key] = value
        resp = await self._send("GET", query, None)
        return self._unwrap(resp)

    async def postAction(self, action: str, payload: dict[str, Any]) -> Any:
        """POST JSON {"action": ..., **payload}; возвращает data из конверта."""
        body = {"action": action, **payload}
        resp = await self._send("POST", None, body)
        return self._unwrap(resp)

    async def dispatchForm(self, form: dict[str, str]) -> None:
        """
        Назначение:
            Отправка form-urlencoded без чтения ответа.
        Контракт:
            - Ответ не разбирается и не проверяется.
            - Ошибки httpx пробрасываются: решение об их судьбе принимает fallback-транспорт.
        """
        await self.client.post(
            self.baseUrl,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.fallbackTimeoutSeconds,
        )
