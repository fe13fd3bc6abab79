from __future__ import annotations

import json

MASK = "***"
SENSITIVE_KEYS: frozenset[str] = frozenset({"password", "token", "authorization", "api_key", "apikey", "secret"})


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """Обрезает текст до limit символов (с '...' на конце); None остаётся None."""
    if value is None or len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    return value[: limit - len(suffix)] + suffix


def maskSecretsInObject(obj: object, sensitiveKeys: frozenset[str] = SENSITIVE_KEYS) -> object:
    """
    Назначение:
        Копия dict/list, где значения чувствительных ключей (без учёта регистра) заменены на '***'.
        Исходная структура не меняется.
    """
    if isinstance(obj, dict):
        return {
            k: (MASK if v is not None else None) if str(k).lower() in sensitiveKeys else maskSecretsInObject(v, sensitiveKeys)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [maskSecretsInObject(item, sensitiveKeys) for item in obj]
    return obj


def describePayload(payload: object, limit: int = 300) -> str:
    """
    Назначение:
        Однострочное представление payload'а для лога: секреты замаскированы, длина ограничена.
    """
    text = json.dumps(maskSecretsInObject(payload), ensure_ascii=False, default=str)
    return truncateText(text, limit) or ""
