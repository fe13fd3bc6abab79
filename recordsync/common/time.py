from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

_ISO_DAY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$")


def getDurationMs(startMonotonic: float, endMonotonic: float) -> int:
    """
    Назначение:
        Считает длительность в миллисекундах по monotonic timestamps.
    """
    return int((endMonotonic - startMonotonic) * 1000)


def parseIsoDatetime(value: Any) -> datetime | None:
    """
    Назначение:
        Разбирает метку времени из ответа сервера (ISO 8601, в т.ч. с суффиксом 'Z').

    Выходные данные:
        datetime | None
            Всегда timezone-aware (naive считается UTC); None, если разобрать нельзя.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def toCalendarDay(value: Any) -> str | None:
    """
    Назначение:
        Приводит дату к точности календарного дня (YYYY-MM-DD).

    Пояснения:
        Сервер может дописывать к дате время ("2024-01-15T00:00:00.000Z", "2024-01-15 10:00").
        Для строк, не похожих на дату, возвращает None.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        match = _ISO_DAY_RE.match(value.strip())
        if match:
            return match.group(1)
    return None
