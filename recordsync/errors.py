from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

CATEGORY_TRANSPORT = "transport"
CATEGORY_APPLICATION = "application"
CATEGORY_FALLBACK = "fallback"


@dataclass
class AppError(Exception):
    """
    Назначение:
        Базовая ошибка клиента: категория (transport/application/fallback),
        машинный код и текст. to_dict() уходит в stderr CLI как есть.
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"category": self.category, "code": self.code, "message": self.message}
        payload["retryable"] = self.retryable
        payload["details"] = dict(self.details or {})
        return payload


__all__ = ["AppError", "CATEGORY_APPLICATION", "CATEGORY_FALLBACK", "CATEGORY_TRANSPORT"]
