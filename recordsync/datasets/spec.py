from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CollectionSpec:
    """
    Назначение:
        Описание коллекции удалённого хранилища для слоя синхронизации.
    Контракт:
        - *_action — имена action'ов endpoint'а.
        - get_action=None: сущность по id берётся из полного списка.
        - id_param — имя параметра id в запросах update/delete/get (в ответах id всегда в id_field).
        - scope_params — параметры, сужающие коллекцию (например, журнал конкретного оборудования);
          попадают в GET списка и в payload create.
        - match_fields / partial_match_fields — поля сверки записи, ушедшей через fallback.
        - date_fields нормализуются до YYYY-MM-DD перед fallback-отправкой.
        - same_day_fallback включает последнюю (самую слабую) стратегию сверки по дате.
    """

    name: str
    list_action: str
    create_action: str
    update_action: str
    delete_action: str
    get_action: str | None = None
    id_field: str = "id"
    id_param: str = "id"
    scope_params: tuple[str, ...] = ()
    match_fields: tuple[str, ...] = ()
    partial_match_fields: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = ()
    created_field: str = "createdAt"
    newest_first: bool = True
    same_day_fallback: bool = False
