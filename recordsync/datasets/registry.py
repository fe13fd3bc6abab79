from __future__ import annotations

from typing import Callable

from recordsync.datasets.spec import CollectionSpec


def make_equipment_spec() -> CollectionSpec:
    return CollectionSpec(
        name="equipment",
        list_action="getAll",
        get_action="getById",
        create_action="add",
        update_action="update",
        delete_action="delete",
        match_fields=("name", "type", "status"),
        partial_match_fields=("name", "type"),
        date_fields=("commissioningDate", "lastMaintenanceDate"),
    )


def make_maintenance_spec() -> CollectionSpec:
    return CollectionSpec(
        name="maintenance",
        list_action="getMaintenanceLog",
        create_action="addMaintenanceEntry",
        update_action="updateMaintenanceEntry",
        delete_action="deleteMaintenanceEntry",
        id_param="entryId",
        scope_params=("equipmentId", "maintenanceSheetId"),
        match_fields=("date", "type", "description", "performedBy"),
        partial_match_fields=("date", "type", "performedBy"),
        date_fields=("date",),
        same_day_fallback=True,
    )


_registry: dict[str, Callable[[], CollectionSpec]] = {
    "equipment": make_equipment_spec,
    "maintenance": make_maintenance_spec,
}


def get_spec(name: str) -> CollectionSpec:
    """
    Возвращает CollectionSpec по имени или ValueError, если коллекция не зарегистрирована.
    """
    try:
        factory = _registry[name]
        return factory()
    except KeyError as exc:
        raise ValueError(f"Unsupported collection: {name}") from exc


def list_specs() -> list[CollectionSpec]:
    return [factory() for factory in _registry.values()]
