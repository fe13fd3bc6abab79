from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
import os
from typing import Any, Callable

import yaml


@dataclass(frozen=True)
class Settings:
    # API
    api_url: str | None = None
    timeout_seconds: float = 10.0
    retries: int = 2
    retry_backoff_seconds: float = 0.5
    fallback_timeout_seconds: float = 30.0

    # Cache
    cache_ttl_seconds: float = 300.0
    stale_while_revalidate: bool = False

    # Reconciliation
    create_poll_attempts: int = 8
    create_poll_delay_seconds: float = 2.0
    create_initial_delay_seconds: float = 3.0
    update_poll_attempts: int = 5
    update_poll_delay_seconds: float = 1.5
    delete_poll_attempts: int = 8
    delete_poll_delay_seconds: float = 1.5
    recency_window_seconds: float = 60.0

    # Logging
    log_dir: str = "./logs"
    log_level: str = "INFO"


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


ENV_PREFIX = "RECORDSYNC_"


def _read_yaml_config(path: Path) -> dict:
    """Пустой dict, если файла нет или в нём не mapping."""
    if not path.is_file():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


def _env_get(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


_TRUE_VALUES = frozenset({"1", "true", "yes", "y"})
_FALSE_VALUES = frozenset({"0", "false", "no", "n"})


def parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE_VALUES or lowered in _FALSE_VALUES:
        return lowered in _TRUE_VALUES
    raise ValueError(f"Invalid boolean env value: {raw}")


def _parser_for(field_type: Any) -> Callable[[str], Any]:
    # типы приходят строками из-за `from __future__ import annotations`
    type_name = str(field_type)
    if type_name.startswith("bool"):
        return parse_bool
    if type_name.startswith("int"):
        return int
    if type_name.startswith("float"):
        return float
    return str


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults

    Имена переменных окружения: RECORDSYNC_<FIELD_UPPER>, например RECORDSYNC_API_URL.
    """
    sources: list[str] = []
    defaults = Settings()
    known = {f.name: f for f in fields(Settings)}

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    merged: dict[str, Any] = {name: cfg.get(name, getattr(defaults, name)) for name in known}

    # 2) env
    env_used = False
    for name, spec in known.items():
        raw = _env_get(ENV_PREFIX + name.upper())
        if raw is None:
            continue
        env_used = True
        merged[name] = _parser_for(spec.type)(raw)
    if env_used:
        sources.append("env")

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        if k not in known:
            raise ValueError(f"Unknown setting: {k}")
        merged[k] = v

    if merged["api_url"]:
        merged["api_url"] = str(merged["api_url"]).strip()
    merged["stale_while_revalidate"] = bool(merged["stale_while_revalidate"])

    return LoadedSettings(settings=Settings(**merged), sources_used=sources)
