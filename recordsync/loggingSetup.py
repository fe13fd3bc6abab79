from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s runId=%(runId)s comp=%(component)s msg=%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_LEVELS = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


class EnsureFieldsFilter(logging.Filter):
    """
    Назначение:
        Проставляет runId/component в записи, пришедшие без extra
        (например, из сторонних библиотек), иначе форматтер упадёт.
    """

    def __init__(self, runId: str, defaultComponent: str = "core"):
        super().__init__()
        self.runId = runId
        self.defaultComponent = defaultComponent

    def filter(self, record: logging.LogRecord) -> bool:
        record.runId = getattr(record, "runId", self.runId)
        record.component = getattr(record, "component", self.defaultComponent)
        return True


def mapLogLevel(levelName: str) -> int:
    """ERROR|WARN|WARNING|INFO|DEBUG -> logging level; иное значение -> ValueError."""
    level = _LEVELS.get((levelName or "").strip().upper())
    if level is None:
        raise ValueError(f"Unsupported log level: {levelName}")
    return level


def createCommandLogger(commandName: str, logDir: str, runId: str, logLevel: str) -> tuple[logging.Logger, str]:
    """
    Назначение:
        Отдельный логгер на запуск команды CLI: файл <logDir>/<command>_<runId>.log.

    Контракт:
        - Каталог создаётся при необходимости.
        - Повторный вызов с тем же runId пересоздаёт обработчики, а не дублирует их.
        - В корневой логгер записи не уходят (propagate=False).

    Выходные данные:
        (logger, logFilePath)
    """
    directory = Path(logDir)
    directory.mkdir(parents=True, exist_ok=True)
    logFilePath = str(directory / f"{commandName}_{runId}.log")

    level = mapLogLevel(logLevel)
    logger = logging.getLogger(f"recordsync.{commandName}.{runId}")
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(level)

    handler = logging.FileHandler(logFilePath, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(EnsureFieldsFilter(runId=runId))
    logger.addHandler(handler)

    return logger, logFilePath


def logEvent(logger: logging.Logger, level: int, runId: str, component: str, message: str) -> None:
    logger.log(level, message, extra={"runId": runId, "component": component})


class EventLogger:
    """
    Назначение/ответственность:
        Пара (logger, runId), которую получают компоненты слоя синхронизации,
        чтобы не протаскивать runId в каждый вызов.
    Взаимодействия:
        Делегирует logEvent; без явного логгера пишет в logging.getLogger("recordsync").
    """

    def __init__(self, logger: logging.Logger | None = None, runId: str = "-"):
        self.logger = logger or logging.getLogger("recordsync")
        self.runId = runId

    def event(self, level: int, component: str, message: str) -> None:
        logEvent(self.logger, level, self.runId, component, message)

    def debug(self, component: str, message: str) -> None:
        self.event(logging.DEBUG, component, message)

    def info(self, component: str, message: str) -> None:
        self.event(logging.INFO, component, message)

    def warning(self, component: str, message: str) -> None:
        self.event(logging.WARNING, component, message)

    def error(self, component: str, message: str) -> None:
        self.event(logging.ERROR, component, message)
