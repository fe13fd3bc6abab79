from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer

from recordsync.common.time import getDurationMs
from recordsync.config import Settings, load_settings
from recordsync.datasets.registry import get_spec, list_specs
from recordsync.domain.error_codes import ErrorCode
from recordsync.domain.exceptions import ApplicationError, PermanentFailureError
from recordsync.domain.models import WriteOutcome
from recordsync.loggingSetup import EventLogger, createCommandLogger, logEvent
from recordsync.sync.client import SyncClient

app = typer.Typer(no_args_is_help=True, add_completion=False)

Runner = Callable[[SyncClient, EventLogger], Awaitable[Any]]


def ensureDir(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def requireApi(settings: Settings) -> None:
    """
    Назначение:
        Проверяет наличие URL endpoint'а для команд, которым нужен доступ к API.

    Поведение:
        - Если api_url не задан — exit code 2.
    """
    if not settings.api_url:
        typer.echo("ERROR: missing API settings: api_url", err=True)
        raise typer.Exit(code=2)


def buildSyncClient(settings: Settings, events: EventLogger) -> SyncClient:
    return SyncClient.from_settings(settings, events=events)


def parseScope(values: list[str] | None) -> dict[str, str]:
    """
    Назначение:
        Разбирает повторяемую опцию --scope key=value.
    """
    scope: dict[str, str] = {}
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            typer.echo(f"ERROR: invalid --scope value (expected key=value): {raw}", err=True)
            raise typer.Exit(code=2)
        scope[key.strip()] = value.strip()
    return scope


def parseData(raw: str | None) -> dict[str, Any]:
    if not raw:
        typer.echo("ERROR: --data is required", err=True)
        raise typer.Exit(code=2)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.echo(f"ERROR: --data is not valid JSON: {exc.msg}", err=True)
        raise typer.Exit(code=2)
    if not isinstance(data, dict):
        typer.echo("ERROR: --data must be a JSON object", err=True)
        raise typer.Exit(code=2)
    return data


def requireCollection(name: str) -> None:
    try:
        get_spec(name)
    except ValueError as exc:
        known = ", ".join(spec.name for spec in list_specs())
        typer.echo(f"ERROR: {exc} (known: {known})", err=True)
        raise typer.Exit(code=2)


def outcomeToDict(outcome: WriteOutcome) -> dict[str, Any]:
    return {
        "state": outcome.state.value,
        "confirmed": outcome.confirmed,
        "placeholder": outcome.placeholder,
        "matchedBy": outcome.matched_by,
        "attempts": outcome.attempts,
        "entity": outcome.entity,
    }


def printJson(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def runCommand(ctx: typer.Context, commandName: str, runner: Runner) -> None:
    """
    Назначение:
        Унифицированная обвязка команд, работающих с API:
        - создаёт логгер + файл лога
        - проверяет обязательные настройки
        - выполняет runner в event loop и печатает результат как JSON
        - закрывает клиент в любом случае

    Поведение:
        - Ошибки настроек/аргументов: exit code 2.
        - ApplicationError / PermanentFailureError: JSON ошибки в stderr, exit code 1.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]

    startMonotonic = time.monotonic()
    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )
    events = EventLogger(logger, runId)
    logEvent(logger, logging.INFO, runId, "core", f"Command started sources={ctx.obj['sources']}")

    try:
        requireApi(settings)
    except typer.Exit:
        logEvent(logger, logging.ERROR, runId, "config", "Missing API settings")
        raise

    async def execute() -> Any:
        client = buildSyncClient(settings, events)
        try:
            return await runner(client, events)
        finally:
            await client.aclose()

    exitCode = 0
    try:
        result = asyncio.run(execute())
        printJson(result)
    except (ApplicationError, PermanentFailureError) as exc:
        logEvent(logger, logging.ERROR, runId, "core", f"Command failed: {exc.code} {exc.message}")
        typer.echo(json.dumps({"error": exc.to_dict()}, ensure_ascii=False, default=str), err=True)
        exitCode = 1
    except ValueError as exc:
        logEvent(logger, logging.ERROR, runId, "config", f"Invalid arguments: {exc}")
        typer.echo(f"ERROR: {exc}", err=True)
        exitCode = 2
    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        logEvent(logger, logging.INFO, runId, "core", f"Command finished duration_ms={durationMs} log={logFilePath}")

    if exitCode:
        raise typer.Exit(code=exitCode)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    apiUrl: str | None = typer.Option(None, "--api-url", help="Records API endpoint URL"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="API timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", help="Retry attempts for API calls"),
    retryBackoffSeconds: float | None = typer.Option(None, "--retry-backoff-seconds", help="Base backoff for retries"),
    fallbackTimeoutSeconds: float | None = typer.Option(
        None, "--fallback-timeout-seconds", help="Timeout for fallback (form) dispatch"
    ),
    cacheTtlSeconds: float | None = typer.Option(None, "--cache-ttl-seconds", help="Cache TTL in seconds"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталог логов
        - сохраняет всё в ctx.obj для подкоманд
    """
    if not runId:
        runId = str(uuid.uuid4())

    cliOverrides = {
        "api_url": apiUrl,
        "log_level": logLevel,
        "log_dir": logDir,
        "timeout_seconds": timeoutSeconds,
        "retries": retries,
        "retry_backoff_seconds": retryBackoffSeconds,
        "fallback_timeout_seconds": fallbackTimeoutSeconds,
        "cache_ttl_seconds": cacheTtlSeconds,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=2)

    ensureDir(loaded.settings.log_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command("check-api")
def checkApi(ctx: typer.Context):
    settings: Settings = ctx.obj["settings"]
    typer.echo(
        f"run_id={ctx.obj['runId']} command=check-api api_url={settings.api_url} "
        f"timeout_seconds={settings.timeout_seconds} retries={settings.retries} "
        f"sources={ctx.obj['sources']} log_level={settings.log_level}",
        err=True,
    )

    async def runner(client: SyncClient, events: EventLogger) -> Any:
        spec = get_spec("equipment")
        start = time.monotonic()
        items = await client.primary.list_all(spec.list_action)
        latencyMs = getDurationMs(start, time.monotonic())
        events.info("api", f"api ok url={settings.api_url} latency_ms={latencyMs}")
        return {"ok": True, "apiUrl": settings.api_url, "latencyMs": latencyMs, "items": len(items)}

    runCommand(ctx, "check-api", runner)


@app.command("list")
def listCommand(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection name (equipment|maintenance)"),
    scope: list[str] | None = typer.Option(None, "--scope", help="Scope parameter key=value (repeatable)"),
):
    requireCollection(collection)
    scopeParams = parseScope(scope)

    async def runner(client: SyncClient, events: EventLogger) -> Any:
        return await client.collection(collection, **scopeParams).get_all(use_cache=False)

    runCommand(ctx, "list", runner)


@app.command("get")
def getCommand(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection name"),
    entityId: str = typer.Argument(..., help="Entity id"),
    scope: list[str] | None = typer.Option(None, "--scope", help="Scope parameter key=value (repeatable)"),
):
    requireCollection(collection)
    scopeParams = parseScope(scope)

    async def runner(client: SyncClient, events: EventLogger) -> Any:
        entity = await client.collection(collection, **scopeParams).get_by_id(entityId, use_cache=False)
        if entity is None:
            raise ApplicationError(f"{collection} '{entityId}' not found", code=ErrorCode.NOT_FOUND)
        return entity

    runCommand(ctx, "get", runner)


@app.command("add")
def addCommand(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection name"),
    data: str | None = typer.Option(None, "--data", help="Entity fields as JSON object"),
    scope: list[str] | None = typer.Option(None, "--scope", help="Scope parameter key=value (repeatable)"),
):
    requireCollection(collection)
    payload = parseData(data)
    scopeParams = parseScope(scope)

    async def runner(client: SyncClient, events: EventLogger) -> Any:
        outcome = await client.collection(collection, **scopeParams).create(payload)
        return outcomeToDict(outcome)

    runCommand(ctx, "add", runner)


@app.command("update")
def updateCommand(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection name"),
    entityId: str = typer.Argument(..., help="Entity id"),
    data: str | None = typer.Option(None, "--data", help="Changed fields as JSON object"),
    scope: list[str] | None = typer.Option(None, "--scope", help="Scope parameter key=value (repeatable)"),
):
    requireCollection(collection)
    changes = parseData(data)
    scopeParams = parseScope(scope)

    async def runner(client: SyncClient, events: EventLogger) -> Any:
        outcome = await client.collection(collection, **scopeParams).update(entityId, changes)
        return outcomeToDict(outcome)

    runCommand(ctx, "update", runner)


@app.command("delete")
def deleteCommand(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection name"),
    entityId: str = typer.Argument(..., help="Entity id"),
    scope: list[str] | None = typer.Option(None, "--scope", help="Scope parameter key=value (repeatable)"),
):
    requireCollection(collection)
    scopeParams = parseScope(scope)

    async def runner(client: SyncClient, events: EventLogger) -> Any:
        outcome = await client.collection(collection, **scopeParams).delete(entityId)
        return outcomeToDict(outcome)

    runCommand(ctx, "delete", runner)


if __name__ == "__main__":
    app()
