from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from recordsync.domain.error_codes import ErrorCode
from recordsync.domain.exceptions import ApplicationError, PermanentFailureError, TransportBlockedError
from recordsync.infra.http.api_client import RecordApiClient
from recordsync.infra.http.fallback_transport import FormFallbackTransport, encode_form
from recordsync.infra.http.primary_transport import HttpPrimaryTransport

URL = "https://script.example/exec"


def _client(handler, **kwargs) -> RecordApiClient:
    kwargs.setdefault("retries", 0)
    kwargs.setdefault("retryBackoffSeconds", 0)
    return RecordApiClient(baseUrl=URL, transport=httpx.MockTransport(handler), **kwargs)


def _run(client: RecordApiClient, coro_factory):
    async def scenario():
        try:
            return await coro_factory()
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_get_action_sends_query_and_unwraps_envelope():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"success": True, "data": [{"id": "m-1"}, "junk"]})

    client = _client(handler)
    transport = HttpPrimaryTransport(client)

    items = _run(client, lambda: transport.list_all("getMaintenanceLog", {"equipmentId": "eq-1", "skip": None}))

    assert items == [{"id": "m-1"}]
    assert seen["params"] == {"action": "getMaintenanceLog", "equipmentId": "eq-1"}


def test_post_action_sends_json_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": {"id": "eq-9", "name": "Насос"}})

    client = _client(handler)
    transport = HttpPrimaryTransport(client)

    entity = _run(client, lambda: transport.submit_direct("add", {"name": "Насос"}))

    assert entity == {"id": "eq-9", "name": "Насос"}
    assert seen == {"method": "POST", "body": {"action": "add", "name": "Насос"}}


def test_unsuccessful_envelope_maps_message_to_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "error": "Поле name обязательно"})

    client = _client(handler)

    with pytest.raises(ApplicationError) as excinfo:
        _run(client, lambda: client.postAction("add", {}))

    assert excinfo.value.code == ErrorCode.VALIDATION_FAILED.value
    assert excinfo.value.message == "Поле name обязательно"


def test_get_by_id_returns_none_when_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "error": "Equipment not found"})

    client = _client(handler)
    transport = HttpPrimaryTransport(client)

    assert _run(client, lambda: transport.get_by_id("getById", "id", "eq-404")) is None


def test_connection_failure_is_transport_blocked():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("blocked", request=request)

    client = _client(handler, retries=3)

    with pytest.raises(TransportBlockedError):
        _run(client, lambda: client.postAction("add", {"name": "x"}))
    assert client.getRetryAttempts() == 0


def test_timeout_retried_then_application_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ReadTimeout("slow", request=request)

    client = _client(handler, retries=2)

    with pytest.raises(ApplicationError) as excinfo:
        _run(client, lambda: client.getAction("getAll"))

    assert excinfo.value.code == ErrorCode.TIMEOUT.value
    assert len(calls) == 3
    assert client.getRetryAttempts() == 2


def test_server_error_retried_and_recovers():
    responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"success": True, "data": []})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    client = _client(handler, retries=1)

    assert _run(client, lambda: client.getAction("getAll")) == []
    assert client.getRetryAttempts() == 1


def test_http_status_mapped_without_retry():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, text="exists")

    client = _client(handler, retries=2)

    with pytest.raises(ApplicationError) as excinfo:
        _run(client, lambda: client.getAction("getAll"))

    assert excinfo.value.code == ErrorCode.CONFLICT.value
    assert excinfo.value.status_code == 409
    assert client.getRetryAttempts() == 0


def test_invalid_json_and_unexpected_shape():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("action") == "broken":
            return httpx.Response(200, text="<html>")
        return httpx.Response(200, json={"success": True, "data": {"unexpected": 1}})

    client = _client(handler)
    transport = HttpPrimaryTransport(client)

    async def scenario():
        errors = []
        for action in ("broken", "getAll"):
            try:
                await transport.list_all(action)
            except ApplicationError as exc:
                errors.append(exc.code)
        return errors

    assert _run(client, scenario) == ["INVALID_JSON", "INVALID_JSON"]


def test_fallback_dispatch_form_encoded_and_errors_discarded():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.headers["content-type"], parse_qs(request.content.decode("utf-8"))))
        raise httpx.ReadError("opaque", request=request)

    client = _client(handler)
    fallback = FormFallbackTransport(client)

    _run(client, lambda: fallback.submit_fallback("update", {"id": "eq-1", "status": "repair", "note": None}))

    content_type, form = bodies[0]
    assert content_type.startswith("application/x-www-form-urlencoded")
    assert form == {"action": ["update"], "id": ["eq-1"], "status": ["repair"]}


def test_encode_form_values():
    form = encode_form("add", {"name": "Насос", "count": 2, "active": False, "specs": {"kw": 5}, "skip": None})

    assert form == {
        "action": "add",
        "name": "Насос",
        "count": "2",
        "active": "false",
        "specs": '{"kw": 5}',
    }


def test_encode_form_rejects_unsupported_values():
    with pytest.raises(PermanentFailureError):
        encode_form("add", {"blob": object()})
    with pytest.raises(PermanentFailureError):
        encode_form("add", {"specs": {"when": object()}})
