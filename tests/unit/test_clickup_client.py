"""ClickUp client tests (httpx.MockTransport, no network)."""

from __future__ import annotations

import httpx
import pytest

from contextlayer.errors import DownstreamAPIError
from contextlayer.integrations.clickup_client import ClickUpClient, clickup_error_message
from contextlayer.observability.metrics import get_metrics

PAYLOAD = {"name": "Task from #eng: Fix it", "description": "d", "status": "to do"}


def _client(handler) -> ClickUpClient:
    return ClickUpClient(
        base_url="https://clickup.test/api/v2/",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestErrorMessage:
    def test_err_field(self):
        resp = httpx.Response(404, json={"err": "List not found", "ECODE": "ITEM_013"})
        assert clickup_error_message(resp) == "List not found"

    def test_error_field(self):
        assert clickup_error_message(httpx.Response(400, json={"error": "Bad status"})) == "Bad status"

    def test_nested_error_message(self):
        resp = httpx.Response(400, json={"error": {"message": "Invalid priority"}})
        assert clickup_error_message(resp) == "Invalid priority"

    def test_non_json_falls_back_to_status_text(self):
        assert clickup_error_message(httpx.Response(502, text="<html>")) == "Bad Gateway"


class TestCreateTask:
    async def test_success(self, clickup_stub, clickup_client):
        task = await clickup_client.create_task("pk_test_token", "L100", PAYLOAD)

        assert task.id == "86abc123"
        assert task.url == "https://app.clickup.com/t/86abc123"
        assert task.name == PAYLOAD["name"]

        request = clickup_stub.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://clickup.test/api/v2/list/L100/task"
        assert request.headers["Authorization"] == "pk_test_token"
        assert clickup_stub.last_payload == PAYLOAD

    async def test_records_latency(self, clickup_client):
        await clickup_client.create_task("pk", "L100", PAYLOAD)
        snap = get_metrics().snapshot()
        assert snap["latency"]["clickup"]["count"] == 1
        assert snap["clickup_failures"] == 0

    async def test_failed_call_counted_and_timed(self, clickup_stub, clickup_client):
        clickup_stub.fail_with(400, {"err": "Bad"})
        with pytest.raises(DownstreamAPIError):
            await clickup_client.create_task("pk", "L100", PAYLOAD)

        clickup_stub.raise_error = httpx.ReadTimeout("timed out")
        with pytest.raises(DownstreamAPIError):
            await clickup_client.create_task("pk", "L100", PAYLOAD)

        snap = get_metrics().snapshot()
        assert snap["clickup_failures"] == 2
        assert snap["latency"]["clickup"]["count"] == 2

    def test_explicit_timeout_kept(self):
        assert ClickUpClient(timeout=0.5)._timeout == 0.5

    async def test_trailing_slash_in_base_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"id": "t1", "name": "n"})

        await _client(handler).create_task("pk", "L1", PAYLOAD)
        assert seen == ["https://clickup.test/api/v2/list/L1/task"]

    async def test_api_error_raises_normalized(self, clickup_stub, clickup_client):
        clickup_stub.fail_with(404, {"err": "List not found", "ECODE": "ITEM_013"})

        with pytest.raises(DownstreamAPIError) as exc:
            await clickup_client.create_task("pk", "L404", PAYLOAD)

        assert exc.value.message == "List not found"
        assert exc.value.status_code == 404
        assert str(exc.value) == "ClickUp API error: List not found"

    async def test_transport_error_raises(self, clickup_stub, clickup_client):
        clickup_stub.raise_error = httpx.ConnectError("connection refused")

        with pytest.raises(DownstreamAPIError) as exc:
            await clickup_client.create_task("pk", "L100", PAYLOAD)
        assert "connection refused" in str(exc.value)

    async def test_missing_task_id_raises(self):
        client = _client(lambda request: httpx.Response(200, json={"name": "n"}))
        with pytest.raises(DownstreamAPIError):
            await client.create_task("pk", "L1", PAYLOAD)

    async def test_non_json_success_raises(self):
        client = _client(lambda request: httpx.Response(200, text="ok"))
        with pytest.raises(DownstreamAPIError):
            await client.create_task("pk", "L1", PAYLOAD)

    async def test_no_internal_retry(self, clickup_stub, clickup_client):
        clickup_stub.fail_with(500, {"err": "Internal"})
        with pytest.raises(DownstreamAPIError):
            await clickup_client.create_task("pk", "L1", PAYLOAD)
        assert len(clickup_stub.requests) == 1
