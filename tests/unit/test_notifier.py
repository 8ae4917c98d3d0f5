"""Response notifier tests: message shapes and best-effort delivery."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from contextlayer.config import settings
from contextlayer.integrations.clickup_client import ClickUpTask
from contextlayer.observability.metrics import get_metrics
from contextlayer.slack.notifier import (
    ResponseNotifier,
    ack_message,
    duplicate_message,
    failure_message,
    success_message,
)

URL = "https://hooks.slack.com/actions/T0001/1/abc"
TASK = ClickUpTask(id="86abc123", url="https://app.clickup.com/t/86abc123", name="Task from #eng: Fix it")


class TestMessages:
    def test_ack(self):
        assert ack_message() == {
            "text": "🔄 Creating ClickUp task with full Slack context...",
            "response_type": "ephemeral",
        }

    def test_success_attachment(self):
        body = success_message(TASK)
        assert body["text"] == "✅ Task created successfully!"
        assert body["response_type"] == "ephemeral"
        attachment = body["attachments"][0]
        assert attachment["color"] == "good"
        assert attachment["title"] == "ClickUp Task Created"
        assert attachment["title_link"] == TASK.url
        assert attachment["text"] == '"Task from #eng: Fix it" with full Slack context'
        assert attachment["fields"] == [
            {"title": "Task ID", "value": "86abc123", "short": True},
            {"title": "Status", "value": "To Do", "short": True},
        ]

    def test_failure(self):
        assert failure_message("ClickUp API error: List not found") == {
            "text": "❌ Failed to create task: ClickUp API error: List not found",
            "response_type": "ephemeral",
        }

    def test_duplicate_is_ephemeral(self):
        body = duplicate_message()
        assert body["response_type"] == "ephemeral"
        assert "already" in body["text"]


class TestResponseNotifier:
    async def test_posts_body(self, webhook, notifier):
        assert await notifier.send(URL, ack_message()) is True
        assert webhook.sent == [(URL, ack_message())]

    async def test_missing_url_returns_false(self, webhook, notifier):
        assert await notifier.send(None, ack_message()) is False
        assert webhook.sent == []

    async def test_non_2xx_returns_false(self, webhook, notifier):
        webhook.status_code = 404
        assert await notifier.send(URL, ack_message()) is False
        snap = get_metrics().snapshot()
        assert snap["callbacks_failed"] == 1

    async def test_transport_error_never_raises(self):
        client = MagicMock()
        client.send_dict = AsyncMock(side_effect=ConnectionError("reset by peer"))
        notifier = ResponseNotifier(timeout=1, client_factory=lambda url: client)

        assert await notifier.send(URL, failure_message("x")) is False
        snap = get_metrics().snapshot()
        assert snap["callbacks_failed"] == 1


class TestCallbackTimeout:
    def test_fractional_timeout_rounds_up(self):
        notifier = ResponseNotifier(timeout=0.5)
        assert notifier._client(URL).timeout == 1

    def test_fractional_setting_rounds_up(self, monkeypatch):
        monkeypatch.setattr(settings, "callback_timeout_s", 2.5)
        assert ResponseNotifier()._timeout == 3

    def test_explicit_zero_is_not_replaced_by_setting(self, monkeypatch):
        monkeypatch.setattr(settings, "callback_timeout_s", 10.0)
        assert ResponseNotifier(timeout=0)._timeout == 1
