"""Result messages posted back to the Slack ``response_url``.

The HTTP response to Slack has already gone out by the time a sync
finishes, so the response_url is the only way to tell the user what
happened. Posting is best effort: failures are logged, never raised.
"""

from __future__ import annotations

import math
from typing import Any, Callable

import structlog
from slack_sdk.webhook.async_client import AsyncWebhookClient

from contextlayer.config import settings
from contextlayer.integrations.clickup_client import ClickUpTask
from contextlayer.observability.metrics import get_metrics

logger = structlog.get_logger()

ACK_TEXT = "🔄 Creating ClickUp task with full Slack context..."


def ack_message() -> dict[str, Any]:
    """Immediate acknowledgement returned in the HTTP response."""
    return {"text": ACK_TEXT, "response_type": "ephemeral"}


def success_message(task: ClickUpTask) -> dict[str, Any]:
    return {
        "text": "✅ Task created successfully!",
        "response_type": "ephemeral",
        "attachments": [{
            "color": "good",
            "title": "ClickUp Task Created",
            "title_link": task.url,
            "text": f'"{task.name}" with full Slack context',
            "fields": [
                {"title": "Task ID", "value": task.id, "short": True},
                {"title": "Status", "value": "To Do", "short": True},
            ],
        }],
    }


def failure_message(error: str) -> dict[str, Any]:
    return {
        "text": f"❌ Failed to create task: {error}",
        "response_type": "ephemeral",
    }


def duplicate_message() -> dict[str, Any]:
    return {
        "text": "ℹ️ This message is already being synced to ClickUp. "
                "Check the dashboard for its status.",
        "response_type": "ephemeral",
    }


class ResponseNotifier:
    """Posts JSON bodies to per-request Slack response URLs."""

    def __init__(
        self,
        timeout: float | None = None,
        client_factory: Callable[[str], AsyncWebhookClient] | None = None,
    ) -> None:
        if timeout is None:
            timeout = settings.callback_timeout_s
        # AsyncWebhookClient takes whole seconds
        self._timeout = max(1, math.ceil(timeout))
        self._client_factory = client_factory

    def _client(self, url: str) -> AsyncWebhookClient:
        if self._client_factory is not None:
            return self._client_factory(url)
        return AsyncWebhookClient(url, timeout=self._timeout)

    async def send(self, response_url: str | None, body: dict[str, Any]) -> bool:
        """Post ``body`` to ``response_url``. Returns False instead of raising."""
        if not response_url:
            logger.warning("callback_skipped_no_url")
            return False

        try:
            response = await self._client(response_url).send_dict(body)
        except Exception as e:
            logger.error("callback_post_failed", error=str(e))
            get_metrics().callback_failed()
            return False

        if response.status_code >= 300:
            logger.error(
                "callback_post_rejected",
                status=response.status_code,
                body=response.body,
            )
            get_metrics().callback_failed()
            return False

        return True
