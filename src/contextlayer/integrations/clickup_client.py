"""ClickUp REST API client: task creation.

One call, no internal retry. Whether and when to retry is decided by the
operator (manual re-queue), because a retried POST can create a second task.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from contextlayer.config import settings
from contextlayer.errors import DownstreamAPIError
from contextlayer.observability.metrics import get_metrics

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClickUpTask:
    id: str
    url: str | None
    name: str


def clickup_error_message(response: httpx.Response) -> str:
    """Extract a readable error from a ClickUp error response.

    ClickUp usually answers ``{"err": "...", "ECODE": "..."}``; some
    endpoints and proxies use ``error`` or return non-JSON bodies.
    """
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("err") or data.get("error")
        if isinstance(message, dict):
            message = message.get("message")
        if message:
            return str(message)
    return response.reason_phrase or f"HTTP {response.status_code}"


class ClickUpClient:
    """Async client for the ClickUp v2 API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.clickup_api_url).rstrip("/")
        self._timeout = settings.http_timeout_s if timeout is None else timeout
        self._transport = transport

    async def create_task(
        self, api_token: str, list_id: str, payload: dict[str, Any],
    ) -> ClickUpTask:
        """Create a task in ``list_id``. Raises DownstreamAPIError on any failure."""
        started = time.monotonic()
        ok = False
        try:
            task = await self._post_task(api_token, list_id, payload)
            ok = True
            return task
        finally:
            get_metrics().clickup_request((time.monotonic() - started) * 1000, ok=ok)

    async def _post_task(
        self, api_token: str, list_id: str, payload: dict[str, Any],
    ) -> ClickUpTask:
        url = f"{self._base_url}/list/{list_id}/task"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport,
            ) as client:
                resp = await client.post(
                    url,
                    headers={"Authorization": api_token, "Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error("clickup_request_failed", list_id=list_id, error=str(e))
            raise DownstreamAPIError(str(e) or type(e).__name__) from e

        if resp.status_code >= 400:
            message = clickup_error_message(resp)
            logger.error(
                "clickup_api_error",
                list_id=list_id,
                status=resp.status_code,
                error=message,
            )
            raise DownstreamAPIError(message, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise DownstreamAPIError("Response was not valid JSON", resp.status_code) from e

        task_id = data.get("id") if isinstance(data, dict) else None
        if not task_id:
            raise DownstreamAPIError("Response did not include a task id", resp.status_code)

        task = ClickUpTask(
            id=str(task_id),
            url=data.get("url"),
            name=data.get("name") or payload.get("name", ""),
        )
        logger.info("clickup_task_created", task_id=task.id, list_id=list_id)
        return task
