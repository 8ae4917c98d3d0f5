"""Slack context enrichment: authors, channels, thread replies.

Every lookup here is best effort. A Slack error (missing scope, deleted
user, archived channel, network) is logged and degrades to ``None`` or an
empty thread; it never aborts the sync. Rate-limited calls are retried a
few times with backoff before degrading.
"""

from __future__ import annotations

import asyncio
import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from contextlayer.config import settings
from contextlayer.errors import EnrichmentError
from contextlayer.observability.metrics import get_metrics

logger = structlog.get_logger()

_PAGE_SIZE = 200


@dataclass
class SlackUser:
    """The parts of a users.info profile used for attribution."""

    id: str
    name: str | None = None
    real_name: str | None = None
    display_name: str | None = None

    @property
    def label(self) -> str | None:
        return self.display_name or self.real_name or None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SlackUser:
        profile = data.get("profile") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name") or None,
            real_name=data.get("real_name") or profile.get("real_name") or None,
            display_name=profile.get("display_name") or None,
        )


@dataclass
class SlackChannel:
    id: str
    name: str | None = None


@dataclass
class SlackThreadMessage:
    """A message in a thread, root first."""

    ts: str
    user: str
    text: str
    user_name: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SlackThreadMessage:
        return cls(
            ts=data.get("ts", ""),
            user=data.get("user") or data.get("bot_id") or "unknown",
            text=data.get("text", ""),
            user_name=data.get("user_name"),
        )


def slack_error_message(exc: BaseException) -> EnrichmentError:
    """Normalize any Slack client failure into an EnrichmentError."""
    if isinstance(exc, SlackApiError):
        response = exc.response
        code = response.get("error") if response is not None else None
        status = getattr(response, "status_code", None)
        return EnrichmentError(code or str(exc), status_code=status)
    return EnrichmentError(str(exc) or type(exc).__name__)


def _is_rate_limited(exc: BaseException) -> bool:
    if not isinstance(exc, SlackApiError) or exc.response is None:
        return False
    return (
        getattr(exc.response, "status_code", None) == 429
        or exc.response.get("error") == "ratelimited"
    )


class SlackContextClient:
    """Fetches enrichment data from the Slack Web API with a workspace bot token."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        message_cap: int | None = None,
        rate_limit_attempts: int | None = None,
        client_factory: Callable[[str], AsyncWebClient] | None = None,
    ) -> None:
        self._base_url = base_url or settings.slack_api_url
        if timeout is None:
            timeout = settings.http_timeout_s
        # AsyncWebClient takes whole seconds
        self._timeout = max(1, math.ceil(timeout))
        self._message_cap = message_cap or settings.thread_message_cap
        self._attempts = max(1, rate_limit_attempts or settings.slack_rate_limit_attempts)
        self._client_factory = client_factory or self._build_client
        self._clients: dict[str, AsyncWebClient] = {}

    def _build_client(self, token: str) -> AsyncWebClient:
        return AsyncWebClient(token=token, base_url=self._base_url, timeout=self._timeout)

    def _client(self, token: str) -> AsyncWebClient:
        """One client per bot token, reused across syncs for that workspace."""
        client = self._clients.get(token)
        if client is None:
            client = self._clients[token] = self._client_factory(token)
        return client

    async def _call(self, client: AsyncWebClient, method: str, **kwargs: Any) -> Any:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_rate_limited),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        ):
            with attempt:
                return await getattr(client, method)(**kwargs)

    def _degraded(self, kind: str, exc: BaseException, **context: Any) -> None:
        error = slack_error_message(exc)
        logger.warning(
            "slack_enrichment_degraded",
            kind=kind,
            error=error.message,
            status=error.status_code,
            **context,
        )
        get_metrics().enrichment_degraded(kind)

    async def fetch_user(self, token: str, user_id: str) -> SlackUser | None:
        """users.info → SlackUser, or None on any error."""
        try:
            response = await self._call(self._client(token), "users_info", user=user_id)
        except Exception as e:
            self._degraded("user", e, user_id=user_id)
            return None
        return SlackUser.from_api(response.get("user") or {"id": user_id})

    async def fetch_channel(self, token: str, channel_id: str) -> SlackChannel | None:
        """conversations.info → SlackChannel, or None on any error."""
        try:
            response = await self._call(
                self._client(token), "conversations_info", channel=channel_id
            )
        except Exception as e:
            self._degraded("channel", e, channel_id=channel_id)
            return None
        channel = response.get("channel") or {}
        return SlackChannel(id=channel.get("id", channel_id), name=channel.get("name"))

    async def fetch_thread_replies(
        self, token: str, channel_id: str, thread_ts: str
    ) -> list[SlackThreadMessage]:
        """conversations.replies, oldest first with the root at index 0.

        Follows cursor pagination up to the configured message cap.
        Returns an empty list on any error.
        """
        client = self._client(token)
        raw: list[dict[str, Any]] = []
        cursor: str | None = None
        try:
            while True:
                kwargs: dict[str, Any] = {
                    "channel": channel_id,
                    "ts": thread_ts,
                    "limit": min(_PAGE_SIZE, self._message_cap),
                }
                if cursor:
                    kwargs["cursor"] = cursor
                response = await self._call(client, "conversations_replies", **kwargs)
                raw.extend(response.get("messages") or [])
                cursor = (response.get("response_metadata") or {}).get("next_cursor")
                if not cursor or len(raw) >= self._message_cap:
                    break
        except Exception as e:
            self._degraded("thread", e, channel_id=channel_id, thread_ts=thread_ts)
            return []

        messages = [SlackThreadMessage.from_api(m) for m in raw[: self._message_cap]]
        logger.info("slack_thread_fetched", channel_id=channel_id, messages=len(messages))
        return messages

    async def resolve_user_names(
        self,
        token: str,
        messages: list[SlackThreadMessage],
        known: dict[str, str] | None = None,
    ) -> list[SlackThreadMessage]:
        """Fill ``user_name`` on thread messages, one lookup per distinct author.

        Authors that cannot be resolved keep ``user_name=None`` and are
        rendered by their raw id.
        """
        names: dict[str, str] = dict(known or {})
        pending = sorted({m.user for m in messages if not m.user_name and m.user not in names})
        if pending:
            users = await asyncio.gather(*(self.fetch_user(token, uid) for uid in pending))
            for uid, user in zip(pending, users):
                if user is not None and user.label:
                    names[uid] = user.label

        return [
            m if m.user_name else dataclasses.replace(m, user_name=names.get(m.user))
            for m in messages
        ]
