"""Typed view of a Slack message-action request.

Slack posts interactivity requests as ``application/x-www-form-urlencoded``
with a single ``payload`` field holding JSON. Only the fields the sync
pipeline reads are modeled; everything else is ignored.
"""

from __future__ import annotations

import json
from urllib.parse import parse_qs

from pydantic import BaseModel, ValidationError

from contextlayer.errors import InvalidPayload


class SlackTeamRef(BaseModel):
    id: str
    domain: str | None = None


class SlackChannelRef(BaseModel):
    id: str
    name: str | None = None


class SlackUserRef(BaseModel):
    id: str
    name: str | None = None


class SlackMessagePayload(BaseModel):
    ts: str
    text: str = ""
    user: str | None = None
    bot_id: str | None = None
    thread_ts: str | None = None
    permalink: str | None = None

    @property
    def author_id(self) -> str:
        return self.user or self.bot_id or "unknown"


class MessageAction(BaseModel):
    type: str = "message_action"
    callback_id: str | None = None
    team: SlackTeamRef
    channel: SlackChannelRef
    user: SlackUserRef
    message: SlackMessagePayload
    response_url: str

    @property
    def sync_key(self) -> str:
        """Stable identifier for logs: team:channel:ts."""
        return f"{self.team.id}:{self.channel.id}:{self.message.ts}"


def parse_message_action(raw_body: bytes) -> MessageAction:
    """Decode the form body and validate the embedded JSON payload."""
    try:
        form = parse_qs(raw_body.decode("utf-8"), strict_parsing=False)
    except UnicodeDecodeError as e:
        raise InvalidPayload("Body is not valid UTF-8") from e

    values = form.get("payload")
    if not values:
        raise InvalidPayload("Missing payload field")

    try:
        data = json.loads(values[0])
    except json.JSONDecodeError as e:
        raise InvalidPayload(f"Payload is not valid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise InvalidPayload("Payload must be a JSON object")

    try:
        return MessageAction.model_validate(data)
    except ValidationError as e:
        raise InvalidPayload(f"Payload missing required fields: {e.error_count()} errors") from e
