"""Render Slack context into a ClickUp task.

Pure functions: same inputs, byte-identical output. Timestamps are rendered
in UTC so the result does not depend on the host timezone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from contextlayer.slack.context import SlackChannel, SlackThreadMessage, SlackUser
from contextlayer.slack.payloads import SlackMessagePayload

TITLE_PREFIX_LENGTH = 100
ELLIPSIS = "..."
UNKNOWN = "Unknown"

DEFAULT_STATUS = "to do"
DEFAULT_PRIORITY = 3  # ClickUp: 1 urgent, 2 high, 3 normal, 4 low
TASK_TAGS = ("from-slack", "contextlayer")

FOOTER = "---\n*This task was created from Slack via ContextLayer*"


def format_slack_timestamp(ts: str) -> str:
    """``1712345678.000100`` → ``2024-04-05 19:34:38 UTC``."""
    try:
        moment = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return ts
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def author_label(author: SlackUser | None) -> str:
    if author is None:
        return UNKNOWN
    return author.label or UNKNOWN


def channel_label(channel: SlackChannel | None) -> str:
    if channel is None or not channel.name:
        return UNKNOWN
    return channel.name


def format_task_description(
    message: SlackMessagePayload,
    author: SlackUser | None,
    channel: SlackChannel | None,
    thread_messages: list[SlackThreadMessage] | None = None,
) -> str:
    """Markdown description carrying the message, its author, channel and thread."""
    thread_messages = thread_messages or []
    lines = [
        "**📝 Original Slack Message**",
        "",
        f"**From:** @{author_label(author)}",
        f"**Channel:** #{channel_label(channel)}",
        f"**When:** {format_slack_timestamp(message.ts)}",
    ]
    if message.permalink:
        # The header block only gets a trailing blank line when it ends with a link
        lines += [f"**Link:** {message.permalink}", ""]
    lines += ["**Message:**", message.text, ""]

    if len(thread_messages) > 1:
        replies = thread_messages[1:]
        lines += [f"**🧵 Thread Context ({len(replies)} replies):**", ""]
        for i, reply in enumerate(replies, start=1):
            lines.append(f"**Reply {i}** by @{reply.user_name or reply.user}:")
            lines += [reply.text, ""]

    lines.append(FOOTER)
    return "\n".join(lines)


def task_title(message_text: str, channel_name: str | None) -> str:
    """``Task from #<channel>: <first 100 chars>...``"""
    prefix = message_text[:TITLE_PREFIX_LENGTH]
    if len(message_text) > TITLE_PREFIX_LENGTH:
        prefix += ELLIPSIS
    return f"Task from #{channel_name or 'slack'}: {prefix}"


def build_task_payload(
    message: SlackMessagePayload,
    channel: SlackChannel | None,
    description: str,
) -> dict[str, Any]:
    """Body for ClickUp's create-task endpoint."""
    return {
        "name": task_title(message.text, channel.name if channel else None),
        "description": description,
        "assignees": [],
        "status": DEFAULT_STATUS,
        "priority": DEFAULT_PRIORITY,
        "tags": list(TASK_TAGS),
    }
