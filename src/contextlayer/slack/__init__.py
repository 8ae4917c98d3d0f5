"""Slack integration: request verification, payloads, enrichment, callbacks."""

from contextlayer.slack.context import (
    SlackChannel,
    SlackContextClient,
    SlackThreadMessage,
    SlackUser,
)
from contextlayer.slack.notifier import ResponseNotifier
from contextlayer.slack.payloads import MessageAction, parse_message_action
from contextlayer.slack.verification import compute_signature, verify_slack_request

__all__ = [
    "MessageAction",
    "ResponseNotifier",
    "SlackChannel",
    "SlackContextClient",
    "SlackThreadMessage",
    "SlackUser",
    "compute_signature",
    "parse_message_action",
    "verify_slack_request",
]
