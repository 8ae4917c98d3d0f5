"""Slack interactivity endpoint for the "Create ClickUp task" message action."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from contextlayer.config import settings
from contextlayer.core.orchestrator import SyncContext, SyncOrchestrator
from contextlayer.slack.notifier import ack_message
from contextlayer.slack.payloads import parse_message_action
from contextlayer.slack.verification import verify_slack_request

logger = structlog.get_logger()

router = APIRouter(tags=["slack"])


@router.post("/slack/message-action")
async def message_action(request: Request) -> Any:
    """Verify, acknowledge, and sync the message in the background.

    Verification runs on the raw body bytes exactly as received; the body
    is only parsed after the signature matches.
    """
    context: SyncContext = request.app.state.context
    if not context.signing_secret:
        logger.error("slack_signing_secret_not_configured")
        return JSONResponse(status_code=500, content={"error": "signing_secret_not_configured"})

    raw_body = await request.body()
    verify_slack_request(
        raw_body,
        request.headers.get("X-Slack-Signature"),
        request.headers.get("X-Slack-Request-Timestamp"),
        context.signing_secret,
        max_age=settings.signature_max_age_s,
    )
    action = parse_message_action(raw_body)

    logger.info(
        "message_action_received",
        team_id=action.team.id,
        channel_id=action.channel.id,
        user_id=action.user.id,
        callback_id=action.callback_id,
    )
    context.runner.submit(SyncOrchestrator(context).run(action), key=action.sync_key)
    return ack_message()
