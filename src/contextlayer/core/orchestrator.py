"""Sync orchestration: one Slack message action → one ClickUp task.

Stages, in order:

    received → workspace_resolved → mapping_created → enriched
             → task_created → notified
    any failure ──────────────────────────────▶ failed_notified

The orchestrator is the error boundary of a sync. Once a mapping exists,
every exception ends in ``record_failure`` so the row never stays in
``processing``, and every run ends with exactly one callback attempt to the
Slack response_url. ``run`` never raises.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contextlayer.config import Settings, settings
from contextlayer.core.formatter import build_task_payload, format_task_description
from contextlayer.core.mappings import MappingDraft, MappingLifecycleManager
from contextlayer.core.task_manager import SyncRunner
from contextlayer.core.workspaces import WorkspaceDirectory
from contextlayer.db.models import SyncStatus, Workspace
from contextlayer.db.session import get_sessionmaker
from contextlayer.errors import ContextLayerError, DuplicateMapping, PersistenceError
from contextlayer.integrations.clickup_client import ClickUpClient, ClickUpTask
from contextlayer.observability.metrics import get_metrics
from contextlayer.slack.context import (
    SlackChannel,
    SlackContextClient,
    SlackThreadMessage,
    SlackUser,
)
from contextlayer.slack.notifier import (
    ResponseNotifier,
    duplicate_message,
    failure_message,
    success_message,
)
from contextlayer.slack.payloads import MessageAction

logger = structlog.get_logger()


class SyncStage(str, Enum):
    RECEIVED = "received"
    WORKSPACE_RESOLVED = "workspace_resolved"
    MAPPING_CREATED = "mapping_created"
    ENRICHED = "enriched"
    TASK_CREATED = "task_created"
    NOTIFIED = "notified"
    FAILED_NOTIFIED = "failed_notified"


@dataclass
class SyncResult:
    """Outcome of one orchestrator run."""

    stage: SyncStage = SyncStage.RECEIVED
    mapping_id: UUID | None = None
    task: ClickUpTask | None = None
    error: str | None = None
    duplicate: bool = False
    callback_delivered: bool = False

    @property
    def succeeded(self) -> bool:
        return self.task is not None and self.error is None


@dataclass
class SyncContext:
    """Collaborators shared by the orchestrator and the HTTP layer."""

    session_factory: async_sessionmaker[AsyncSession]
    signing_secret: str
    slack: SlackContextClient
    clickup: ClickUpClient
    notifier: ResponseNotifier
    runner: SyncRunner = field(default_factory=SyncRunner)
    mappings: MappingLifecycleManager = field(init=False)
    workspaces: WorkspaceDirectory = field(init=False)

    def __post_init__(self) -> None:
        self.mappings = MappingLifecycleManager(self.session_factory)
        self.workspaces = WorkspaceDirectory(self.session_factory)

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> SyncContext:
        config = config or settings
        return cls(
            session_factory=session_factory or get_sessionmaker(),
            signing_secret=config.slack_signing_secret,
            slack=SlackContextClient(
                base_url=config.slack_api_url,
                timeout=config.http_timeout_s,
                message_cap=config.thread_message_cap,
                rate_limit_attempts=config.slack_rate_limit_attempts,
            ),
            clickup=ClickUpClient(
                base_url=config.clickup_api_url,
                timeout=config.http_timeout_s,
            ),
            notifier=ResponseNotifier(timeout=config.callback_timeout_s),
        )


@dataclass
class _Enrichment:
    author: SlackUser | None = None
    channel: SlackChannel | None = None
    thread: list[SlackThreadMessage] = field(default_factory=list)


def error_text(exc: BaseException) -> str:
    """User- and dashboard-facing text for a failed sync."""
    return str(exc) or type(exc).__name__


class SyncOrchestrator:
    """Runs the sync pipeline for one message action."""

    def __init__(self, context: SyncContext) -> None:
        self._ctx = context

    async def run(self, action: MessageAction) -> SyncResult:
        metrics = get_metrics()
        metrics.sync_started()
        started = time.monotonic()
        result = SyncResult()
        log = logger.bind(
            team_id=action.team.id,
            channel_id=action.channel.id,
            message_ts=action.message.ts,
        )
        log.info("sync_started")

        try:
            body = await self._sync(action, result, log)
        except DuplicateMapping as e:
            result.duplicate = True
            result.error = error_text(e)
            metrics.duplicate_action()
            log.info("sync_duplicate_ignored")
            body = duplicate_message()
        except Exception as e:
            result.error = error_text(e)
            log.error(
                "sync_failed",
                stage=result.stage.value,
                mapping_id=str(result.mapping_id) if result.mapping_id else None,
                error=result.error,
                exc_info=not isinstance(e, ContextLayerError),
            )
            await self._persist_failure(result, log)
            body = failure_message(result.error)

        result.callback_delivered = await self._ctx.notifier.send(action.response_url, body)
        result.stage = SyncStage.NOTIFIED if result.succeeded else SyncStage.FAILED_NOTIFIED

        elapsed_ms = (time.monotonic() - started) * 1000
        metrics.sync_finished(result.stage.value, elapsed_ms)
        log.info(
            "sync_finished",
            stage=result.stage.value,
            mapping_id=str(result.mapping_id) if result.mapping_id else None,
            callback_delivered=result.callback_delivered,
            elapsed_ms=round(elapsed_ms, 1),
        )
        return result

    async def _sync(self, action: MessageAction, result: SyncResult, log: Any) -> dict[str, Any]:
        workspace = await self._ctx.workspaces.get_active(action.team.id)
        result.stage = SyncStage.WORKSPACE_RESOLVED

        mapping = await self._ctx.mappings.create(MappingDraft.from_action(action, workspace))
        result.mapping_id = mapping.id
        result.stage = SyncStage.MAPPING_CREATED
        await self._ctx.mappings.transition(mapping.id, SyncStatus.PROCESSING)

        enrichment = await self._enrich(action, workspace)
        await self._ctx.mappings.annotate(
            mapping.id,
            slack_channel_name=enrichment.channel.name if enrichment.channel else None,
            slack_user_name=enrichment.author.label if enrichment.author else None,
        )
        result.stage = SyncStage.ENRICHED

        description = format_task_description(
            action.message, enrichment.author, enrichment.channel, enrichment.thread,
        )
        payload = build_task_payload(action.message, enrichment.channel, description)
        task = await self._ctx.clickup.create_task(
            workspace.clickup_api_token or "", mapping.clickup_list_id, payload,
        )
        result.task = task
        result.stage = SyncStage.TASK_CREATED

        await self._ctx.mappings.transition(
            mapping.id,
            SyncStatus.COMPLETED,
            clickup_task_id=task.id,
            clickup_task_url=task.url,
            clickup_task_name=task.name,
        )
        log.info("sync_task_linked", mapping_id=str(mapping.id), task_id=task.id)

        if len(enrichment.thread) > 1:
            try:
                await self._ctx.mappings.attach_thread_context(mapping.id, enrichment.thread)
            except PersistenceError as e:
                # The task exists and the mapping is completed; only the snapshot is lost.
                log.warning("thread_context_save_failed", mapping_id=str(mapping.id), error=str(e))

        return success_message(task)

    async def _enrich(self, action: MessageAction, workspace: Workspace) -> _Enrichment:
        slack = self._ctx.slack
        token = workspace.slack_bot_token or ""
        message = action.message

        author, channel = await asyncio.gather(
            slack.fetch_user(token, message.author_id),
            slack.fetch_channel(token, action.channel.id),
        )

        thread: list[SlackThreadMessage] = []
        if message.thread_ts:
            thread = await slack.fetch_thread_replies(token, action.channel.id, message.thread_ts)
            known = {author.id: author.label} if author and author.label else None
            thread = await slack.resolve_user_names(token, thread, known=known)

        return _Enrichment(author=author, channel=channel, thread=thread)

    async def _persist_failure(self, result: SyncResult, log: Any) -> None:
        if result.mapping_id is None:
            return
        try:
            await self._ctx.mappings.record_failure(result.mapping_id, result.error or "")
        except ContextLayerError as e:
            log.error(
                "sync_failure_not_persisted",
                mapping_id=str(result.mapping_id),
                error=str(e),
            )
