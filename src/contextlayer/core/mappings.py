"""Mapping lifecycle: the persisted state machine of one sync attempt.

    pending ──▶ processing ──▶ completed
       │             │
       └─────────────┴──▶ failed ──(manual requeue)──▶ pending

Every state change is a conditional UPDATE guarded on the allowed source
states. A writer that lost a race updates zero rows and gets an error
instead of overwriting newer state. This is also what keeps a manual
requeue from touching an attempt that is still in flight: only ``failed``
rows can be requeued.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, AsyncGenerator
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from contextlayer.db.models import Mapping, SyncStatus, ThreadContextEntry, Workspace
from contextlayer.db.session import db_session
from contextlayer.errors import (
    ContextLayerError,
    DuplicateMapping,
    InvalidTransition,
    MappingNotFound,
    PersistenceError,
)
from contextlayer.slack.context import SlackThreadMessage
from contextlayer.slack.payloads import MessageAction

logger = structlog.get_logger()

# target state -> states it may be entered from
ALLOWED_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.PROCESSING: frozenset({SyncStatus.PENDING}),
    SyncStatus.COMPLETED: frozenset({SyncStatus.PROCESSING}),
    SyncStatus.FAILED: frozenset({SyncStatus.PROCESSING}),
}

_FAILABLE = frozenset({SyncStatus.PENDING, SyncStatus.PROCESSING})
_ANNOTATABLE = frozenset({SyncStatus.PENDING, SyncStatus.PROCESSING})

RESULT_FIELDS = frozenset({
    "clickup_task_id",
    "clickup_task_url",
    "clickup_task_name",
    "slack_channel_name",
    "slack_user_name",
    "error_message",
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MappingDraft:
    """Fields needed to open a mapping for a message action."""

    slack_message_id: str
    slack_channel_id: str
    slack_user_id: str
    slack_workspace_id: str
    slack_message_text: str
    clickup_list_id: str
    workspace_id: UUID
    slack_thread_ts: str | None = None
    slack_message_permalink: str | None = None

    @classmethod
    def from_action(cls, action: MessageAction, workspace: Workspace) -> MappingDraft:
        message = action.message
        return cls(
            slack_message_id=message.ts,
            slack_channel_id=action.channel.id,
            slack_user_id=message.author_id,
            slack_workspace_id=action.team.id,
            slack_message_text=message.text,
            clickup_list_id=workspace.default_clickup_list_id or "",
            workspace_id=workspace.id,
            slack_thread_ts=message.thread_ts,
            slack_message_permalink=message.permalink,
        )


class MappingLifecycleManager:
    """Creates, advances and reads mappings. One short transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with db_session(self._session_factory) as db:
                yield db
        except ContextLayerError:
            raise
        except SQLAlchemyError as e:
            logger.error("mapping_persistence_error", error=str(e))
            raise PersistenceError(str(e)) from e

    # ── Writes ──────────────────────────────────────────────────────

    async def create(self, draft: MappingDraft) -> Mapping:
        """Insert a new mapping in ``pending``.

        Raises DuplicateMapping when the message already has a mapping in
        this workspace; callers treat that as "already being handled".
        """
        mapping = Mapping(**asdict(draft), sync_status=SyncStatus.PENDING.value)
        try:
            async with db_session(self._session_factory) as db:
                db.add(mapping)
                await db.flush()
        except IntegrityError as e:
            if await self._exists(draft.slack_message_id, draft.slack_workspace_id):
                logger.info(
                    "mapping_duplicate",
                    slack_message_id=draft.slack_message_id,
                    team_id=draft.slack_workspace_id,
                )
                raise DuplicateMapping(draft.slack_message_id, draft.slack_workspace_id) from e
            raise PersistenceError(str(e.orig or e)) from e
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

        logger.info("mapping_created", mapping_id=str(mapping.id), team_id=draft.slack_workspace_id)
        return mapping

    async def transition(
        self, mapping_id: UUID, new_state: SyncStatus | str, **fields: Any,
    ) -> Mapping:
        """Move a mapping to ``new_state`` and write any result fields."""
        target = SyncStatus(new_state)
        sources = ALLOWED_TRANSITIONS.get(target)
        if sources is None:
            current = await self._current_status(mapping_id)
            raise InvalidTransition(mapping_id, current, target.value)
        self._check_fields(fields)
        mapping = await self._compare_and_set(
            mapping_id, sources, target.value, {"sync_status": target.value, **fields},
        )
        logger.info("mapping_transitioned", mapping_id=str(mapping_id), status=target.value)
        return mapping

    async def annotate(self, mapping_id: UUID, **fields: Any) -> Mapping:
        """Write result/enrichment fields without changing status."""
        self._check_fields(fields)
        return await self._compare_and_set(mapping_id, _ANNOTATABLE, None, fields)

    async def record_failure(self, mapping_id: UUID | None, message: str) -> Mapping | None:
        """Mark ``failed``, store the message and bump retry_count.

        With no mapping (the failure happened before one was created) there
        is nothing to persist; the caller reports through the callback only.
        """
        if mapping_id is None:
            logger.info("failure_not_persisted_no_mapping", error=message)
            return None
        mapping = await self._compare_and_set(
            mapping_id,
            _FAILABLE,
            SyncStatus.FAILED.value,
            {
                "sync_status": SyncStatus.FAILED.value,
                "error_message": message,
                "retry_count": Mapping.retry_count + 1,
            },
        )
        logger.warning(
            "mapping_failed",
            mapping_id=str(mapping_id),
            retry_count=mapping.retry_count,
            error=message,
        )
        return mapping

    async def requeue(self, mapping_id: UUID) -> Mapping:
        """Manual retry: ``failed`` → ``pending``, error cleared, retry_count kept."""
        try:
            mapping = await self._compare_and_set(
                mapping_id,
                frozenset({SyncStatus.FAILED}),
                SyncStatus.PENDING.value,
                {"sync_status": SyncStatus.PENDING.value, "error_message": None},
            )
        except InvalidTransition as e:
            raise MappingNotFound(mapping_id) from e
        logger.info("mapping_requeued", mapping_id=str(mapping_id), retry_count=mapping.retry_count)
        return mapping

    async def attach_thread_context(
        self, mapping_id: UUID, entries: list[SlackThreadMessage],
    ) -> int:
        """Bulk-insert thread messages in order (root = 0). Empty input is a no-op."""
        if not entries:
            return 0
        rows = [
            ThreadContextEntry(
                mapping_id=mapping_id,
                thread_message_id=entry.ts,
                thread_user_id=entry.user,
                thread_user_name=entry.user_name,
                thread_message_text=entry.text,
                thread_timestamp=entry.ts,
                message_order=index,
            )
            for index, entry in enumerate(entries)
        ]
        async with self._session() as db:
            db.add_all(rows)
        logger.info("thread_context_saved", mapping_id=str(mapping_id), messages=len(rows))
        return len(rows)

    # ── Reads ───────────────────────────────────────────────────────

    async def get(self, mapping_id: UUID) -> Mapping | None:
        """Mapping with its workspace and ordered thread context."""
        async with self._session() as db:
            return await db.scalar(
                select(Mapping)
                .where(Mapping.id == mapping_id)
                .options(selectinload(Mapping.workspace), selectinload(Mapping.thread_context))
            )

    async def list_mappings(
        self,
        limit: int = 50,
        offset: int = 0,
        workspace_id: str | None = None,
        sync_status: str | None = None,
    ) -> tuple[list[Mapping], int]:
        """Newest-first page of mappings plus the total matching count.

        ``workspace_id`` accepts either the workspace UUID or the Slack team id.
        """
        conditions = []
        if workspace_id:
            try:
                conditions.append(Mapping.workspace_id == UUID(workspace_id))
            except ValueError:
                conditions.append(Mapping.slack_workspace_id == workspace_id)
        if sync_status:
            conditions.append(Mapping.sync_status == sync_status)

        async with self._session() as db:
            total = await db.scalar(
                select(func.count()).select_from(Mapping).where(*conditions)
            )
            result = await db.scalars(
                select(Mapping)
                .where(*conditions)
                .order_by(Mapping.created_at.desc(), Mapping.id)
                .limit(limit)
                .offset(offset)
            )
            return list(result), int(total or 0)

    async def list_failed(self, max_retries: int) -> list[Mapping]:
        """Failed mappings that have not yet exhausted ``max_retries``."""
        async with self._session() as db:
            result = await db.scalars(
                select(Mapping)
                .where(
                    Mapping.sync_status == SyncStatus.FAILED.value,
                    Mapping.retry_count < max_retries,
                )
                .order_by(Mapping.created_at.desc(), Mapping.id)
            )
            return list(result)

    # ── Internals ───────────────────────────────────────────────────

    @staticmethod
    def _check_fields(fields: dict[str, Any]) -> None:
        unknown = set(fields) - RESULT_FIELDS
        if unknown:
            raise ValueError(f"Not a mapping result field: {', '.join(sorted(unknown))}")

    async def _exists(self, slack_message_id: str, slack_workspace_id: str) -> bool:
        async with self._session() as db:
            found = await db.scalar(
                select(Mapping.id).where(
                    Mapping.slack_message_id == slack_message_id,
                    Mapping.slack_workspace_id == slack_workspace_id,
                )
            )
            return found is not None

    async def _current_status(self, mapping_id: UUID) -> str:
        async with self._session() as db:
            current = await db.scalar(select(Mapping.sync_status).where(Mapping.id == mapping_id))
        if current is None:
            raise MappingNotFound(mapping_id)
        return current

    async def _compare_and_set(
        self,
        mapping_id: UUID,
        sources: frozenset[SyncStatus],
        target: str | None,
        values: dict[str, Any],
    ) -> Mapping:
        async with self._session() as db:
            result = await db.execute(
                update(Mapping)
                .where(
                    Mapping.id == mapping_id,
                    Mapping.sync_status.in_([s.value for s in sources]),
                )
                .values(**values, updated_at=_utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                current = await db.scalar(
                    select(Mapping.sync_status).where(Mapping.id == mapping_id)
                )
                if current is None:
                    raise MappingNotFound(mapping_id)
                raise InvalidTransition(mapping_id, current, target or current)

            return await db.scalar(
                select(Mapping)
                .where(Mapping.id == mapping_id)
                .execution_options(populate_existing=True)
            )
