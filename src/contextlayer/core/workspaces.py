"""Workspace directory: per-Slack-team configuration lookups.

The sync pipeline only reads workspaces. Writes come from the
``/api/workspace`` endpoint, an upsert keyed on the Slack team id.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contextlayer.db.models import Workspace
from contextlayer.db.session import db_session
from contextlayer.errors import PersistenceError, WorkspaceNotConfigured

logger = structlog.get_logger()

WRITABLE_FIELDS = frozenset({
    "slack_workspace_name",
    "slack_bot_token",
    "clickup_api_token",
    "clickup_team_id",
    "default_clickup_list_id",
    "is_active",
})


class WorkspaceDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_active(self, slack_workspace_id: str) -> Workspace:
        """Active workspace for a Slack team id, or WorkspaceNotConfigured."""
        try:
            async with db_session(self._session_factory) as db:
                workspace = await db.scalar(
                    select(Workspace).where(
                        Workspace.slack_workspace_id == slack_workspace_id,
                        Workspace.is_active.is_(True),
                    )
                )
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

        if workspace is None:
            logger.warning("workspace_not_configured", team_id=slack_workspace_id)
            raise WorkspaceNotConfigured(slack_workspace_id)
        return workspace

    async def upsert(self, slack_workspace_id: str, **fields: Any) -> Workspace:
        """Create or update the workspace for ``slack_workspace_id``.

        Fields passed as None are left unchanged on update.
        """
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Not a workspace field: {', '.join(sorted(unknown))}")
        values = {k: v for k, v in fields.items() if v is not None}

        try:
            return await self._upsert(slack_workspace_id, values)
        except IntegrityError:
            # Another request inserted the same team first; update that row.
            try:
                return await self._upsert(slack_workspace_id, values)
            except SQLAlchemyError as e:
                raise PersistenceError(str(e)) from e
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    async def _upsert(self, slack_workspace_id: str, values: dict[str, Any]) -> Workspace:
        async with db_session(self._session_factory) as db:
            workspace = await db.scalar(
                select(Workspace).where(Workspace.slack_workspace_id == slack_workspace_id)
            )
            if workspace is None:
                workspace = Workspace(slack_workspace_id=slack_workspace_id, **values)
                db.add(workspace)
                event = "workspace_created"
            else:
                for name, value in values.items():
                    setattr(workspace, name, value)
                event = "workspace_updated"
            await db.flush()
            await db.refresh(workspace)
        logger.info(event, team_id=slack_workspace_id, workspace_id=str(workspace.id))
        return workspace

    async def list_active(self) -> list[Workspace]:
        """Active workspaces, newest first."""
        try:
            async with db_session(self._session_factory) as db:
                result = await db.scalars(
                    select(Workspace)
                    .where(Workspace.is_active.is_(True))
                    .order_by(Workspace.created_at.desc(), Workspace.slack_workspace_id)
                )
                return list(result)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
