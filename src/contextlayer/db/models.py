"""ContextLayer database models.

Three tables:
- workspaces: per-Slack-team configuration (bot token, ClickUp token, list)
- slack_clickup_mappings: one row per sync attempt of one Slack message
- slack_thread_context: thread messages captured alongside a mapping

(slack_message_id, slack_workspace_id) is unique: at most one mapping per
message per workspace. Child rows cascade with their parent.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class with common utilities."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dict for serialization."""
        return {
            c.name: getattr(self, c.name)
            for c in self.__table__.columns
        }


class SyncStatus(str, Enum):
    """Mapping lifecycle states."""
    PENDING = "pending"          # Created, not yet picked up
    PROCESSING = "processing"    # Enrichment / task creation in flight
    COMPLETED = "completed"      # ClickUp task created
    FAILED = "failed"            # Terminal until manually re-queued


class Workspace(Base):
    """Slack workspace configuration; the tenant boundary."""

    __tablename__ = "workspaces"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slack_workspace_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False,
        comment="Slack team ID (T1234567890)"
    )
    slack_workspace_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    slack_bot_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    clickup_api_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    clickup_team_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_clickup_list_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Fallback destination list"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    mappings: Mapped[list[Mapping]] = relationship(
        back_populates="workspace",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    SECRET_FIELDS = frozenset({"slack_bot_token", "clickup_api_token"})

    def to_public_dict(self) -> dict[str, Any]:
        """Serialization for HTTP responses: credentials are never exposed."""
        data = self.to_dict()
        for name in self.SECRET_FIELDS:
            data.pop(name, None)
        return data

    def __repr__(self) -> str:
        return f"<Workspace(slack_workspace_id='{self.slack_workspace_id}', active={self.is_active})>"


class Mapping(Base):
    """One attempt to sync a Slack message into a ClickUp task."""

    __tablename__ = "slack_clickup_mappings"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint(
            "slack_message_id", "slack_workspace_id",
            name="uq_mapping_message_workspace",
        ),
        CheckConstraint(
            "sync_status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_mapping_sync_status",
        ),
        Index("idx_slack_clickup_workspace", "slack_workspace_id"),
        Index("idx_slack_clickup_status", "sync_status"),
        Index("idx_slack_clickup_created", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Slack context
    slack_message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    slack_channel_id: Mapped[str] = mapped_column(String(255), nullable=False)
    slack_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    slack_workspace_id: Mapped[str] = mapped_column(String(255), nullable=False)
    slack_thread_ts: Mapped[str | None] = mapped_column(String(255), nullable=True)
    slack_message_text: Mapped[str] = mapped_column(Text, nullable=False)
    slack_message_permalink: Mapped[str | None] = mapped_column(Text, nullable=True)
    slack_channel_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    slack_user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ClickUp context
    clickup_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    clickup_list_id: Mapped[str] = mapped_column(String(255), nullable=False)
    clickup_task_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    clickup_task_name: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Processing status
    sync_status: Mapped[str] = mapped_column(
        String(50),
        default=SyncStatus.PENDING.value,
        server_default=SyncStatus.PENDING.value,
        nullable=False,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )

    workspace: Mapped[Workspace] = relationship(back_populates="mappings")
    thread_context: Mapped[list[ThreadContextEntry]] = relationship(
        back_populates="mapping",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ThreadContextEntry.message_order",
    )

    @property
    def is_terminal(self) -> bool:
        return self.sync_status in (SyncStatus.COMPLETED.value, SyncStatus.FAILED.value)

    def __repr__(self) -> str:
        return (f"<Mapping(id='{self.id}', message='{self.slack_message_id}', "
                f"status='{self.sync_status}')>")


class ThreadContextEntry(Base):
    """A single message of the thread a mapping was created from (root = 0)."""

    __tablename__ = "slack_thread_context"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        Index("idx_thread_context_mapping", "mapping_id", "message_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mapping_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("slack_clickup_mappings.id", ondelete="CASCADE"),
        nullable=False,
    )
    thread_message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    thread_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    thread_user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    thread_message_text: Mapped[str] = mapped_column(Text, nullable=False)
    thread_timestamp: Mapped[str] = mapped_column(String(255), nullable=False)
    message_order: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    mapping: Mapped[Mapping] = relationship(back_populates="thread_context")
