"""Initial schema: workspaces, Slack→ClickUp mappings, thread context.

Revision ID: 3f9c1d2e7a40
Revises:
Create Date: 2026-10-19 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers
revision: str = "3f9c1d2e7a40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Workspaces
    op.create_table(
        "workspaces",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("slack_workspace_id", sa.String(255), nullable=False, comment="Slack team ID (T1234567890)"),
        sa.Column("slack_workspace_name", sa.String(255), nullable=True),
        sa.Column("slack_bot_token", sa.Text(), nullable=True),
        sa.Column("clickup_api_token", sa.Text(), nullable=True),
        sa.Column("clickup_team_id", sa.String(255), nullable=True),
        sa.Column("default_clickup_list_id", sa.String(255), nullable=True, comment="Fallback destination list"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("slack_workspace_id", name="uq_workspaces_slack_workspace_id"),
    )

    # Mappings
    op.create_table(
        "slack_clickup_mappings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("slack_message_id", sa.String(255), nullable=False),
        sa.Column("slack_channel_id", sa.String(255), nullable=False),
        sa.Column("slack_user_id", sa.String(255), nullable=False),
        sa.Column("slack_workspace_id", sa.String(255), nullable=False),
        sa.Column("slack_thread_ts", sa.String(255), nullable=True),
        sa.Column("slack_message_text", sa.Text(), nullable=False),
        sa.Column("slack_message_permalink", sa.Text(), nullable=True),
        sa.Column("slack_channel_name", sa.String(255), nullable=True),
        sa.Column("slack_user_name", sa.String(255), nullable=True),
        sa.Column("clickup_task_id", sa.String(255), nullable=True),
        sa.Column("clickup_list_id", sa.String(255), nullable=False),
        sa.Column("clickup_task_url", sa.Text(), nullable=True),
        sa.Column("clickup_task_name", sa.String(500), nullable=True),
        sa.Column("sync_status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("workspace_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("slack_message_id", "slack_workspace_id", name="uq_mapping_message_workspace"),
        sa.CheckConstraint(
            "sync_status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_mapping_sync_status",
        ),
    )
    op.create_index("idx_slack_clickup_workspace", "slack_clickup_mappings", ["slack_workspace_id"])
    op.create_index("idx_slack_clickup_status", "slack_clickup_mappings", ["sync_status"])
    op.create_index("idx_slack_clickup_created", "slack_clickup_mappings", ["created_at"])

    # Thread context
    op.create_table(
        "slack_thread_context",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("mapping_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("slack_clickup_mappings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("thread_message_id", sa.String(255), nullable=False),
        sa.Column("thread_user_id", sa.String(255), nullable=False),
        sa.Column("thread_user_name", sa.String(255), nullable=True),
        sa.Column("thread_message_text", sa.Text(), nullable=False),
        sa.Column("thread_timestamp", sa.String(255), nullable=False),
        sa.Column("message_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_thread_context_mapping", "slack_thread_context", ["mapping_id", "message_order"])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("slack_thread_context")
    op.drop_table("slack_clickup_mappings")
    op.drop_table("workspaces")
