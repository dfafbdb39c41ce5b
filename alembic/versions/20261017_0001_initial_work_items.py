"""Initial work-item orchestration schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("project_id"),
    )

    op.create_table(
        "work_items",
        sa.Column("item_id", sa.String(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("parent_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("item_type", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("assigned_agent", sa.String(), nullable=True),
        sa.Column("claimed_by_instance", sa.String(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["work_items.item_id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("item_id"),
    )
    op.create_index("ix_work_items_project_id", "work_items", ["project_id"], unique=False)
    op.create_index("ix_work_items_parent_id", "work_items", ["parent_id"], unique=False)
    op.create_index("ix_work_items_item_type", "work_items", ["item_type"], unique=False)
    op.create_index("ix_work_items_status", "work_items", ["status"], unique=False)
    op.create_index(
        "ix_work_items_claimed_by_instance",
        "work_items",
        ["claimed_by_instance"],
        unique=False,
    )
    op.create_index(
        "idx_work_items_queue",
        "work_items",
        ["status", "item_type", "priority", "created_at"],
        unique=False,
    )

    op.create_table(
        "agent_instances",
        sa.Column("instance_id", sa.String(), nullable=False),
        sa.Column("agent_type", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("instance_id"),
    )
    op.create_index("ix_agent_instances_agent_type", "agent_instances", ["agent_type"])
    op.create_index("ix_agent_instances_status", "agent_instances", ["status"])

    op.create_table(
        "agent_activity",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("work_item_id", sa.String(), nullable=True),
        sa.Column("agent_type", sa.String(), nullable=False),
        sa.Column("agent_instance_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["work_item_id"], ["work_items.item_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_agent_activity_action", "agent_activity", ["action"])
    op.create_index(
        "idx_agent_activity_item_time",
        "agent_activity",
        ["work_item_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "handoff_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source_work_item_id", sa.String(), nullable=False),
        sa.Column("target_work_item_ids_json", sa.Text(), nullable=False),
        sa.Column("from_agent_type", sa.String(), nullable=False),
        sa.Column("from_agent_instance", sa.String(), nullable=True),
        sa.Column("to_agent_type", sa.String(), nullable=False, server_default=""),
        sa.Column("output_json", sa.Text(), nullable=True),
        sa.Column("validation_passed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["source_work_item_id"],
            ["work_items.item_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_handoff_history_source_work_item_id",
        "handoff_history",
        ["source_work_item_id"],
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("work_item_id", sa.String(), nullable=False),
        sa.Column("author_agent", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_system_message", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["work_item_id"], ["work_items.item_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comments_work_item_id", "comments", ["work_item_id"])

    op.create_table(
        "agent_rate_limits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agent_instance_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_agent_rate_limits_window",
        "agent_rate_limits",
        ["agent_instance_id", "action", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_agent_rate_limits_window", table_name="agent_rate_limits")
    op.drop_table("agent_rate_limits")
    op.drop_index("ix_comments_work_item_id", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_handoff_history_source_work_item_id", table_name="handoff_history")
    op.drop_table("handoff_history")
    op.drop_index("idx_agent_activity_item_time", table_name="agent_activity")
    op.drop_index("ix_agent_activity_action", table_name="agent_activity")
    op.drop_table("agent_activity")
    op.drop_index("ix_agent_instances_status", table_name="agent_instances")
    op.drop_index("ix_agent_instances_agent_type", table_name="agent_instances")
    op.drop_table("agent_instances")
    op.drop_index("idx_work_items_queue", table_name="work_items")
    op.drop_index("ix_work_items_claimed_by_instance", table_name="work_items")
    op.drop_index("ix_work_items_status", table_name="work_items")
    op.drop_index("ix_work_items_item_type", table_name="work_items")
    op.drop_index("ix_work_items_parent_id", table_name="work_items")
    op.drop_index("ix_work_items_project_id", table_name="work_items")
    op.drop_table("work_items")
    op.drop_table("projects")
