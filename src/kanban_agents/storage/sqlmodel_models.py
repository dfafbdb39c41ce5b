"""SQLModel ORM tables for the work-item store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, text
from sqlmodel import Field, SQLModel


class Project(SQLModel, table=True):
    __tablename__ = "projects"  # type: ignore[bad-override]

    project_id: str = Field(primary_key=True)
    name: str
    description: str | None = Field(default=None, sa_column=Column(Text))
    created_by: str | None = None
    metadata_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class WorkItem(SQLModel, table=True):
    __tablename__ = "work_items"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_work_items_queue", "status", "item_type", "priority", "created_at"),
    )

    item_id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    parent_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("work_items.item_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    title: str
    description: str = Field(
        default="",
        sa_column=Column(Text, nullable=False, server_default=""),
    )
    item_type: str = Field(index=True)
    priority: str = Field(default="medium")
    status: str = Field(index=True)
    assigned_agent: str | None = None
    claimed_by_instance: str | None = Field(default=None, index=True)
    claimed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    escalated_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    escalation_reason: str | None = Field(default=None, sa_column=Column(Text))
    created_by: str | None = None
    metadata_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentInstance(SQLModel, table=True):
    __tablename__ = "agent_instances"  # type: ignore[bad-override]

    instance_id: str = Field(primary_key=True)
    agent_type: str = Field(index=True)
    display_name: str
    status: str = Field(index=True)
    last_seen_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentActivity(SQLModel, table=True):
    __tablename__ = "agent_activity"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_agent_activity_item_time", "work_item_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    work_item_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("work_items.item_id", ondelete="CASCADE"),
            nullable=True,
        ),
    )
    agent_type: str
    agent_instance_id: str | None = None
    action: str = Field(index=True)
    status: str
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    duration_ms: int | None = None
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class HandoffHistory(SQLModel, table=True):
    __tablename__ = "handoff_history"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    source_work_item_id: str = Field(
        sa_column=Column(
            ForeignKey("work_items.item_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    target_work_item_ids_json: str = Field(sa_column=Column(Text, nullable=False))
    from_agent_type: str
    from_agent_instance: str | None = None
    to_agent_type: str = Field(default="")
    output_json: str | None = Field(default=None, sa_column=Column(Text))
    validation_passed: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("0")),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Comment(SQLModel, table=True):
    __tablename__ = "comments"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    work_item_id: str = Field(
        sa_column=Column(
            ForeignKey("work_items.item_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    author_agent: str | None = None
    content: str = Field(sa_column=Column(Text, nullable=False))
    is_system_message: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=text("0")),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentRateLimitHit(SQLModel, table=True):
    __tablename__ = "agent_rate_limits"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_agent_rate_limits_window", "agent_instance_id", "action", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    agent_instance_id: str
    action: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
