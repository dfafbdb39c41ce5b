"""Domain models for work items, agents, and their audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class WorkItemStatus(str, Enum):
    """Ordered pipeline stages of a work item."""

    BACKLOG = "backlog"
    TODO = "todo"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    TESTING = "testing"
    DONE = "done"


class WorkItemPriority(str, Enum):
    """Work-item priority, highest first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK = {
    WorkItemPriority.CRITICAL.value: 0,
    WorkItemPriority.HIGH.value: 1,
    WorkItemPriority.MEDIUM.value: 2,
    WorkItemPriority.LOW.value: 3,
}


class AgentInstanceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ActivityAction(str, Enum):
    """Audit actions recorded against work items."""

    CLAIMED = "claimed"
    STARTED = "started"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    HANDED_OFF = "handed_off"
    RELEASED = "released"
    ESCALATED = "escalated"


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


@dataclass(slots=True)
class ProjectCreate:
    """Input payload for creating a project."""

    name: str
    description: str | None = None
    created_by: str | None = None
    tech_stack: tuple[str, ...] = ()
    conventions: dict[str, Any] = field(default_factory=dict)
    project_id: str | None = None


@dataclass(slots=True)
class ProjectView:
    project_id: str
    name: str
    description: str | None
    created_by: str | None
    metadata: dict[str, Any]
    created_at: datetime


@dataclass(slots=True)
class ProjectContext:
    """Project facts handed to stage processors as prompt context."""

    name: str
    description: str | None = None
    tech_stack: tuple[str, ...] = ()
    conventions: dict[str, Any] = field(default_factory=dict)


UNKNOWN_PROJECT = ProjectContext(name="Unknown Project")


@dataclass(slots=True)
class WorkItemCreate:
    """Input payload for inserting a work item."""

    project_id: str
    title: str
    item_type: str
    description: str = ""
    priority: WorkItemPriority = WorkItemPriority.MEDIUM
    status: WorkItemStatus = WorkItemStatus.READY
    parent_id: str | None = None
    created_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    item_id: str | None = None


@dataclass(slots=True)
class WorkItemView:
    """Snapshot of one work item. May be stale as soon as it is read."""

    item_id: str
    project_id: str
    parent_id: str | None
    title: str
    description: str
    item_type: str
    priority: WorkItemPriority
    status: WorkItemStatus
    assigned_agent: str | None
    claimed_by_instance: str | None
    claimed_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    escalated_at: datetime | None
    escalation_reason: str | None
    created_by: str | None
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @property
    def is_escalated(self) -> bool:
        return self.escalated_at is not None


@dataclass(slots=True)
class ChildItemSpec:
    """Description of a follow-up item produced by a stage processor."""

    title: str
    item_type: str
    description: str = ""
    priority: WorkItemPriority | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ActivityWrite:
    """Append-only audit entry."""

    agent_type: str
    action: ActivityAction
    work_item_id: str | None = None
    agent_instance_id: str | None = None
    status: ActivityStatus = ActivityStatus.SUCCESS
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: int | None = None
    error_message: str | None = None


@dataclass(slots=True)
class ActivityEntryView:
    entry_id: int
    work_item_id: str | None
    agent_type: str
    agent_instance_id: str | None
    action: ActivityAction
    status: ActivityStatus
    details: dict[str, Any]
    duration_ms: int | None
    error_message: str | None
    created_at: datetime


@dataclass(slots=True)
class HandoffRecordWrite:
    source_work_item_id: str
    target_work_item_ids: list[str]
    from_agent_type: str
    from_agent_instance: str | None
    to_agent_type: str
    output: dict[str, Any]
    validation_passed: bool = True


@dataclass(slots=True)
class HandoffRecordView:
    record_id: int
    source_work_item_id: str
    target_work_item_ids: list[str]
    from_agent_type: str
    from_agent_instance: str | None
    to_agent_type: str
    output: dict[str, Any]
    validation_passed: bool
    created_at: datetime


@dataclass(slots=True)
class CommentView:
    comment_id: int
    work_item_id: str
    author_agent: str | None
    content: str
    is_system_message: bool
    created_at: datetime


@dataclass(slots=True)
class AgentInstanceView:
    instance_id: str
    agent_type: str
    display_name: str
    status: AgentInstanceStatus
    last_seen_at: datetime
    created_at: datetime


@dataclass(slots=True)
class WorkItemDetails:
    """Work item with its audit trail and lineage for inspection."""

    item: WorkItemView
    activity: list[ActivityEntryView]
    handoffs: list[HandoffRecordView]
    comments: list[CommentView]
    children: list[WorkItemView]


@dataclass(slots=True)
class PollingConfig:
    """Polling cadence for one agent runtime.

    ``max_concurrent`` is accepted for configuration compatibility; the
    runtime processes one item at a time.
    """

    interval_seconds: float = 30.0
    max_concurrent: int = 1


@dataclass(slots=True)
class ProcessResult:
    """Outcome of processing one claimed item."""

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    child_ids: list[str] = field(default_factory=list)
