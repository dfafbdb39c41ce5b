"""Durable work-item store backed by SQLModel + SQLite.

Every status-changing primitive is a single conditional ``UPDATE`` whose
rowcount decides the outcome, so concurrent agent processes sharing one
database file never both win the same transition.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import case, func
from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from kanban_agents.orchestrator.errors import StoreUnavailableError
from kanban_agents.orchestrator.models import (
    PRIORITY_RANK,
    UNKNOWN_PROJECT,
    ActivityAction,
    ActivityEntryView,
    ActivityStatus,
    ActivityWrite,
    AgentInstanceStatus,
    AgentInstanceView,
    CommentView,
    HandoffRecordView,
    HandoffRecordWrite,
    ProjectContext,
    ProjectCreate,
    ProjectView,
    WorkItemCreate,
    WorkItemDetails,
    WorkItemPriority,
    WorkItemStatus,
    WorkItemView,
)
from kanban_agents.storage.sqlite import build_sqlite_engine, upgrade_head, utc_now
from kanban_agents.storage.sqlmodel_models import (
    AgentActivity,
    AgentInstance,
    AgentRateLimitHit,
    Comment,
    HandoffHistory,
    Project,
    WorkItem,
)

logger = logging.getLogger(__name__)

OPERATOR_AGENT = "operator"


class WorkItemRepository:
    """Store facade exposing the atomic primitives agents coordinate through."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as error:
            raise StoreUnavailableError(f"Store operation failed: {error}") from error

    # Projects

    def create_project(self, payload: ProjectCreate) -> ProjectView:
        now = utc_now()
        metadata: dict[str, Any] = {
            "tech_stack": list(payload.tech_stack),
            "conventions": dict(payload.conventions),
        }
        with self._session() as session:
            row = Project(
                project_id=payload.project_id or str(uuid4()),
                name=payload.name,
                description=payload.description,
                created_by=payload.created_by,
                metadata_json=_dump_json(metadata),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_project_view(row)

    def list_projects(self) -> list[ProjectView]:
        with self._session() as session:
            rows = session.exec(select(Project).order_by(col(Project.created_at).asc())).all()
        return [_to_project_view(row) for row in rows]

    def get_project(self, project_id: str) -> ProjectView | None:
        with self._session() as session:
            row = session.exec(
                select(Project).where(Project.project_id == project_id),
            ).one_or_none()
        return _to_project_view(row) if row is not None else None

    def get_project_context(self, project_id: str) -> ProjectContext:
        """Project facts for prompts, or a placeholder when the project is gone."""

        with self._session() as session:
            row = session.exec(
                select(Project).where(Project.project_id == project_id),
            ).one_or_none()
        if row is None:
            return UNKNOWN_PROJECT
        metadata = _load_json(row.metadata_json)
        tech_stack = metadata.get("tech_stack") or []
        conventions = metadata.get("conventions") or {}
        return ProjectContext(
            name=row.name,
            description=row.description,
            tech_stack=tuple(str(entry) for entry in tech_stack),
            conventions=conventions if isinstance(conventions, dict) else {},
        )

    # Work items

    def create_item(self, payload: WorkItemCreate) -> WorkItemView:
        """Insert one work item."""

        now = utc_now()
        with self._session() as session:
            row = WorkItem(
                item_id=payload.item_id or str(uuid4()),
                project_id=payload.project_id,
                parent_id=payload.parent_id,
                title=payload.title,
                description=payload.description,
                item_type=payload.item_type,
                priority=WorkItemPriority(payload.priority).value,
                status=WorkItemStatus(payload.status).value,
                created_by=payload.created_by,
                metadata_json=_dump_json(payload.metadata),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_item_view(row)

    def get_item(self, item_id: str) -> WorkItemView | None:
        with self._session() as session:
            row = session.exec(select(WorkItem).where(WorkItem.item_id == item_id)).one_or_none()
        return _to_item_view(row) if row is not None else None

    def find_ready_items(self, *, item_types: Iterable[str], limit: int) -> list[WorkItemView]:
        """Unclaimed, non-escalated ready items, highest priority then oldest first."""

        types = list(item_types)
        if not types or limit <= 0:
            return []
        priority_rank = case(
            PRIORITY_RANK,
            value=col(WorkItem.priority),
            else_=len(PRIORITY_RANK),
        )
        with self._session() as session:
            rows = session.exec(
                select(WorkItem)
                .where(
                    col(WorkItem.status) == WorkItemStatus.READY.value,
                    col(WorkItem.assigned_agent).is_(None),
                    col(WorkItem.claimed_by_instance).is_(None),
                    col(WorkItem.escalated_at).is_(None),
                    col(WorkItem.item_type).in_(types),
                )
                .order_by(
                    priority_rank.asc(),
                    col(WorkItem.created_at).asc(),
                    col(WorkItem.item_id).asc(),
                )
                .limit(limit),
            ).all()
        return [_to_item_view(row) for row in rows]

    def list_items(
        self,
        *,
        status: WorkItemStatus | None = None,
        item_type: str | None = None,
        project_id: str | None = None,
        limit: int = 50,
    ) -> list[WorkItemView]:
        """List recent items, optionally filtered."""

        with self._session() as session:
            statement = select(WorkItem).order_by(col(WorkItem.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(WorkItem.status == status.value)
            if item_type is not None:
                statement = statement.where(WorkItem.item_type == item_type)
            if project_id is not None:
                statement = statement.where(WorkItem.project_id == project_id)
            rows = session.exec(statement).all()
        return [_to_item_view(row) for row in rows]

    def list_children(self, parent_id: str) -> list[WorkItemView]:
        with self._session() as session:
            rows = session.exec(
                select(WorkItem)
                .where(WorkItem.parent_id == parent_id)
                .order_by(col(WorkItem.created_at).asc()),
            ).all()
        return [_to_item_view(row) for row in rows]

    def claim(self, *, item_id: str, agent_type: str, instance_id: str) -> bool:
        """Atomically move a ready, unclaimed item to in_progress for one instance.

        Returns False when another instance got there first or the item is not
        claimable. Losing is expected and never raises.
        """

        now = _to_db_datetime(utc_now())
        with self._session() as session:
            result = session.exec(
                sa_update(WorkItem)
                .where(
                    col(WorkItem.item_id) == item_id,
                    col(WorkItem.status) == WorkItemStatus.READY.value,
                    col(WorkItem.assigned_agent).is_(None),
                    col(WorkItem.claimed_by_instance).is_(None),
                    col(WorkItem.escalated_at).is_(None),
                )
                .values(
                    status=WorkItemStatus.IN_PROGRESS.value,
                    assigned_agent=agent_type,
                    claimed_by_instance=instance_id,
                    claimed_at=now,
                    started_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_activity(
                session=session,
                entry=ActivityWrite(
                    work_item_id=item_id,
                    agent_type=agent_type,
                    agent_instance_id=instance_id,
                    action=ActivityAction.CLAIMED,
                ),
            )
            session.commit()
            return True

    def release(self, *, item_id: str, instance_id: str, reason: str) -> bool:
        """Return an item held by ``instance_id`` to ready."""

        now = _to_db_datetime(utc_now())
        with self._session() as session:
            row = session.exec(select(WorkItem).where(WorkItem.item_id == item_id)).one_or_none()
            if row is None or row.claimed_by_instance != instance_id:
                return False
            agent_type = row.assigned_agent or OPERATOR_AGENT
            result = session.exec(
                sa_update(WorkItem)
                .where(
                    col(WorkItem.item_id) == item_id,
                    col(WorkItem.status) == WorkItemStatus.IN_PROGRESS.value,
                    col(WorkItem.claimed_by_instance) == instance_id,
                )
                .values(**_cleared_claim_values(now)),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_activity(
                session=session,
                entry=ActivityWrite(
                    work_item_id=item_id,
                    agent_type=agent_type,
                    agent_instance_id=instance_id,
                    action=ActivityAction.RELEASED,
                    details={"reason": reason},
                ),
            )
            session.commit()
            return True

    def force_release(self, *, item_id: str, reason: str) -> bool:
        """Operator release of an in-progress item, clearing any escalation."""

        now = _to_db_datetime(utc_now())
        with self._session() as session:
            row = session.exec(select(WorkItem).where(WorkItem.item_id == item_id)).one_or_none()
            if row is None or row.status != WorkItemStatus.IN_PROGRESS.value:
                return False
            previous_instance = row.claimed_by_instance
            result = session.exec(
                sa_update(WorkItem)
                .where(
                    col(WorkItem.item_id) == item_id,
                    col(WorkItem.status) == WorkItemStatus.IN_PROGRESS.value,
                )
                .values(
                    **_cleared_claim_values(now),
                    escalated_at=None,
                    escalation_reason=None,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_activity(
                session=session,
                entry=ActivityWrite(
                    work_item_id=item_id,
                    agent_type=OPERATOR_AGENT,
                    agent_instance_id=previous_instance,
                    action=ActivityAction.RELEASED,
                    details={"reason": reason, "forced": True},
                ),
            )
            session.commit()
            return True

    def release_stale_claims(self, *, older_than: timedelta) -> list[str]:
        """Release claims older than ``older_than``. Escalated items stay put."""

        cutoff = _to_db_datetime(utc_now() - older_than)
        released: list[str] = []
        with self._session() as session:
            stale_rows = session.exec(
                select(WorkItem).where(
                    col(WorkItem.status) == WorkItemStatus.IN_PROGRESS.value,
                    col(WorkItem.escalated_at).is_(None),
                    col(WorkItem.claimed_at).is_not(None),
                    col(WorkItem.claimed_at) < cutoff,
                ),
            ).all()
            candidates = [(row.item_id, row.claimed_by_instance) for row in stale_rows]

            now = _to_db_datetime(utc_now())
            for item_id, instance_id in candidates:
                result = session.exec(
                    sa_update(WorkItem)
                    .where(
                        col(WorkItem.item_id) == item_id,
                        col(WorkItem.status) == WorkItemStatus.IN_PROGRESS.value,
                        col(WorkItem.escalated_at).is_(None),
                        col(WorkItem.claimed_at) < cutoff,
                    )
                    .values(**_cleared_claim_values(now)),
                )
                if result.rowcount != 1:
                    continue
                self._add_activity(
                    session=session,
                    entry=ActivityWrite(
                        work_item_id=item_id,
                        agent_type=OPERATOR_AGENT,
                        agent_instance_id=instance_id,
                        action=ActivityAction.RELEASED,
                        details={
                            "reason": "stale claim",
                            "older_than_seconds": int(older_than.total_seconds()),
                        },
                    ),
                )
                released.append(item_id)
            session.commit()
        return released

    def complete_item(
        self,
        *,
        item_id: str,
        status: WorkItemStatus,
        metadata_patch: dict[str, Any],
        instance_id: str | None = None,
    ) -> bool:
        """Move an item to its completion status, merging metadata and clearing the claim.

        With ``instance_id`` the write only lands while that instance still
        holds the claim.
        """

        now = utc_now()
        with self._session() as session:
            row = session.exec(select(WorkItem).where(WorkItem.item_id == item_id)).one_or_none()
            if row is None:
                return False
            metadata = _load_json(row.metadata_json)
            metadata.update(metadata_patch)

            statement = sa_update(WorkItem).where(col(WorkItem.item_id) == item_id)
            if instance_id is not None:
                statement = statement.where(
                    col(WorkItem.status) == WorkItemStatus.IN_PROGRESS.value,
                    col(WorkItem.claimed_by_instance) == instance_id,
                )
            result = session.exec(
                statement.values(
                    status=WorkItemStatus(status).value,
                    assigned_agent=None,
                    claimed_by_instance=None,
                    completed_at=_to_db_datetime(now),
                    metadata_json=_dump_json(metadata),
                    updated_at=_to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def mark_escalated(
        self,
        *,
        item_id: str,
        reason: str,
        agent_type: str,
        instance_id: str | None,
    ) -> bool:
        """Flag an item for human attention with a system comment and audit entry.

        The item keeps its status and claim; it is never deleted or completed.
        """

        now = utc_now()
        with self._session() as session:
            result = session.exec(
                sa_update(WorkItem)
                .where(
                    col(WorkItem.item_id) == item_id,
                    col(WorkItem.status) != WorkItemStatus.DONE.value,
                )
                .values(
                    escalated_at=_to_db_datetime(now),
                    escalation_reason=reason,
                    updated_at=_to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.add(
                Comment(
                    work_item_id=item_id,
                    author_agent=agent_type,
                    content=f"**Escalated to human**: {reason}",
                    is_system_message=True,
                    created_at=now,
                ),
            )
            self._add_activity(
                session=session,
                entry=ActivityWrite(
                    work_item_id=item_id,
                    agent_type=agent_type,
                    agent_instance_id=instance_id,
                    action=ActivityAction.ESCALATED,
                    status=ActivityStatus.WARNING,
                    details={"reason": reason},
                ),
            )
            session.commit()
            return True

    def get_item_details(self, item_id: str) -> WorkItemDetails | None:
        """Return one item with activity, handoffs, comments and children."""

        item = self.get_item(item_id)
        if item is None:
            return None
        return WorkItemDetails(
            item=item,
            activity=self.list_activity(item_id),
            handoffs=self.list_handoffs(item_id),
            comments=self.list_comments(item_id),
            children=self.list_children(item_id),
        )

    # Agent instances

    def register_instance(
        self,
        *,
        instance_id: str,
        agent_type: str,
        display_name: str,
    ) -> AgentInstanceView:
        """Create or reactivate an agent instance."""

        now = utc_now()
        with self._session() as session:
            row = session.exec(
                select(AgentInstance).where(AgentInstance.instance_id == instance_id),
            ).one_or_none()
            if row is None:
                row = AgentInstance(
                    instance_id=instance_id,
                    agent_type=agent_type,
                    display_name=display_name,
                    status=AgentInstanceStatus.ACTIVE.value,
                    last_seen_at=now,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row.agent_type = agent_type
                row.display_name = display_name
                row.status = AgentInstanceStatus.ACTIVE.value
                row.last_seen_at = now
                row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_instance_view(row)

    def deactivate_instance(self, *, instance_id: str) -> bool:
        now = _to_db_datetime(utc_now())
        with self._session() as session:
            result = session.exec(
                sa_update(AgentInstance)
                .where(
                    col(AgentInstance.instance_id) == instance_id,
                    col(AgentInstance.status) == AgentInstanceStatus.ACTIVE.value,
                )
                .values(
                    status=AgentInstanceStatus.INACTIVE.value,
                    last_seen_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def heartbeat(self, *, instance_id: str) -> bool:
        """Refresh liveness of an active instance."""

        now = _to_db_datetime(utc_now())
        with self._session() as session:
            result = session.exec(
                sa_update(AgentInstance)
                .where(
                    col(AgentInstance.instance_id) == instance_id,
                    col(AgentInstance.status) == AgentInstanceStatus.ACTIVE.value,
                )
                .values(last_seen_at=now, updated_at=now),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def get_instance(self, instance_id: str) -> AgentInstanceView | None:
        with self._session() as session:
            row = session.exec(
                select(AgentInstance).where(AgentInstance.instance_id == instance_id),
            ).one_or_none()
        return _to_instance_view(row) if row is not None else None

    def list_instances(
        self,
        *,
        agent_type: str | None = None,
        status: AgentInstanceStatus | None = None,
    ) -> list[AgentInstanceView]:
        with self._session() as session:
            statement = select(AgentInstance).order_by(col(AgentInstance.last_seen_at).desc())
            if agent_type is not None:
                statement = statement.where(AgentInstance.agent_type == agent_type)
            if status is not None:
                statement = statement.where(AgentInstance.status == status.value)
            rows = session.exec(statement).all()
        return [_to_instance_view(row) for row in rows]

    def check_rate_limit(
        self,
        *,
        instance_id: str,
        action: str,
        limit: int,
        window: timedelta,
    ) -> bool:
        """Record one ``action`` if fewer than ``limit`` happened within ``window``.

        The hit is inserted and counted inside one immediate transaction, so
        concurrent checks for the same instance are serialized by the write
        lock and never both squeeze into the last slot.
        """

        now = utc_now()
        cutoff = _to_db_datetime(now - window)
        with self._session() as session:
            # Expired hits of every instance, including ones that never came back.
            session.exec(
                sa_delete(AgentRateLimitHit).where(
                    col(AgentRateLimitHit.action) == action,
                    col(AgentRateLimitHit.created_at) < cutoff,
                ),
            )
            session.add(
                AgentRateLimitHit(
                    agent_instance_id=instance_id,
                    action=action,
                    created_at=now,
                ),
            )
            session.flush()
            hits = session.exec(
                select(func.count())
                .select_from(AgentRateLimitHit)
                .where(
                    col(AgentRateLimitHit.agent_instance_id) == instance_id,
                    col(AgentRateLimitHit.action) == action,
                    col(AgentRateLimitHit.created_at) >= cutoff,
                ),
            ).one()
            if hits > limit:
                session.rollback()
                return False
            session.commit()
            return True

    # Audit trail

    def add_activity(self, entry: ActivityWrite) -> None:
        """Append one audit entry."""

        with self._session() as session:
            self._add_activity(session=session, entry=entry)
            session.commit()

    def list_activity(self, item_id: str) -> list[ActivityEntryView]:
        with self._session() as session:
            rows = session.exec(
                select(AgentActivity)
                .where(AgentActivity.work_item_id == item_id)
                .order_by(col(AgentActivity.created_at).asc(), col(AgentActivity.id).asc()),
            ).all()
        return [_to_activity_view(row) for row in rows]

    def add_handoff_record(self, record: HandoffRecordWrite) -> None:
        with self._session() as session:
            session.add(
                HandoffHistory(
                    source_work_item_id=record.source_work_item_id,
                    target_work_item_ids_json=json.dumps(record.target_work_item_ids),
                    from_agent_type=record.from_agent_type,
                    from_agent_instance=record.from_agent_instance,
                    to_agent_type=record.to_agent_type,
                    output_json=_dump_json(record.output),
                    validation_passed=record.validation_passed,
                    created_at=utc_now(),
                ),
            )
            session.commit()

    def list_handoffs(self, item_id: str) -> list[HandoffRecordView]:
        with self._session() as session:
            rows = session.exec(
                select(HandoffHistory)
                .where(HandoffHistory.source_work_item_id == item_id)
                .order_by(col(HandoffHistory.created_at).asc()),
            ).all()
        return [_to_handoff_view(row) for row in rows]

    def add_comment(
        self,
        *,
        item_id: str,
        content: str,
        author_agent: str | None,
        is_system_message: bool = False,
    ) -> None:
        with self._session() as session:
            session.add(
                Comment(
                    work_item_id=item_id,
                    author_agent=author_agent,
                    content=content,
                    is_system_message=is_system_message,
                    created_at=utc_now(),
                ),
            )
            session.commit()

    def list_comments(self, item_id: str) -> list[CommentView]:
        with self._session() as session:
            rows = session.exec(
                select(Comment)
                .where(Comment.work_item_id == item_id)
                .order_by(col(Comment.created_at).asc(), col(Comment.id).asc()),
            ).all()
        return [
            CommentView(
                comment_id=row.id or 0,
                work_item_id=row.work_item_id,
                author_agent=row.author_agent,
                content=row.content,
                is_system_message=row.is_system_message,
                created_at=_to_utc_aware_datetime(row.created_at),
            )
            for row in rows
        ]

    def _add_activity(self, *, session: Session, entry: ActivityWrite) -> None:
        session.add(
            AgentActivity(
                work_item_id=entry.work_item_id,
                agent_type=entry.agent_type,
                agent_instance_id=entry.agent_instance_id,
                action=ActivityAction(entry.action).value,
                status=ActivityStatus(entry.status).value,
                details_json=_dump_json(entry.details),
                duration_ms=entry.duration_ms,
                error_message=entry.error_message,
                created_at=utc_now(),
            ),
        )


def _cleared_claim_values(now: datetime) -> dict[str, object]:
    return {
        "status": WorkItemStatus.READY.value,
        "assigned_agent": None,
        "claimed_by_instance": None,
        "claimed_at": None,
        "started_at": None,
        "updated_at": now,
    }


def _dump_json(value: dict[str, Any]) -> str | None:
    if not value:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _load_json(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    parsed = json.loads(raw)
    return parsed if isinstance(parsed, dict) else {}


def _to_db_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _to_utc_aware_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _optional_datetime(value: datetime | None) -> datetime | None:
    return _to_utc_aware_datetime(value) if value is not None else None


def _to_project_view(row: Project) -> ProjectView:
    return ProjectView(
        project_id=row.project_id,
        name=row.name,
        description=row.description,
        created_by=row.created_by,
        metadata=_load_json(row.metadata_json),
        created_at=_to_utc_aware_datetime(row.created_at),
    )


def _to_item_view(row: WorkItem) -> WorkItemView:
    return WorkItemView(
        item_id=row.item_id,
        project_id=row.project_id,
        parent_id=row.parent_id,
        title=row.title,
        description=row.description,
        item_type=row.item_type,
        priority=WorkItemPriority(row.priority),
        status=WorkItemStatus(row.status),
        assigned_agent=row.assigned_agent,
        claimed_by_instance=row.claimed_by_instance,
        claimed_at=_optional_datetime(row.claimed_at),
        started_at=_optional_datetime(row.started_at),
        completed_at=_optional_datetime(row.completed_at),
        escalated_at=_optional_datetime(row.escalated_at),
        escalation_reason=row.escalation_reason,
        created_by=row.created_by,
        metadata=_load_json(row.metadata_json),
        created_at=_to_utc_aware_datetime(row.created_at),
        updated_at=_to_utc_aware_datetime(row.updated_at),
    )


def _to_instance_view(row: AgentInstance) -> AgentInstanceView:
    return AgentInstanceView(
        instance_id=row.instance_id,
        agent_type=row.agent_type,
        display_name=row.display_name,
        status=AgentInstanceStatus(row.status),
        last_seen_at=_to_utc_aware_datetime(row.last_seen_at),
        created_at=_to_utc_aware_datetime(row.created_at),
    )


def _to_activity_view(row: AgentActivity) -> ActivityEntryView:
    return ActivityEntryView(
        entry_id=row.id or 0,
        work_item_id=row.work_item_id,
        agent_type=row.agent_type,
        agent_instance_id=row.agent_instance_id,
        action=ActivityAction(row.action),
        status=ActivityStatus(row.status),
        details=_load_json(row.details_json),
        duration_ms=row.duration_ms,
        error_message=row.error_message,
        created_at=_to_utc_aware_datetime(row.created_at),
    )


def _to_handoff_view(row: HandoffHistory) -> HandoffRecordView:
    targets = json.loads(row.target_work_item_ids_json)
    return HandoffRecordView(
        record_id=row.id or 0,
        source_work_item_id=row.source_work_item_id,
        target_work_item_ids=[str(target) for target in targets],
        from_agent_type=row.from_agent_type,
        from_agent_instance=row.from_agent_instance,
        to_agent_type=row.to_agent_type,
        output=_load_json(row.output_json),
        validation_passed=row.validation_passed,
        created_at=_to_utc_aware_datetime(row.created_at),
    )
