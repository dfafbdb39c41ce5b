"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from kanban_agents.orchestrator.models import (
    ProjectCreate,
    ProjectView,
    WorkItemCreate,
    WorkItemPriority,
    WorkItemStatus,
    WorkItemView,
)
from kanban_agents.orchestrator.repository import WorkItemRepository

MakeItem = Callable[..., WorkItemView]


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "kanban.db"


@pytest.fixture()
def repository(db_path):
    repo = WorkItemRepository(db_path=db_path)
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def project(repository) -> ProjectView:
    return repository.create_project(
        ProjectCreate(
            name="Checkout",
            description="Online checkout flow",
            created_by="owner-1",
            tech_stack=("python", "sqlite"),
        ),
    )


@pytest.fixture()
def make_item(repository, project) -> MakeItem:
    def _make(
        item_type: str = "feature",
        *,
        title: str | None = None,
        priority: WorkItemPriority = WorkItemPriority.MEDIUM,
        status: WorkItemStatus = WorkItemStatus.READY,
        metadata: dict[str, Any] | None = None,
        parent_id: str | None = None,
    ) -> WorkItemView:
        return repository.create_item(
            WorkItemCreate(
                project_id=project.project_id,
                title=title or f"{item_type} item",
                item_type=item_type,
                description=f"Description of {title or item_type}",
                priority=priority,
                status=status,
                parent_id=parent_id,
                created_by=project.created_by,
                metadata=metadata or {},
            ),
        )

    return _make
