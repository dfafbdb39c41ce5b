"""Completion of a stage and creation of its follow-up items."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from kanban_agents.orchestrator.errors import (
    ClaimOwnershipError,
    StoreUnavailableError,
    WorkItemNotFoundError,
)
from kanban_agents.orchestrator.models import (
    ActivityAction,
    ActivityWrite,
    ChildItemSpec,
    HandoffRecordWrite,
    WorkItemCreate,
    WorkItemStatus,
    WorkItemView,
)
from kanban_agents.orchestrator.repository import WorkItemRepository
from kanban_agents.orchestrator.routing import agent_type_for_item_type, completion_status_for
from kanban_agents.storage.sqlite import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HandoffOptions:
    """Who is completing the item. ``instance_id`` enforces claim ownership."""

    agent_type: str
    instance_id: str | None = None


class HandoffCoordinator:
    """Completes a parent item and fans out its children.

    The steps run in separate store calls. A child that fails to insert is
    logged and skipped; the handoff record lists only the children that
    exist.
    """

    def __init__(self, repository: WorkItemRepository) -> None:
        self.repository = repository

    def complete_and_handoff(
        self,
        item_id: str,
        output: dict[str, Any],
        child_specs: Sequence[ChildItemSpec],
        options: HandoffOptions,
    ) -> list[str]:
        """Complete ``item_id`` and create its children. Returns created child ids."""

        parent = self.repository.get_item(item_id)
        if parent is None:
            raise WorkItemNotFoundError(item_id)

        completion_status = completion_status_for(parent.item_type)
        completed = self.repository.complete_item(
            item_id=item_id,
            status=completion_status,
            metadata_patch={
                "output": output,
                "completed_by_agent": options.agent_type,
                "completed_by_instance": options.instance_id,
                "completed_at": utc_now().isoformat(),
            },
            instance_id=options.instance_id,
        )
        if not completed:
            raise ClaimOwnershipError(
                f"Work item {item_id} is no longer claimed by {options.instance_id}",
            )

        created_ids: list[str] = []
        for spec in child_specs:
            child_id = self._create_child(parent=parent, spec=spec, output=output, options=options)
            if child_id is not None:
                created_ids.append(child_id)

        self.repository.add_activity(
            ActivityWrite(
                work_item_id=item_id,
                agent_type=options.agent_type,
                agent_instance_id=options.instance_id,
                action=ActivityAction.HANDED_OFF,
                details={
                    "child_items": created_ids,
                    "child_count": len(created_ids),
                    "requested_count": len(child_specs),
                    "completion_status": completion_status.value,
                },
            ),
        )
        self.repository.add_handoff_record(
            HandoffRecordWrite(
                source_work_item_id=item_id,
                target_work_item_ids=created_ids,
                from_agent_type=options.agent_type,
                from_agent_instance=options.instance_id,
                to_agent_type=_target_agent_type(child_specs),
                output=output,
                validation_passed=True,
            ),
        )
        logger.info(
            "Handed off %s -> %s (%d/%d children created)",
            item_id,
            completion_status.value,
            len(created_ids),
            len(child_specs),
        )
        return created_ids

    def _create_child(
        self,
        *,
        parent: WorkItemView,
        spec: ChildItemSpec,
        output: dict[str, Any],
        options: HandoffOptions,
    ) -> str | None:
        metadata = dict(spec.metadata)
        metadata.update({"created_by_agent": options.agent_type, "parent_output": output})
        try:
            child = self.repository.create_item(
                WorkItemCreate(
                    project_id=parent.project_id,
                    parent_id=parent.item_id,
                    title=spec.title,
                    description=spec.description,
                    item_type=spec.item_type,
                    priority=spec.priority or parent.priority,
                    status=WorkItemStatus.READY,
                    created_by=parent.created_by,
                    metadata=metadata,
                ),
            )
        except (StoreUnavailableError, TypeError, ValueError) as error:
            logger.warning(
                "Failed to create child %r (%s) of %s: %s",
                spec.title,
                spec.item_type,
                parent.item_id,
                error,
            )
            return None
        return child.item_id


def _target_agent_type(child_specs: Sequence[ChildItemSpec]) -> str:
    for spec in child_specs:
        agent_type = agent_type_for_item_type(spec.item_type)
        if agent_type is not None:
            return agent_type
    return ""
