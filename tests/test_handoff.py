from __future__ import annotations

import allure
import pytest

from kanban_agents.orchestrator.errors import (
    ClaimOwnershipError,
    StoreUnavailableError,
    WorkItemNotFoundError,
)
from kanban_agents.orchestrator.escalation import EscalationManager
from kanban_agents.orchestrator.handoff import HandoffCoordinator, HandoffOptions
from kanban_agents.orchestrator.models import (
    ActivityAction,
    ActivityStatus,
    ChildItemSpec,
    WorkItemPriority,
    WorkItemStatus,
)

pytestmark = [
    allure.epic("Work Items"),
    allure.feature("Handoff and Escalation"),
]


def _claimed(repository, make_item, item_type: str, instance_id: str, **kwargs):
    item = make_item(item_type, **kwargs)
    assert repository.claim(
        item_id=item.item_id,
        agent_type="scrum_master" if item_type == "prd" else "developer",
        instance_id=instance_id,
    )
    return item


def test_handoff_completes_parent_and_creates_ready_children(repository, make_item) -> None:
    prd = _claimed(repository, make_item, "prd", "sm-1", priority=WorkItemPriority.HIGH)
    output = {"stories": [], "total_points": 5}

    child_ids = HandoffCoordinator(repository).complete_and_handoff(
        prd.item_id,
        output,
        [
            ChildItemSpec(title="Story A", item_type="story", metadata={"story_points": 3}),
            ChildItemSpec(
                title="Story B",
                item_type="story",
                priority=WorkItemPriority.LOW,
                metadata={"story_points": 2},
            ),
        ],
        HandoffOptions(agent_type="scrum_master", instance_id="sm-1"),
    )

    assert len(child_ids) == 2
    parent = repository.get_item(prd.item_id)
    assert parent is not None
    assert parent.status == WorkItemStatus.DONE
    assert parent.claimed_by_instance is None
    assert parent.metadata["output"] == output
    assert parent.metadata["completed_by_agent"] == "scrum_master"

    children = repository.list_children(prd.item_id)
    assert {child.item_id for child in children} == set(child_ids)
    by_title = {child.title: child for child in children}
    assert by_title["Story A"].priority == WorkItemPriority.HIGH
    assert by_title["Story B"].priority == WorkItemPriority.LOW
    for child in children:
        assert child.status == WorkItemStatus.READY
        assert child.project_id == prd.project_id
        assert child.created_by == prd.created_by
        assert child.metadata["created_by_agent"] == "scrum_master"
        assert child.metadata["parent_output"] == output

    handoffs = repository.list_handoffs(prd.item_id)
    assert len(handoffs) == 1
    assert handoffs[0].target_work_item_ids == child_ids
    assert handoffs[0].to_agent_type == "developer"
    assert handoffs[0].from_agent_instance == "sm-1"

    handed_off = [
        entry
        for entry in repository.list_activity(prd.item_id)
        if entry.action == ActivityAction.HANDED_OFF
    ]
    assert len(handed_off) == 1
    assert handed_off[0].details["child_count"] == 2
    assert handed_off[0].details["completion_status"] == "done"


def test_developer_items_complete_into_review_without_children(repository, make_item) -> None:
    story = _claimed(repository, make_item, "story", "dev-1")

    child_ids = HandoffCoordinator(repository).complete_and_handoff(
        story.item_id,
        {"files_changed": 1},
        [],
        HandoffOptions(agent_type="developer", instance_id="dev-1"),
    )

    assert child_ids == []
    completed = repository.get_item(story.item_id)
    assert completed is not None
    assert completed.status == WorkItemStatus.REVIEW
    handoffs = repository.list_handoffs(story.item_id)
    assert handoffs[0].target_work_item_ids == []
    assert handoffs[0].to_agent_type == ""


def test_partial_child_failure_keeps_created_children(repository, make_item, monkeypatch) -> None:
    prd = _claimed(repository, make_item, "prd", "sm-1")
    original_create = repository.create_item
    calls = {"count": 0}

    def _flaky_create(payload):
        calls["count"] += 1
        if calls["count"] == 2:
            raise StoreUnavailableError("disk I/O error")
        return original_create(payload)

    monkeypatch.setattr(repository, "create_item", _flaky_create)

    child_ids = HandoffCoordinator(repository).complete_and_handoff(
        prd.item_id,
        {},
        [
            ChildItemSpec(title="Story 1", item_type="story"),
            ChildItemSpec(title="Story 2", item_type="story"),
            ChildItemSpec(title="Story 3", item_type="story"),
        ],
        HandoffOptions(agent_type="scrum_master", instance_id="sm-1"),
    )

    assert len(child_ids) == 2
    assert sorted(child.title for child in repository.list_children(prd.item_id)) == [
        "Story 1",
        "Story 3",
    ]
    parent = repository.get_item(prd.item_id)
    assert parent is not None
    assert parent.status == WorkItemStatus.DONE
    assert repository.list_handoffs(prd.item_id)[0].target_work_item_ids == child_ids
    handed_off = repository.list_activity(prd.item_id)[-1]
    assert handed_off.details["child_count"] == 2
    assert handed_off.details["requested_count"] == 3


def test_handoff_of_missing_item_raises(repository) -> None:
    with pytest.raises(WorkItemNotFoundError):
        HandoffCoordinator(repository).complete_and_handoff(
            "missing",
            {},
            [],
            HandoffOptions(agent_type="developer"),
        )


def test_handoff_after_losing_claim_raises_and_creates_nothing(repository, make_item) -> None:
    story = _claimed(repository, make_item, "story", "dev-1")
    repository.force_release(item_id=story.item_id, reason="operator took it back")

    with pytest.raises(ClaimOwnershipError):
        HandoffCoordinator(repository).complete_and_handoff(
            story.item_id,
            {},
            [ChildItemSpec(title="Follow-up", item_type="task")],
            HandoffOptions(agent_type="developer", instance_id="dev-1"),
        )

    assert repository.list_children(story.item_id) == []
    assert repository.list_handoffs(story.item_id) == []


def test_escalation_flags_item_and_hides_it_from_candidates(repository, make_item) -> None:
    story = _claimed(repository, make_item, "story", "dev-1")

    escalated = EscalationManager(repository).escalate(
        story.item_id,
        "Processing failed: OutputValidationError: bad plan",
        agent_type="developer",
        instance_id="dev-1",
    )

    assert escalated is True
    item = repository.get_item(story.item_id)
    assert item is not None
    assert item.is_escalated
    assert item.status == WorkItemStatus.IN_PROGRESS
    assert repository.find_ready_items(item_types=("story",), limit=5) == []

    comments = repository.list_comments(story.item_id)
    assert comments[-1].content.startswith("**Escalated to human**: Processing failed")
    last = repository.list_activity(story.item_id)[-1]
    assert last.action == ActivityAction.ESCALATED
    assert last.status == ActivityStatus.WARNING

    assert repository.force_release(item_id=story.item_id, reason="fixed")
    ready = repository.find_ready_items(item_types=("story",), limit=5)
    assert [entry.item_id for entry in ready] == [story.item_id]


def test_escalation_of_missing_item_returns_false(repository) -> None:
    assert (
        EscalationManager(repository).escalate("missing", "boom", agent_type="developer") is False
    )


def test_escalation_swallows_store_errors(repository, make_item, monkeypatch) -> None:
    story = make_item("story")

    def _fail(**_):
        raise StoreUnavailableError("database is locked")

    monkeypatch.setattr(repository, "mark_escalated", _fail)

    escalated = EscalationManager(repository).escalate(
        story.item_id,
        "boom",
        agent_type="developer",
    )
    assert escalated is False
