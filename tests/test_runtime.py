from __future__ import annotations

import threading
import time

import allure
import pytest

from kanban_agents.orchestrator.backend import EchoGenerator
from kanban_agents.orchestrator.errors import AgentRegistrationError, StoreUnavailableError
from kanban_agents.orchestrator.models import (
    ActivityAction,
    AgentInstanceStatus,
    PollingConfig,
    WorkItemStatus,
)
from kanban_agents.orchestrator.processors import StageOutput
from kanban_agents.orchestrator.runtime import AgentRuntime, RuntimeState

pytestmark = [
    allure.epic("Agents"),
    allure.feature("Agent Runtime"),
]


class _FailingProcessor:
    def process(self, item, context):
        raise RuntimeError("generator exploded")


class _SlowProcessor:
    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def process(self, item, context):
        self.entered.set()
        self.release.wait(timeout=5)
        return StageOutput(output={"ok": True})


def _runtime(repository, agent_type: str = "developer", **kwargs) -> AgentRuntime:
    kwargs.setdefault("generator", EchoGenerator())
    return AgentRuntime(
        repository=repository,
        agent_type=agent_type,
        instance_id=f"{agent_type}-test",
        **kwargs,
    )


def test_run_once_processes_feature_into_prd(repository, make_item) -> None:
    feature = make_item("feature", title="Guest checkout")
    runtime = _runtime(repository, "project_manager")
    runtime.register()

    result = runtime.run_once()

    assert result is not None
    assert result.success is True
    assert len(result.child_ids) == 1
    done = repository.get_item(feature.item_id)
    assert done is not None
    assert done.status == WorkItemStatus.DONE
    prd = repository.get_item(result.child_ids[0])
    assert prd is not None
    assert prd.item_type == "prd"
    assert prd.status == WorkItemStatus.READY
    actions = [entry.action for entry in repository.list_activity(feature.item_id)]
    assert actions == [
        ActivityAction.CLAIMED,
        ActivityAction.STARTED,
        ActivityAction.PROCESSING,
        ActivityAction.HANDED_OFF,
        ActivityAction.COMPLETED,
    ]
    assert repository.list_activity(feature.item_id)[2].details == {"step": "prd"}
    runtime.stop()


def test_run_once_without_work_returns_none(repository, make_item) -> None:
    make_item("story")
    runtime = _runtime(repository, "scrum_master")
    runtime.register()

    assert runtime.run_once() is None
    runtime.stop()


def test_pipeline_flows_from_feature_to_review(repository, make_item) -> None:
    feature = make_item("feature", title="Guest checkout")
    runtimes = [
        _runtime(repository, agent_type)
        for agent_type in ("project_manager", "scrum_master", "developer")
    ]
    for runtime in runtimes:
        runtime.register()

    results = [runtime.run_once() for runtime in runtimes]

    assert all(result is not None and result.success for result in results)
    prd = repository.list_children(feature.item_id)[0]
    story = repository.list_children(prd.item_id)[0]
    assert prd.status == WorkItemStatus.DONE
    assert story.status == WorkItemStatus.REVIEW
    assert story.metadata["story_points"] == 3
    comments = [comment.content for comment in repository.list_comments(story.item_id)]
    assert comments[0].startswith("Implementation ready for review:")
    steps = [
        entry.details["step"]
        for entry in repository.list_activity(story.item_id)
        if entry.action == ActivityAction.PROCESSING
    ]
    assert steps == ["plan", "code"]
    for runtime in runtimes:
        runtime.stop()


def test_processing_failure_escalates_and_keeps_claim(repository, make_item) -> None:
    story = make_item("story")
    runtime = _runtime(repository, generator=None, processor=_FailingProcessor())
    runtime.register()

    result = runtime.run_once()

    assert result is not None
    assert result.success is False
    assert result.error == "RuntimeError: generator exploded"
    failed = repository.get_item(story.item_id)
    assert failed is not None
    assert failed.status == WorkItemStatus.IN_PROGRESS
    assert failed.claimed_by_instance == runtime.instance_id
    assert failed.escalation_reason == "Processing failed: RuntimeError: generator exploded"
    activity = repository.list_activity(story.item_id)
    assert [entry.action for entry in activity][-2:] == [
        ActivityAction.ESCALATED,
        ActivityAction.ERROR,
    ]
    assert activity[-1].error_message == "RuntimeError: generator exploded"
    assert activity[-1].duration_ms is not None
    assert runtime.state == RuntimeState.POLLING

    assert runtime.run_once() is None
    runtime.stop()


def test_start_polling_counts_cycles_and_deactivates(repository, make_item) -> None:
    make_item("story", title="one")
    make_item("story", title="two")
    runtime = _runtime(repository)

    summary = runtime.start_polling(PollingConfig(interval_seconds=0.01), max_polls=3)

    assert (summary.polls, summary.processed, summary.succeeded, summary.idle_polls) == (
        3,
        2,
        2,
        1,
    )
    instance = repository.get_instance(runtime.instance_id)
    assert instance is not None
    assert instance.status == AgentInstanceStatus.INACTIVE
    assert runtime.state == RuntimeState.STOPPED
    assert runtime.heartbeat.running is False


def test_store_errors_during_polling_are_counted_not_raised(
    repository,
    make_item,
    monkeypatch,
) -> None:
    make_item("story")
    runtime = _runtime(repository)

    def _unavailable(**_):
        raise StoreUnavailableError("database is locked")

    monkeypatch.setattr(repository, "find_ready_items", _unavailable)

    summary = runtime.start_polling(PollingConfig(interval_seconds=0.01), max_polls=2)

    assert summary.store_errors == 2
    assert summary.processed == 0


def test_registration_failure_is_fatal(repository, monkeypatch) -> None:
    runtime = _runtime(repository)

    def _unavailable(**_):
        raise StoreUnavailableError("unable to open database file")

    monkeypatch.setattr(repository, "register_instance", _unavailable)

    with pytest.raises(AgentRegistrationError, match="Failed to register developer"):
        runtime.start_polling(max_polls=1)
    assert runtime.state == RuntimeState.STOPPED


def test_stop_is_idempotent(repository, monkeypatch) -> None:
    runtime = _runtime(repository)
    runtime.register()
    calls = {"deactivate": 0}
    original = repository.deactivate_instance

    def _counting_deactivate(**kwargs):
        calls["deactivate"] += 1
        return original(**kwargs)

    monkeypatch.setattr(repository, "deactivate_instance", _counting_deactivate)

    runtime.stop()
    runtime.stop()

    assert calls["deactivate"] == 1
    assert runtime.stop_requested
    with pytest.raises(RuntimeError, match="cannot be restarted"):
        runtime.start_polling(max_polls=1)


def test_stop_releases_claimed_but_unprocessed_item(repository, make_item) -> None:
    story = make_item("story")
    runtime = _runtime(repository)
    runtime.register()

    held = runtime.claim_next()
    assert held is not None
    runtime.stop()

    released = repository.get_item(story.item_id)
    assert released is not None
    assert released.status == WorkItemStatus.READY
    assert released.claimed_by_instance is None
    last = repository.list_activity(story.item_id)[-1]
    assert last.action == ActivityAction.RELEASED
    assert last.details == {"reason": "agent shutting down"}


def test_stop_from_another_thread_finishes_current_item_first(repository, make_item) -> None:
    story = make_item("story")
    processor = _SlowProcessor()
    runtime = _runtime(repository, generator=None, processor=processor)
    outcome: dict[str, object] = {}

    def _run() -> None:
        outcome["summary"] = runtime.start_polling(PollingConfig(interval_seconds=30.0))

    thread = threading.Thread(target=_run, daemon=True)
    thread.start()
    assert processor.entered.wait(timeout=5)

    runtime.stop()
    assert runtime.state != RuntimeState.STOPPED
    processor.release.set()
    thread.join(timeout=5)

    assert thread.is_alive() is False
    summary = outcome["summary"]
    assert summary.processed == 1
    completed = repository.get_item(story.item_id)
    assert completed is not None
    assert completed.status == WorkItemStatus.REVIEW
    instance = repository.get_instance(runtime.instance_id)
    assert instance is not None
    assert instance.status == AgentInstanceStatus.INACTIVE


def test_idle_loop_wakes_up_on_stop(repository) -> None:
    runtime = _runtime(repository)
    thread = threading.Thread(
        target=runtime.start_polling,
        args=(PollingConfig(interval_seconds=30.0),),
        daemon=True,
    )
    thread.start()
    deadline = time.monotonic() + 5
    while runtime.state != RuntimeState.POLLING and time.monotonic() < deadline:
        time.sleep(0.01)

    runtime.stop()
    thread.join(timeout=5)

    assert thread.is_alive() is False
    assert runtime.state == RuntimeState.STOPPED


def test_runtime_requires_generator_or_processor(repository) -> None:
    with pytest.raises(ValueError, match="generator or an explicit processor"):
        AgentRuntime(repository=repository, agent_type="developer", instance_id="dev-1")
    with pytest.raises(ValueError, match="Unsupported agent type"):
        _runtime(repository, "tester")
