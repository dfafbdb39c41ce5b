"""Per-agent audit logging helper."""

from __future__ import annotations

import logging
import time
from typing import Any

from kanban_agents.orchestrator.errors import StoreUnavailableError
from kanban_agents.orchestrator.models import ActivityAction, ActivityStatus, ActivityWrite
from kanban_agents.orchestrator.repository import WorkItemRepository

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Writes activity entries on behalf of one agent instance.

    Audit writes never interrupt processing: a failed write is logged locally.
    """

    def __init__(
        self,
        repository: WorkItemRepository,
        *,
        agent_type: str,
        instance_id: str | None,
    ) -> None:
        self.repository = repository
        self.agent_type = agent_type
        self.instance_id = instance_id

    def log(  # noqa: PLR0913
        self,
        item_id: str | None,
        action: ActivityAction,
        *,
        status: ActivityStatus = ActivityStatus.SUCCESS,
        details: dict[str, Any] | None = None,
        duration_ms: int | None = None,
        error_message: str | None = None,
    ) -> None:
        try:
            self.repository.add_activity(
                ActivityWrite(
                    work_item_id=item_id,
                    agent_type=self.agent_type,
                    agent_instance_id=self.instance_id,
                    action=action,
                    status=status,
                    details=details or {},
                    duration_ms=duration_ms,
                    error_message=error_message,
                ),
            )
        except StoreUnavailableError as error:
            logger.warning("Activity %s for %s not recorded: %s", action.value, item_id, error)

    def started(self, item_id: str, **details: Any) -> float:
        """Record ``started`` and return a monotonic start mark."""

        self.log(item_id, ActivityAction.STARTED, details=details)
        return time.monotonic()

    def completed(self, item_id: str, started: float, **details: Any) -> None:
        self.log(
            item_id,
            ActivityAction.COMPLETED,
            details=details,
            duration_ms=elapsed_ms(started),
        )

    def processing(self, item_id: str, step: str) -> None:
        self.log(item_id, ActivityAction.PROCESSING, details={"step": step})

    def error(self, item_id: str, started: float, error_message: str, **details: Any) -> None:
        self.log(
            item_id,
            ActivityAction.ERROR,
            status=ActivityStatus.ERROR,
            details=details,
            duration_ms=elapsed_ms(started),
            error_message=error_message,
        )


def elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))
