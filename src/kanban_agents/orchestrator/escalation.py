"""Escalation of failed work items to a human."""

from __future__ import annotations

import logging

from kanban_agents.orchestrator.errors import StoreUnavailableError
from kanban_agents.orchestrator.repository import WorkItemRepository

logger = logging.getLogger(__name__)


class EscalationManager:
    """Flags items that need a human.

    An escalated item keeps its claim and status, gains a system comment and a
    warning audit entry, and is skipped by candidate search until an operator
    releases it.
    """

    def __init__(self, repository: WorkItemRepository) -> None:
        self.repository = repository

    def escalate(
        self,
        item_id: str,
        reason: str,
        *,
        agent_type: str,
        instance_id: str | None = None,
    ) -> bool:
        try:
            escalated = self.repository.mark_escalated(
                item_id=item_id,
                reason=reason,
                agent_type=agent_type,
                instance_id=instance_id,
            )
        except StoreUnavailableError as error:
            logger.error("Failed to escalate %s (%s): %s", item_id, reason, error)
            return False
        if escalated:
            logger.warning("Escalated %s to human: %s", item_id, reason)
        else:
            logger.warning("Could not escalate %s: item missing or already done", item_id)
        return escalated
