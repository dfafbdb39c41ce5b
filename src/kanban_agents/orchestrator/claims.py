"""Race-safe claiming of ready work items."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from kanban_agents.orchestrator.models import WorkItemView
from kanban_agents.orchestrator.repository import WorkItemRepository
from kanban_agents.orchestrator.routing import processable_item_types
from kanban_agents.orchestrator.throttle import CLAIM_ACTION, RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_CANDIDATE_BATCH = 5
DEFAULT_BACKOFF_SECONDS = 0.1


class ClaimCoordinator:
    """Finds candidates for an agent type and claims one atomically.

    Losing a race is normal: another instance claimed the same item between
    our read and our conditional update. The coordinator moves on to the
    next candidate and backs off linearly between rounds.
    """

    def __init__(  # noqa: PLR0913
        self,
        repository: WorkItemRepository,
        rate_limiter: RateLimiter,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        candidate_batch_size: int = DEFAULT_CANDIDATE_BATCH,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.rate_limiter = rate_limiter
        self.max_attempts = max_attempts
        self.candidate_batch_size = candidate_batch_size
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def find_candidates(self, agent_type: str, limit: int | None = None) -> list[WorkItemView]:
        """Ready items this agent type may claim, best first. No side effects."""

        item_types = processable_item_types(agent_type)
        if not item_types:
            return []
        return self.repository.find_ready_items(
            item_types=item_types,
            limit=self.candidate_batch_size if limit is None else limit,
        )

    def claim_one(self, item_id: str, agent_type: str, instance_id: str) -> bool:
        """Try to claim one item. False means throttled or lost the race."""

        if not self.rate_limiter.allow(instance_id, CLAIM_ACTION):
            return False
        claimed = self.repository.claim(
            item_id=item_id,
            agent_type=agent_type,
            instance_id=instance_id,
        )
        if claimed:
            logger.info("Claimed %s for %s (%s)", item_id, agent_type, instance_id)
        return claimed

    def claim_next(
        self,
        agent_type: str,
        instance_id: str,
        max_attempts: int | None = None,
    ) -> WorkItemView | None:
        """Claim the best available item, or None when there is no work."""

        attempts = self.max_attempts if max_attempts is None else max_attempts
        for attempt in range(1, attempts + 1):
            candidates = self.find_candidates(agent_type)
            if not candidates:
                return None

            for candidate in candidates:
                if self.claim_one(candidate.item_id, agent_type, instance_id):
                    return self.repository.get_item(candidate.item_id)

            if attempt < attempts:
                self._sleep(self.backoff_seconds * attempt)

        logger.debug(
            "No claim after %d attempts for %s (%s)",
            attempts,
            agent_type,
            instance_id,
        )
        return None
