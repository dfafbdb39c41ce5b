"""Per-instance claim throttling and liveness heartbeat."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta

from kanban_agents.orchestrator.errors import StoreUnavailableError
from kanban_agents.orchestrator.repository import WorkItemRepository

logger = logging.getLogger(__name__)

CLAIM_ACTION = "claim"
DEFAULT_CLAIM_LIMIT = 10
DEFAULT_WINDOW_MINUTES = 1
DEFAULT_HEARTBEAT_SECONDS = 30.0


class RateLimiter:
    """Rolling-window action budget backed by the store."""

    def __init__(
        self,
        repository: WorkItemRepository,
        *,
        limit: int = DEFAULT_CLAIM_LIMIT,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
    ) -> None:
        if limit <= 0:
            raise ValueError("Rate limit must be > 0.")
        if window_minutes <= 0:
            raise ValueError("Rate limit window must be > 0 minutes.")
        self.repository = repository
        self.limit = limit
        self.window = timedelta(minutes=window_minutes)

    def allow(self, instance_id: str, action: str = CLAIM_ACTION) -> bool:
        """Consume one unit of budget; False when exhausted or the store fails."""

        try:
            allowed = self.repository.check_rate_limit(
                instance_id=instance_id,
                action=action,
                limit=self.limit,
                window=self.window,
            )
        except StoreUnavailableError as error:
            logger.warning("Rate limit check failed for %s/%s: %s", instance_id, action, error)
            return False
        if not allowed:
            logger.info(
                "Rate limited: instance=%s action=%s limit=%d/%s",
                instance_id,
                action,
                self.limit,
                self.window,
            )
        return allowed


class Heartbeat:
    """Background liveness signal for one agent instance.

    Store failures are logged and never stop the thread.
    """

    def __init__(
        self,
        repository: WorkItemRepository,
        *,
        instance_id: str,
        interval_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
    ) -> None:
        self.repository = repository
        self.instance_id = instance_id
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name=f"heartbeat-{self.instance_id}",
                daemon=True,
            )
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def beat(self) -> bool:
        """Send one heartbeat now."""

        try:
            alive = self.repository.heartbeat(instance_id=self.instance_id)
        except StoreUnavailableError as error:
            logger.warning("Heartbeat failed for %s: %s", self.instance_id, error)
            return False
        if not alive:
            logger.debug("Heartbeat ignored for inactive instance %s", self.instance_id)
        return alive

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self.beat()
