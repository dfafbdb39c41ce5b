"""Agent runtime: register, poll, claim, process, hand off, shut down."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from functools import partial

from kanban_agents.orchestrator.activity import ActivityLogger
from kanban_agents.orchestrator.backend.base import Generator
from kanban_agents.orchestrator.claims import (
    DEFAULT_CANDIDATE_BATCH,
    DEFAULT_MAX_ATTEMPTS,
    ClaimCoordinator,
)
from kanban_agents.orchestrator.errors import AgentRegistrationError, StoreUnavailableError
from kanban_agents.orchestrator.escalation import EscalationManager
from kanban_agents.orchestrator.handoff import HandoffCoordinator, HandoffOptions
from kanban_agents.orchestrator.models import PollingConfig, ProcessResult, WorkItemView
from kanban_agents.orchestrator.processors import StageContext, StageProcessor, build_processor
from kanban_agents.orchestrator.repository import WorkItemRepository
from kanban_agents.orchestrator.routing import validate_agent_type
from kanban_agents.orchestrator.throttle import (
    DEFAULT_CLAIM_LIMIT,
    DEFAULT_HEARTBEAT_SECONDS,
    DEFAULT_WINDOW_MINUTES,
    Heartbeat,
    RateLimiter,
)

logger = logging.getLogger(__name__)

SHUTDOWN_RELEASE_REASON = "agent shutting down"


class RuntimeState(str, Enum):
    STOPPED = "stopped"
    REGISTERING = "registering"
    POLLING = "polling"
    PROCESSING = "processing"
    STOPPING = "stopping"


@dataclass(slots=True)
class RuntimeRunSummary:
    """Aggregate runtime counters for CLI reporting."""

    polls: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    idle_polls: int = 0
    store_errors: int = 0


class AgentRuntime:
    """One agent instance processing items of its type, one at a time.

    Lifecycle: ``STOPPED -> REGISTERING -> POLLING <-> PROCESSING -> STOPPING
    -> STOPPED``. Only registration failure is fatal; processing failures are
    escalated and store errors during polling are logged and retried on the
    next cycle.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: WorkItemRepository,
        agent_type: str,
        instance_id: str,
        generator: Generator | None = None,
        processor: StageProcessor | None = None,
        display_name: str | None = None,
        claim_coordinator: ClaimCoordinator | None = None,
        heartbeat_interval_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
        claim_rate_limit: int = DEFAULT_CLAIM_LIMIT,
        claim_rate_window_minutes: int = DEFAULT_WINDOW_MINUTES,
        claim_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        candidate_batch_size: int = DEFAULT_CANDIDATE_BATCH,
    ) -> None:
        self.agent_type = validate_agent_type(agent_type)
        if processor is None:
            if generator is None:
                raise ValueError("AgentRuntime needs a generator or an explicit processor.")
            processor = build_processor(self.agent_type, generator)
        self.repository = repository
        self.instance_id = instance_id
        self.display_name = display_name or f"{self.agent_type}-{instance_id}"
        self.processor = processor
        self.claims = claim_coordinator or ClaimCoordinator(
            repository,
            RateLimiter(
                repository,
                limit=claim_rate_limit,
                window_minutes=claim_rate_window_minutes,
            ),
            max_attempts=claim_max_attempts,
            candidate_batch_size=candidate_batch_size,
        )
        self.handoff = HandoffCoordinator(repository)
        self.escalation = EscalationManager(repository)
        self.activity = ActivityLogger(
            repository,
            agent_type=self.agent_type,
            instance_id=instance_id,
        )
        self.heartbeat = Heartbeat(
            repository,
            instance_id=instance_id,
            interval_seconds=heartbeat_interval_seconds,
        )

        self._state = RuntimeState.STOPPED
        self._registered = False
        self._stop_event = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_done = False
        self._held_item_id: str | None = None
        self._loop_active = False

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def register(self) -> None:
        """Register this instance. Raises AgentRegistrationError on failure."""

        self._state = RuntimeState.REGISTERING
        try:
            self.repository.register_instance(
                instance_id=self.instance_id,
                agent_type=self.agent_type,
                display_name=self.display_name,
            )
        except StoreUnavailableError as error:
            self._state = RuntimeState.STOPPED
            raise AgentRegistrationError(
                f"Failed to register {self.agent_type} instance {self.instance_id}: {error}",
            ) from error
        self._registered = True
        self._state = RuntimeState.POLLING
        logger.info("Agent registered: %s (%s)", self.agent_type, self.instance_id)

    def start_polling(
        self,
        config: PollingConfig | None = None,
        *,
        max_polls: int | None = None,
    ) -> RuntimeRunSummary:
        """Run the poll loop until stopped, or for ``max_polls`` cycles."""

        config = config or PollingConfig()
        if self._shutdown_done:
            raise RuntimeError("Agent runtime was stopped and cannot be restarted.")
        if config.max_concurrent > 1:
            logger.info(
                "max_concurrent=%d requested; items are processed one at a time",
                config.max_concurrent,
            )

        summary = RuntimeRunSummary()
        self._loop_active = True
        try:
            self.register()
            self.heartbeat.start()
            with self._signal_handlers():
                while not self._stop_event.is_set():
                    idle = self._poll_cycle(summary)
                    if max_polls is not None and summary.polls >= max_polls:
                        break
                    if idle:
                        self._stop_event.wait(config.interval_seconds)
        finally:
            self._loop_active = False
            self._shutdown()
        return summary

    def run_once(self) -> ProcessResult | None:
        """Claim and process at most one item. None when there was no work."""

        item = self.claim_next()
        if item is None:
            return None
        if self._stop_event.is_set():
            self._release_held_item()
            return None
        return self.process_held_item(item)

    def claim_next(self) -> WorkItemView | None:
        """Claim the next item and hold it until processing starts."""

        self._state = RuntimeState.POLLING
        item = self.claims.claim_next(self.agent_type, self.instance_id)
        if item is not None:
            self._held_item_id = item.item_id
        return item

    def process_held_item(self, item: WorkItemView) -> ProcessResult:
        self._held_item_id = None
        return self.process_item(item)

    def process_item(self, item: WorkItemView) -> ProcessResult:
        """Process one claimed item; failures are escalated, never raised."""

        self._state = RuntimeState.PROCESSING
        started = self.activity.started(item.item_id, item_type=item.item_type)
        try:
            context = StageContext(
                agent_type=self.agent_type,
                instance_id=self.instance_id,
                project=self.repository.get_project_context(item.project_id),
                on_step=partial(self.activity.processing, item.item_id),
            )
            stage_output = self.processor.process(item, context)
            child_ids = self.handoff.complete_and_handoff(
                item.item_id,
                stage_output.output,
                stage_output.children,
                HandoffOptions(agent_type=self.agent_type, instance_id=self.instance_id),
            )
        except Exception as error:  # noqa: BLE001
            message = f"{type(error).__name__}: {error}"
            logger.exception("Processing failed for %s", item.item_id)
            self.escalation.escalate(
                item.item_id,
                f"Processing failed: {message}",
                agent_type=self.agent_type,
                instance_id=self.instance_id,
            )
            self.activity.error(item.item_id, started, message)
            self._state = RuntimeState.POLLING
            return ProcessResult(success=False, error=message)

        if stage_output.summary:
            self._post_summary(item.item_id, stage_output.summary)
        self.activity.completed(item.item_id, started, child_count=len(child_ids))
        self._state = RuntimeState.POLLING
        return ProcessResult(success=True, output=stage_output.output, child_ids=child_ids)

    def stop(self) -> None:
        """Request shutdown. Safe to call repeatedly and from any thread.

        While the poll loop runs it performs the shutdown itself once the
        current item is finished; otherwise shutdown happens here.
        """

        self._stop_event.set()
        if not self._loop_active:
            self._shutdown()

    def _poll_cycle(self, summary: RuntimeRunSummary) -> bool:
        """Run one cycle; True when the loop should wait before polling again."""

        summary.polls += 1
        try:
            result = self.run_once()
        except StoreUnavailableError as error:
            summary.store_errors += 1
            logger.warning("Poll failed for %s: %s", self.instance_id, error)
            return True
        if result is None:
            summary.idle_polls += 1
            return True
        summary.processed += 1
        if result.success:
            summary.succeeded += 1
        else:
            summary.failed += 1
        return False

    def _post_summary(self, item_id: str, summary: str) -> None:
        try:
            self.repository.add_comment(
                item_id=item_id,
                content=summary,
                author_agent=self.agent_type,
            )
        except StoreUnavailableError as error:
            logger.warning("Summary comment for %s not stored: %s", item_id, error)

    def _release_held_item(self) -> None:
        item_id = self._held_item_id
        if item_id is None:
            return
        self._held_item_id = None
        try:
            released = self.repository.release(
                item_id=item_id,
                instance_id=self.instance_id,
                reason=SHUTDOWN_RELEASE_REASON,
            )
        except StoreUnavailableError as error:
            logger.warning("Failed to release %s on shutdown: %s", item_id, error)
            return
        if released:
            logger.info("Released %s on shutdown", item_id)

    def _shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_done:
                return
            self._shutdown_done = True
            self._state = RuntimeState.STOPPING
            self.heartbeat.stop()
            self._release_held_item()
            if self._registered:
                try:
                    self.repository.deactivate_instance(instance_id=self.instance_id)
                except StoreUnavailableError as error:
                    logger.warning("Failed to deactivate %s: %s", self.instance_id, error)
                else:
                    logger.info("Agent deactivated: %s", self.instance_id)
            self._state = RuntimeState.STOPPED

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self._request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

    def _request_stop(self, *, signal_name: str) -> None:
        logger.info("Received %s, stopping %s", signal_name, self.instance_id)
        self._stop_event.set()
