"""Exceptions raised by the orchestration layer."""

from __future__ import annotations


class StoreUnavailableError(RuntimeError):
    """The durable store failed to execute an operation."""


class WorkItemNotFoundError(RuntimeError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"Work item not found: {item_id}")
        self.item_id = item_id


class ClaimOwnershipError(RuntimeError):
    """The calling instance no longer owns the claim on an item."""


class AgentRegistrationError(RuntimeError):
    """Agent instance could not be registered. Fatal for the runtime."""


class OutputValidationError(ValueError):
    """Generator output did not match the shape a stage expects."""


class GeneratorError(RuntimeError):
    """The content generator failed to produce a reply."""
