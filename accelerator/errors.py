"""Exception types raised by the readiness and work-item services."""
from __future__ import annotations


class AcceleratorError(Exception):
    """Base class for errors surfaced to API and MCP callers."""


class NotFoundError(AcceleratorError):
    """A referenced startup, work item, template or catalog entry does not exist."""

    def __init__(self, label: str, entity_id: object):
        super().__init__(f"{label} with ID {entity_id} not found")
        self.label = label
        self.entity_id = entity_id


class PreconditionError(AcceleratorError):
    """A prerequisite for the request is missing (e.g. no capsule proposal)."""


class GenerationError(AcceleratorError):
    """AI call failed or returned text that could not be parsed."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
