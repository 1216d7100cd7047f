"""Error taxonomy for the workflow core.

Callers can recover from every error here except :class:`StoreError`, which marks an
unexpected backend failure.
"""

from __future__ import annotations

from .results import RejectionCode


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class ValidationRejected(WorkflowError):
    """A definition broke a rule, or a transition is not legal right now."""

    def __init__(
        self, *, code: RejectionCode, reason: str, identifiers: tuple[str, ...] = ()
    ) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason
        self.identifiers = identifiers


class NotFound(WorkflowError):
    """A referenced definition or instance does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"Workflow {kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class DefinitionNotFound(NotFound):
    def __init__(self, definition_id: str) -> None:
        super().__init__("definition", definition_id)


class InstanceNotFound(NotFound):
    def __init__(self, instance_id: str) -> None:
        super().__init__("instance", instance_id)


class ConcurrencyExhausted(WorkflowError):
    """Every conditional save attempt lost to a concurrent writer.

    The caller may retry the same request unchanged.
    """

    def __init__(self, instance_id: str, attempts: int) -> None:
        super().__init__(
            f"Instance '{instance_id}' was modified concurrently; "
            f"gave up after {attempts} attempts"
        )
        self.instance_id = instance_id
        self.attempts = attempts


class StoreError(WorkflowError):
    """The storage backend failed (I/O, corrupt data). Never retried."""
