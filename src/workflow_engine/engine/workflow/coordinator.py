"""Execution coordinator: fire one transition under optimistic concurrency.

Each attempt re-reads the instance and its definition, re-checks legality and then
saves conditionally on the version it read. A version conflict means another writer
won; we back off and start over from a fresh read. No merge is attempted.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from .errors import ConcurrencyExhausted, DefinitionNotFound, InstanceNotFound, ValidationRejected
from .models import WorkflowInstance
from .results import FireRejected, RejectionCode
from .state_machine import apply_transition, can_fire
from .store import SaveOutcome, WorkflowStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 0.05


class ExecutionCoordinator:
    def __init__(
        self,
        store: WorkflowStore,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""

        return self.base_delay_seconds * (2 ** (attempt - 1))

    def execute(self, instance_id: str, transition_id: str) -> WorkflowInstance:
        """Fire ``transition_id`` on ``instance_id`` and return the saved instance.

        Raises:
            InstanceNotFound / DefinitionNotFound: Either record is missing.
            ValidationRejected: Unknown transition, or the transition is not legal
                from the instance's current state.
            ConcurrencyExhausted: Every attempt hit a version conflict.
            StoreError: Propagated untouched; backend failures are not retried.
        """

        for attempt in range(1, self.max_attempts + 1):
            updated = self._attempt(instance_id, transition_id)
            if updated is not None:
                logger.info(
                    "Transition applied",
                    extra={
                        "instance_id": instance_id,
                        "transition_id": transition_id,
                        "state": updated.current_state,
                        "version": updated.version,
                        "attempt": attempt,
                    },
                )
                return updated

            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.info(
                    "Version conflict; retrying",
                    extra={
                        "instance_id": instance_id,
                        "transition_id": transition_id,
                        "attempt": attempt,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)

        logger.warning(
            "Retry budget exhausted",
            extra={
                "instance_id": instance_id,
                "transition_id": transition_id,
                "attempts": self.max_attempts,
            },
        )
        raise ConcurrencyExhausted(instance_id, self.max_attempts)

    def _attempt(self, instance_id: str, transition_id: str) -> WorkflowInstance | None:
        """One read-check-save round. Returns None on a version conflict."""

        instance = self._store.load_instance(instance_id)
        if instance is None:
            raise InstanceNotFound(instance_id)
        definition = self._store.load_definition(instance.definition_id)
        if definition is None:
            raise DefinitionNotFound(instance.definition_id)

        transition = definition.transition(transition_id)
        if transition is None:
            raise ValidationRejected(
                code=RejectionCode.UNKNOWN_TRANSITION,
                reason=(
                    f"Transition '{transition_id}' is not defined in workflow "
                    f"'{definition.id}'"
                ),
                identifiers=(transition_id,),
            )

        verdict = can_fire(instance, transition, definition)
        if isinstance(verdict, FireRejected):
            raise ValidationRejected(
                code=verdict.code, reason=verdict.reason, identifiers=verdict.identifiers
            )

        expected_version = instance.version
        updated = apply_transition(instance, transition, now=self._clock())
        outcome = self._store.save_instance_if_version_matches(updated, expected_version)
        if outcome is SaveOutcome.CONFLICT:
            return None
        return updated
