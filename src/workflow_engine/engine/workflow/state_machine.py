"""Single-instance transition semantics.

Everything here is pure: legality checks return a result value and applying a
transition returns a new instance.
"""

from __future__ import annotations

from datetime import datetime

from .models import (
    STARTED_MARKER,
    HistoryEntry,
    Transition,
    WorkflowDefinition,
    WorkflowInstance,
)
from .results import FireAllowed, FireRejected, FireResult, RejectionCode


def can_fire(
    instance: WorkflowInstance, transition: Transition, definition: WorkflowDefinition
) -> FireResult:
    """Decide whether ``transition`` may fire from the instance's current state.

    A final state is terminal no matter what the definition declares as sources.
    """

    current_id = instance.current_state

    if not transition.enabled:
        return FireRejected(
            RejectionCode.TRANSITION_DISABLED,
            f"Transition '{transition.id}' is disabled",
            (transition.id,),
        )

    if current_id not in transition.from_states:
        return FireRejected(
            RejectionCode.NOT_A_SOURCE_STATE,
            f"Transition '{transition.id}' cannot fire from current state '{current_id}'",
            (transition.id, current_id),
        )

    current = definition.state(current_id)
    if current is not None and current.is_final:
        return FireRejected(
            RejectionCode.FINAL_STATE,
            f"Instance is in final state '{current_id}'; no transition may fire",
            (current_id,),
        )
    if current is None or not current.enabled:
        return FireRejected(
            RejectionCode.STATE_DISABLED,
            f"Current state '{current_id}' is disabled or no longer defined",
            (current_id,),
        )

    target = definition.state(transition.to_state)
    if target is None or not target.enabled:
        return FireRejected(
            RejectionCode.TARGET_UNAVAILABLE,
            f"Target state '{transition.to_state}' of transition '{transition.id}' "
            "is disabled or does not exist",
            (transition.id, transition.to_state),
        )

    return FireAllowed()


def apply_transition(
    instance: WorkflowInstance, transition: Transition, *, now: datetime
) -> WorkflowInstance:
    """Return a copy of ``instance`` advanced along ``transition``.

    Legality is the caller's job (see :func:`can_fire`).
    """

    entry = HistoryEntry(
        transition_id=transition.id,
        timestamp=now,
        from_state=instance.current_state,
        to_state=transition.to_state,
    )
    return instance.model_copy(
        update={
            "current_state": transition.to_state,
            "history": [*instance.history, entry],
            "version": instance.version + 1,
            "last_modified": now,
        }
    )


def start_instance_from(
    definition: WorkflowDefinition, *, instance_id: str, now: datetime
) -> WorkflowInstance:
    initial = definition.initial_state
    return WorkflowInstance(
        id=instance_id,
        definition_id=definition.id,
        current_state=initial.id,
        history=[
            HistoryEntry(transition_id=STARTED_MARKER, timestamp=now, to_state=initial.id)
        ],
        version=1,
        last_modified=now,
    )
