"""Tagged result values returned by the validator and the state machine.

Checks return a value instead of raising, and the pipeline stops at the first
rejection. Exceptions only show up at the service boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import WorkflowDefinition


class RejectionCode(str, Enum):
    # Definition structure
    INITIAL_STATE = "initial_state"
    NO_STATES = "no_states"
    NO_TRANSITIONS = "no_transitions"
    DUPLICATE_STATE = "duplicate_state"
    DUPLICATE_TRANSITION = "duplicate_transition"
    EMPTY_SOURCES = "empty_sources"
    UNKNOWN_STATE_REFERENCE = "unknown_state_reference"

    # Input shape
    INVALID_IDENTIFIER = "invalid_identifier"
    TOO_MANY_STATES = "too_many_states"
    TOO_MANY_TRANSITIONS = "too_many_transitions"
    TOO_MANY_SOURCES = "too_many_sources"

    # Graph rules
    CYCLE = "cycle"
    UNREACHABLE_STATE = "unreachable_state"
    DEAD_END = "dead_end"

    DUPLICATE_DEFINITION = "duplicate_definition"

    # Firing a transition
    UNKNOWN_TRANSITION = "unknown_transition"
    TRANSITION_DISABLED = "transition_disabled"
    NOT_A_SOURCE_STATE = "not_a_source_state"
    FINAL_STATE = "final_state"
    STATE_DISABLED = "state_disabled"
    TARGET_UNAVAILABLE = "target_unavailable"


@dataclass(frozen=True, slots=True)
class Accepted:
    """The definition passed every check and is ready to persist."""

    definition: WorkflowDefinition

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Rejected:
    """A single failed rule plus the identifiers that broke it."""

    code: RejectionCode
    reason: str
    identifiers: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return False


ValidationResult = Accepted | Rejected


@dataclass(frozen=True, slots=True)
class FireAllowed:
    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class FireRejected:
    code: RejectionCode
    reason: str
    identifiers: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return False


FireResult = FireAllowed | FireRejected
