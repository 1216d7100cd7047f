"""Workflow data model.

Definitions, instances and history entries are immutable pydantic models; the core
produces new values with ``model_copy`` rather than mutating in place.

The creation request models are intentionally loose: any string passes schema
validation so that the definition validator can report a specific rule violation.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

STARTED_MARKER = "WORKFLOW_STARTED"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class State(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    is_initial: bool = False
    is_final: bool = False
    enabled: bool = True


class Transition(BaseModel):
    """A named edge class: fires from any of ``from_states`` into ``to_state``."""

    model_config = ConfigDict(frozen=True)

    id: str
    from_states: list[str]
    to_state: str
    enabled: bool = True


class WorkflowDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    states: list[State]
    transitions: list[Transition]
    created_at: datetime = Field(default_factory=_utc_now)

    def state(self, state_id: str) -> State | None:
        for state in self.states:
            if state.id == state_id:
                return state
        return None

    def transition(self, transition_id: str) -> Transition | None:
        for transition in self.transitions:
            if transition.id == transition_id:
                return transition
        return None

    @property
    def initial_state(self) -> State:
        # Validated definitions hold exactly one initial state.
        return next(s for s in self.states if s.is_initial)


class HistoryEntry(BaseModel):
    """One applied transition. ``from_state`` is None for the start record."""

    model_config = ConfigDict(frozen=True)

    transition_id: str
    timestamp: datetime
    from_state: str | None = None
    to_state: str


class WorkflowInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    definition_id: str
    current_state: str
    history: list[HistoryEntry] = Field(default_factory=list)
    version: int = Field(default=1, ge=1)
    last_modified: datetime = Field(default_factory=_utc_now)


class StateSpec(BaseModel):
    id: str
    is_initial: bool = Field(
        default=False, validation_alias=AliasChoices("is_initial", "isInitial")
    )
    is_final: bool = Field(default=False, validation_alias=AliasChoices("is_final", "isFinal"))
    enabled: bool = True


class TransitionSpec(BaseModel):
    id: str
    from_states: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("from_states", "fromStates")
    )
    to_state: str = Field(validation_alias=AliasChoices("to_state", "toState"))
    enabled: bool = True


class CreateDefinitionRequest(BaseModel):
    """A submitted state machine, prior to validation."""

    id: str
    states: list[StateSpec] = Field(default_factory=list)
    transitions: list[TransitionSpec] = Field(
        default_factory=list,
        # "actions" is what older clients call transitions.
        validation_alias=AliasChoices("transitions", "actions"),
    )
