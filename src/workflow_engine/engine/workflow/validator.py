"""Definition validator.

A submitted definition is checked in a fixed order and the first failing rule wins:

1. structure (one initial state, unique ids, resolvable references)
2. input shape (identifier format, bounded counts)
3. no cycle reachable from the initial state
4. every state reachable from the initial state
5. no non-final state without an outgoing transition

Definitions must be acyclic. A revisit is modelled with a distinct state.
"""

from __future__ import annotations

import re
from collections import Counter, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from .graph import TransitionGraph
from .models import CreateDefinitionRequest, State, Transition, WorkflowDefinition
from .results import Accepted, Rejected, RejectionCode, ValidationResult

_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True, slots=True)
class ValidationLimits:
    """Upper bounds that cap the cost of validating a single definition."""

    max_states: int = 200
    max_transitions: int = 1000
    max_identifier_length: int = 64
    max_sources_per_transition: int = 50


class _Colour(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


def _duplicates(values: Iterable[str]) -> tuple[str, ...]:
    counts = Counter(values)
    return tuple(value for value, count in counts.items() if count > 1)


class DefinitionValidator:
    def __init__(
        self,
        limits: ValidationLimits | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.limits = limits or ValidationLimits()
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def validate(self, request: CreateDefinitionRequest) -> ValidationResult:
        """Run every check in order and return the first rejection, if any."""

        for check in (self._check_structure, self._check_shape):
            rejected = check(request)
            if rejected is not None:
                return rejected

        definition = self._resolve(request)
        graph = TransitionGraph.from_parts(definition.states, definition.transitions)

        for graph_check in (self._check_cycles, self._check_reachability, self._check_dead_ends):
            rejected = graph_check(definition, graph)
            if rejected is not None:
                return rejected

        return Accepted(definition)

    def _check_structure(self, request: CreateDefinitionRequest) -> Rejected | None:
        if not request.states:
            return Rejected(RejectionCode.NO_STATES, "Workflow must have at least one state")
        initial = [s.id for s in request.states if s.is_initial]
        if len(initial) != 1:
            return Rejected(
                RejectionCode.INITIAL_STATE,
                f"Workflow must have exactly one initial state (found {len(initial)})",
                tuple(initial),
            )
        if not request.transitions:
            return Rejected(
                RejectionCode.NO_TRANSITIONS, "Workflow must have at least one transition"
            )

        dup_states = _duplicates(s.id for s in request.states)
        if dup_states:
            return Rejected(
                RejectionCode.DUPLICATE_STATE,
                f"State ids must be unique; duplicated: {', '.join(dup_states)}",
                dup_states,
            )
        dup_transitions = _duplicates(t.id for t in request.transitions)
        if dup_transitions:
            return Rejected(
                RejectionCode.DUPLICATE_TRANSITION,
                f"Transition ids must be unique; duplicated: {', '.join(dup_transitions)}",
                dup_transitions,
            )

        known = {s.id for s in request.states}
        for transition in request.transitions:
            if not transition.from_states:
                return Rejected(
                    RejectionCode.EMPTY_SOURCES,
                    f"Transition '{transition.id}' must list at least one source state",
                    (transition.id,),
                )
            if transition.to_state not in known:
                return Rejected(
                    RejectionCode.UNKNOWN_STATE_REFERENCE,
                    f"Transition '{transition.id}' targets unknown state '{transition.to_state}'",
                    (transition.id, transition.to_state),
                )
            for source in transition.from_states:
                if source not in known:
                    return Rejected(
                        RejectionCode.UNKNOWN_STATE_REFERENCE,
                        f"Transition '{transition.id}' starts from unknown state '{source}'",
                        (transition.id, source),
                    )
        return None

    def _check_shape(self, request: CreateDefinitionRequest) -> Rejected | None:
        limits = self.limits
        identifiers = [
            ("definition", request.id),
            *(("state", s.id) for s in request.states),
            *(("transition", t.id) for t in request.transitions),
        ]
        for kind, identifier in identifiers:
            problem = self._identifier_problem(identifier)
            if problem is not None:
                return Rejected(
                    RejectionCode.INVALID_IDENTIFIER,
                    f"Invalid {kind} id {identifier!r}: {problem}",
                    (identifier,),
                )

        if len(request.states) > limits.max_states:
            return Rejected(
                RejectionCode.TOO_MANY_STATES,
                f"Workflow declares {len(request.states)} states; "
                f"the limit is {limits.max_states}",
            )
        if len(request.transitions) > limits.max_transitions:
            return Rejected(
                RejectionCode.TOO_MANY_TRANSITIONS,
                f"Workflow declares {len(request.transitions)} transitions; "
                f"the limit is {limits.max_transitions}",
            )
        for transition in request.transitions:
            if len(transition.from_states) > limits.max_sources_per_transition:
                return Rejected(
                    RejectionCode.TOO_MANY_SOURCES,
                    f"Transition '{transition.id}' lists {len(transition.from_states)} "
                    f"source states; the limit is {limits.max_sources_per_transition}",
                    (transition.id,),
                )
        return None

    def _identifier_problem(self, identifier: str) -> str | None:
        if not identifier:
            return "must not be empty"
        if len(identifier) > self.limits.max_identifier_length:
            return f"longer than {self.limits.max_identifier_length} characters"
        if _IDENTIFIER_RE.fullmatch(identifier) is None:
            return "only letters, digits, '_' and '-' are allowed"
        return None

    def _resolve(self, request: CreateDefinitionRequest) -> WorkflowDefinition:
        states = [
            State(id=s.id, is_initial=s.is_initial, is_final=s.is_final, enabled=s.enabled)
            for s in request.states
        ]
        transitions = [
            Transition(
                id=t.id,
                # Sources are an ordered set.
                from_states=list(dict.fromkeys(t.from_states)),
                to_state=t.to_state,
                enabled=t.enabled,
            )
            for t in request.transitions
        ]
        return WorkflowDefinition(
            id=request.id, states=states, transitions=transitions, created_at=self._clock()
        )

    @staticmethod
    def _check_cycles(definition: WorkflowDefinition, graph: TransitionGraph) -> Rejected | None:
        colour = {node: _Colour.UNVISITED for node in graph.nodes()}
        roots = [s.id for s in definition.states if s.is_initial]

        for root in roots:
            if colour[root] is not _Colour.UNVISITED:
                continue
            colour[root] = _Colour.IN_PROGRESS
            stack = [(root, graph.successors(root))]
            while stack:
                node, children = stack[-1]
                for child in children:
                    if colour[child] is _Colour.IN_PROGRESS:
                        path = [n for n, _ in stack]
                        loop = path[path.index(child) :] + [child]
                        return Rejected(
                            RejectionCode.CYCLE,
                            f"Workflow contains a cycle at state '{child}' "
                            f"({' -> '.join(loop)}); transitions must not loop back",
                            (child,),
                        )
                    if colour[child] is _Colour.UNVISITED:
                        colour[child] = _Colour.IN_PROGRESS
                        stack.append((child, graph.successors(child)))
                        break
                else:
                    colour[node] = _Colour.DONE
                    stack.pop()
        return None

    @staticmethod
    def _check_reachability(
        definition: WorkflowDefinition, graph: TransitionGraph
    ) -> Rejected | None:
        roots = [s.id for s in definition.states if s.is_initial]
        visited = set(roots)
        queue = deque(roots)
        while queue:
            node = queue.popleft()
            for child in graph.successors(node):
                if child not in visited:
                    visited.add(child)
                    queue.append(child)

        unreachable = tuple(node for node in graph.nodes() if node not in visited)
        if unreachable:
            return Rejected(
                RejectionCode.UNREACHABLE_STATE,
                f"States unreachable from the initial state: {', '.join(unreachable)}",
                unreachable,
            )
        return None

    @staticmethod
    def _check_dead_ends(
        definition: WorkflowDefinition, graph: TransitionGraph
    ) -> Rejected | None:
        dead_ends = tuple(
            s.id for s in definition.states if not s.is_final and not graph.has_outgoing(s.id)
        )
        if dead_ends:
            return Rejected(
                RejectionCode.DEAD_END,
                f"Non-final states without outgoing transitions: {', '.join(dead_ends)}",
                dead_ends,
            )
        return None
