from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Protocol


class _StateLike(Protocol):
    id: str


class _TransitionLike(Protocol):
    from_states: list[str]
    to_state: str


@dataclass(frozen=True, slots=True)
class TransitionGraph:
    """Directed graph over state ids.

    There is an edge ``s -> t`` whenever some transition (enabled or not) lists ``s``
    as a source and ``t`` as its target. Successors keep transition declaration
    order with duplicates removed, so traversals are deterministic.

    Dangling references must be rejected before building a graph.
    """

    _nodes: tuple[str, ...]
    _edges: Mapping[str, tuple[str, ...]]

    @classmethod
    def from_parts(
        cls, states: Iterable[_StateLike], transitions: Iterable[_TransitionLike]
    ) -> TransitionGraph:
        nodes = tuple(state.id for state in states)
        adjacency: dict[str, dict[str, None]] = {node: {} for node in nodes}
        for transition in transitions:
            for source in transition.from_states:
                adjacency[source][transition.to_state] = None
        edges = {node: tuple(targets) for node, targets in adjacency.items()}
        return cls(_nodes=nodes, _edges=edges)

    def nodes(self) -> Iterator[str]:
        return iter(self._nodes)

    def successors(self, state_id: str) -> Iterator[str]:
        return iter(self._edges.get(state_id, ()))

    def has_outgoing(self, state_id: str) -> bool:
        return bool(self._edges.get(state_id))

    def __contains__(self, state_id: object) -> bool:
        return state_id in self._edges

    def __len__(self) -> int:
        return len(self._nodes)
