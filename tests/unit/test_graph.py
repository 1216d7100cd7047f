from __future__ import annotations

from workflow_engine.engine.workflow.graph import TransitionGraph
from workflow_engine.engine.workflow.models import State, Transition


def _graph() -> TransitionGraph:
    states = [State(id="a", is_initial=True), State(id="b"), State(id="c", is_final=True)]
    transitions = [
        Transition(id="t1", from_states=["a"], to_state="b"),
        Transition(id="t2", from_states=["a", "b"], to_state="c"),
        Transition(id="t3", from_states=["a"], to_state="b", enabled=False),
    ]
    return TransitionGraph.from_parts(states, transitions)


def test_edges_follow_every_source_and_dedupe() -> None:
    graph = _graph()
    assert list(graph.nodes()) == ["a", "b", "c"]
    assert list(graph.successors("a")) == ["b", "c"]
    assert list(graph.successors("b")) == ["c"]
    assert list(graph.successors("c")) == []


def test_outgoing_and_membership() -> None:
    graph = _graph()
    assert graph.has_outgoing("a")
    assert not graph.has_outgoing("c")
    assert "b" in graph
    assert "zzz" not in graph
    assert len(graph) == 3


def test_disabled_transitions_still_form_edges() -> None:
    states = [State(id="a", is_initial=True), State(id="b", is_final=True)]
    transitions = [Transition(id="t", from_states=["a"], to_state="b", enabled=False)]
    graph = TransitionGraph.from_parts(states, transitions)
    assert list(graph.successors("a")) == ["b"]
