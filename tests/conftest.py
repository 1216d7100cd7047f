"""Test configuration and fixtures."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from workflow_engine.engine.service import WorkflowService
from workflow_engine.engine.workflow.coordinator import ExecutionCoordinator
from workflow_engine.engine.workflow.models import CreateDefinitionRequest
from workflow_engine.engine.workflow.store import InMemoryWorkflowStore


def make_request(
    states: list[tuple[str, str]],
    transitions: list[tuple[str, list[str], str]],
    *,
    definition_id: str = "wf",
) -> CreateDefinitionRequest:
    """Build a request from compact tuples.

    States are ``(id, flags)`` where flags may contain ``i`` (initial), ``f`` (final)
    and ``d`` (disabled). Transitions are ``(id, sources, target)``.
    """

    return CreateDefinitionRequest.model_validate(
        {
            "id": definition_id,
            "states": [
                {
                    "id": state_id,
                    "is_initial": "i" in flags,
                    "is_final": "f" in flags,
                    "enabled": "d" not in flags,
                }
                for state_id, flags in states
            ],
            "transitions": [
                {"id": t_id, "from_states": sources, "to_state": target}
                for t_id, sources, target in transitions
            ],
        }
    )


@pytest.fixture
def build_request() -> Callable[..., CreateDefinitionRequest]:
    return make_request


@pytest.fixture
def approval_request() -> CreateDefinitionRequest:
    """draft -> submitted -> approved."""
    return make_request(
        [("draft", "i"), ("submitted", ""), ("approved", "f")],
        [("submit", ["draft"], "submitted"), ("approve", ["submitted"], "approved")],
        definition_id="approval",
    )


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """A deterministic clock that advances one second per call."""
    start = datetime(2025, 1, 1, tzinfo=UTC)
    counter = itertools.count()
    return lambda: start + timedelta(seconds=next(counter))


@pytest.fixture
def memory_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def sleeps() -> list[float]:
    """Collects backoff delays instead of sleeping."""
    return []


@pytest.fixture
def service(
    memory_store: InMemoryWorkflowStore,
    clock: Callable[[], datetime],
    sleeps: list[float],
) -> WorkflowService:
    ids = (f"inst-{n}" for n in itertools.count(1))
    coordinator = ExecutionCoordinator(
        memory_store, base_delay_seconds=0.01, sleep=sleeps.append, clock=clock
    )
    return WorkflowService(
        store=memory_store,
        coordinator=coordinator,
        clock=clock,
        id_factory=lambda: next(ids),
    )
