"""End-to-end behaviour of the workflow service over the in-memory store."""

from __future__ import annotations

import threading

import pytest

from workflow_engine.engine.service import WorkflowService
from workflow_engine.engine.workflow.errors import (
    DefinitionNotFound,
    InstanceNotFound,
    ValidationRejected,
)
from workflow_engine.engine.workflow.models import STARTED_MARKER, CreateDefinitionRequest
from workflow_engine.engine.workflow.results import Accepted, Rejected, RejectionCode


def test_approval_scenario(
    service: WorkflowService, approval_request: CreateDefinitionRequest
) -> None:
    definition = service.create_definition(approval_request)
    assert definition.id == "approval"

    instance = service.start_instance("approval")
    assert instance.current_state == "draft"
    assert instance.version == 1
    assert [h.transition_id for h in instance.history] == [STARTED_MARKER]

    submitted = service.execute(instance.id, "submit")
    assert submitted.current_state == "submitted"
    assert submitted.version == 2
    assert len(submitted.history) == 2
    assert submitted.history[-1].transition_id == "submit"

    approved = service.execute(instance.id, "approve")
    assert approved.current_state == "approved"
    assert approved.version == 3

    for transition_id in ("submit", "approve"):
        with pytest.raises(ValidationRejected):
            service.execute(instance.id, transition_id)

    status = service.get_instance_status(instance.id)
    assert status == approved


def test_history_timestamps_follow_clock(
    service: WorkflowService, approval_request: CreateDefinitionRequest
) -> None:
    service.create_definition(approval_request)
    instance = service.start_instance("approval")
    updated = service.execute(instance.id, "submit")

    stamps = [h.timestamp for h in updated.history]
    assert stamps == sorted(stamps)
    assert updated.last_modified == stamps[-1]


def test_rejected_definition_is_not_stored(
    service: WorkflowService, build_request
) -> None:
    request = build_request(
        [("a", "i"), ("b", "")],
        [("ab", ["a"], "b"), ("ba", ["b"], "a")],
        definition_id="loop",
    )

    with pytest.raises(ValidationRejected) as excinfo:
        service.create_definition(request)

    assert excinfo.value.code is RejectionCode.CYCLE
    assert service.list_definitions() == []
    with pytest.raises(DefinitionNotFound):
        service.get_definition("loop")


def test_duplicate_definition_id_is_rejected(
    service: WorkflowService, approval_request: CreateDefinitionRequest
) -> None:
    original = service.create_definition(approval_request)

    with pytest.raises(ValidationRejected) as excinfo:
        service.create_definition(approval_request)

    assert excinfo.value.code is RejectionCode.DUPLICATE_DEFINITION
    assert excinfo.value.identifiers == ("approval",)
    assert service.get_definition("approval") == original


def test_racing_creates_of_one_id_keep_the_first(
    service: WorkflowService, build_request
) -> None:
    variants = [
        build_request([("a", "i"), ("b", "f")], [("go", ["a"], "b")], definition_id="dup"),
        build_request(
            [("x", "i"), ("y", ""), ("z", "f")],
            [("xy", ["x"], "y"), ("yz", ["y"], "z")],
            definition_id="dup",
        ),
    ]
    barrier = threading.Barrier(len(variants))
    created: list[str] = []
    rejected: list[ValidationRejected] = []
    lock = threading.Lock()

    def worker(request: CreateDefinitionRequest) -> None:
        barrier.wait()
        try:
            definition = service.create_definition(request)
        except ValidationRejected as e:
            with lock:
                rejected.append(e)
        else:
            with lock:
                created.append(definition.states[0].id)

    threads = [threading.Thread(target=worker, args=(r,)) for r in variants]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(created) == 1
    assert [e.code for e in rejected] == [RejectionCode.DUPLICATE_DEFINITION]
    assert service.get_definition("dup").states[0].id == created[0]


def test_validate_definition_is_a_dry_run(
    service: WorkflowService, approval_request: CreateDefinitionRequest, build_request
) -> None:
    assert isinstance(service.validate_definition(approval_request), Accepted)
    assert service.list_definitions() == []

    bad = build_request([("a", "i"), ("stuck", "")], [("go", ["a"], "stuck")])
    result = service.validate_definition(bad)
    assert isinstance(result, Rejected)
    assert result.code is RejectionCode.DEAD_END


def test_list_definitions_sorted_by_id(service: WorkflowService, build_request) -> None:
    for definition_id in ("zeta", "alpha", "mid"):
        service.create_definition(
            build_request(
                [("a", "i"), ("b", "f")], [("go", ["a"], "b")], definition_id=definition_id
            )
        )

    assert [d.id for d in service.list_definitions()] == ["alpha", "mid", "zeta"]


def test_instances_are_independent(
    service: WorkflowService, approval_request: CreateDefinitionRequest
) -> None:
    service.create_definition(approval_request)
    first = service.start_instance("approval")
    second = service.start_instance("approval")
    assert first.id != second.id

    service.execute(first.id, "submit")

    assert service.get_instance_status(first.id).current_state == "submitted"
    assert service.get_instance_status(second.id).current_state == "draft"
    assert service.get_instance_status(second.id).version == 1


def test_missing_ids_raise_not_found(service: WorkflowService) -> None:
    with pytest.raises(DefinitionNotFound):
        service.start_instance("nope")
    with pytest.raises(InstanceNotFound):
        service.get_instance_status("nope")
    with pytest.raises(InstanceNotFound):
        service.execute("nope", "submit")


def test_accepts_camel_case_requests(service: WorkflowService) -> None:
    request = CreateDefinitionRequest.model_validate(
        {
            "id": "legacy",
            "states": [
                {"id": "open", "isInitial": True},
                {"id": "closed", "isFinal": True},
            ],
            "actions": [{"id": "close", "fromStates": ["open"], "toState": "closed"}],
        }
    )

    definition = service.create_definition(request)

    assert definition.initial_state.id == "open"
    assert definition.transitions[0].from_states == ["open"]
