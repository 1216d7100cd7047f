from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from workflow_engine import __version__
from workflow_engine.engine.service import WorkflowService
from workflow_engine.engine.workflow.coordinator import ExecutionCoordinator
from workflow_engine.engine.workflow.errors import StoreError
from workflow_engine.engine.workflow.models import WorkflowDefinition, WorkflowInstance
from workflow_engine.engine.workflow.store import InMemoryWorkflowStore, SaveOutcome
from workflow_engine.server.app import create_app

APPROVAL = {
    "id": "approval",
    "states": [
        {"id": "draft", "isInitial": True},
        {"id": "submitted"},
        {"id": "approved", "isFinal": True},
    ],
    "transitions": [
        {"id": "submit", "fromStates": ["draft"], "toState": "submitted"},
        {"id": "approve", "fromStates": ["submitted"], "toState": "approved"},
    ],
}


class ConflictingStore(InMemoryWorkflowStore):
    """Accepts instance creation, then loses every later conditional save."""

    def save_instance_if_version_matches(
        self, instance: WorkflowInstance, expected_version: int
    ) -> SaveOutcome:
        if expected_version == 0:
            return super().save_instance_if_version_matches(instance, expected_version)
        return SaveOutcome.CONFLICT


class FailingStore(InMemoryWorkflowStore):
    def load_all_definitions(self) -> list[WorkflowDefinition]:
        raise StoreError("definitions.json is not valid JSON")


class BuggyStore(InMemoryWorkflowStore):
    def load_all_definitions(self) -> list[WorkflowDefinition]:
        raise RuntimeError("driver exploded at /var/lib/secret")


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("WORKFLOW_CORS_ORIGINS", raising=False)
    monkeypatch.delenv("WORKFLOW_SLOW_REQUEST_MS", raising=False)


@pytest.fixture
def client(service: WorkflowService) -> TestClient:
    return TestClient(create_app(service=service))


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}
    assert response.headers["X-Correlation-ID"]
    assert int(response.headers["X-Response-Time-ms"]) >= 0


def test_correlation_id_is_echoed(client: TestClient) -> None:
    response = client.get("/api/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_approval_flow_over_http(client: TestClient) -> None:
    created = client.post("/api/workflows", json=APPROVAL)
    assert created.status_code == 201
    assert created.json()["id"] == "approval"

    listed = client.get("/api/workflows").json()
    assert [d["id"] for d in listed] == ["approval"]
    assert client.get("/api/workflows/approval").json()["states"][0]["is_initial"] is True

    started = client.post("/api/workflows/approval/instances")
    assert started.status_code == 201
    instance = started.json()
    assert instance["current_state"] == "draft"
    assert instance["version"] == 1

    submitted = client.post(
        f"/api/instances/{instance['id']}/execute", json={"transitionId": "submit"}
    )
    assert submitted.status_code == 200
    assert submitted.json()["current_state"] == "submitted"
    assert submitted.json()["version"] == 2

    approved = client.post(
        f"/api/instances/{instance['id']}/execute", json={"transition_id": "approve"}
    )
    assert approved.json()["current_state"] == "approved"

    status = client.get(f"/api/instances/{instance['id']}").json()
    assert status["version"] == 3
    assert len(status["history"]) == 3


def test_invalid_definition_maps_to_400(client: TestClient) -> None:
    body = {
        "id": "loop",
        "states": [{"id": "a", "isInitial": True}, {"id": "b"}],
        "transitions": [
            {"id": "ab", "fromStates": ["a"], "toState": "b"},
            {"id": "ba", "fromStates": ["b"], "toState": "a"},
        ],
    }

    response = client.post(
        "/api/workflows", json=body, headers={"X-Correlation-ID": "corr-1"}
    )

    assert response.status_code == 400
    error = response.json()
    assert error["type"] == "ValidationError"
    assert error["code"] == "cycle"
    assert error["correlation_id"] == "corr-1"
    assert error["identifiers"]


def test_illegal_transition_maps_to_400(client: TestClient) -> None:
    client.post("/api/workflows", json=APPROVAL)
    instance_id = client.post("/api/workflows/approval/instances").json()["id"]

    response = client.post(
        f"/api/instances/{instance_id}/execute", json={"actionId": "approve"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "not_a_source_state"


def test_missing_resources_map_to_404(client: TestClient) -> None:
    for method, path in [
        ("GET", "/api/workflows/nope"),
        ("POST", "/api/workflows/nope/instances"),
        ("GET", "/api/instances/nope"),
    ]:
        response = client.request(method, path)
        assert response.status_code == 404
        assert response.json()["type"] == "NotFound"
        assert response.json()["identifiers"] == ["nope"]


def test_malformed_body_maps_to_400(client: TestClient) -> None:
    response = client.post(
        "/api/workflows",
        json={"id": "x", "states": [{"isInitial": True}]},
        headers={"X-Correlation-ID": "corr-2"},
    )

    assert response.status_code == 400
    error = response.json()
    assert error["type"] == "ValidationError"
    assert error["code"] == "malformed_request"
    assert error["identifiers"] == ["body.states.0.id"]
    assert error["correlation_id"] == "corr-2"


def test_execute_without_transition_maps_to_400(client: TestClient) -> None:
    response = client.post("/api/instances/anything/execute", json={})

    assert response.status_code == 400
    assert response.json()["code"] == "malformed_request"


def test_exhausted_retries_map_to_409() -> None:
    store = ConflictingStore()
    coordinator = ExecutionCoordinator(store, sleep=lambda _seconds: None)
    client = TestClient(create_app(service=WorkflowService(store=store, coordinator=coordinator)))

    client.post("/api/workflows", json=APPROVAL)
    instance_id = client.post("/api/workflows/approval/instances").json()["id"]
    response = client.post(
        f"/api/instances/{instance_id}/execute", json={"transitionId": "submit"}
    )

    assert response.status_code == 409
    assert response.json()["type"] == "ConcurrencyError"
    assert response.json()["identifiers"] == [instance_id]


def test_store_failure_maps_to_500_without_details() -> None:
    client = TestClient(create_app(service=WorkflowService(store=FailingStore())))

    response = client.get("/api/workflows")

    assert response.status_code == 500
    assert response.json()["type"] == "InternalServerError"
    assert "definitions.json" not in response.json()["detail"]


def test_unexpected_exception_maps_to_500_api_error() -> None:
    client = TestClient(
        create_app(service=WorkflowService(store=BuggyStore())), raise_server_exceptions=False
    )

    response = client.get("/api/workflows", headers={"X-Correlation-ID": "c-1"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.headers["X-Correlation-ID"] == "c-1"
    error = response.json()
    assert error["type"] == "InternalServerError"
    assert error["correlation_id"] == "c-1"
    assert "secret" not in error["detail"]
