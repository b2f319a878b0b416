"""Tests for the HTTP surface."""

import uuid

import pytest
from fastapi.testclient import TestClient

from durable_runs.database import get_db
from durable_runs.dependencies import get_publisher, get_registry
from durable_runs.main import app
from tests.helpers import ORIGIN, FakePublisher, RecordingStep, make_registry


@pytest.fixture
def client(test_db, publisher, registry):
    """Test client wired to the test database, fake publisher and test registry."""

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_registry] = lambda: registry

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


def create_run(client, kind="research"):
    response = client.post("/runs", json={"project_id": str(uuid.uuid4()), "kind": kind})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    """Test health endpoint."""
    assert client.get("/health").json() == {"status": "healthy"}


def test_run_step_rejects_invalid_json(client):
    """Test a malformed body is a bad request."""
    response = client.post("/jobs/run-step", content="{", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"


def test_run_step_rejects_invalid_payload(client):
    """Test a body without stepId is a bad request."""
    response = client.post("/jobs/run-step", json={"runId": "run_123"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"


def test_run_step_executes_with_configured_origin(client, publisher, steps):
    """Test a delivery executes the step and chains to the configured origin."""
    run = create_run(client)

    response = client.post("/jobs/run-step", json={"runId": run["id"], "stepId": "run.start"})

    assert response.status_code == 200
    assert response.json() == {
        "runId": run["id"],
        "stepId": "run.start",
        "status": "succeeded",
        "nextStepId": "run.complete",
    }
    assert publisher.calls == [(ORIGIN, run["id"], "run.complete")]
    assert len(steps["start"].calls) == 1


def test_run_step_full_chain(client):
    """Test both deliveries of the chain complete the run."""
    run = create_run(client)

    client.post("/jobs/run-step", json={"runId": run["id"], "stepId": "run.start"})
    response = client.post("/jobs/run-step", json={"runId": run["id"], "stepId": "run.complete"})

    assert response.json() == {"runId": run["id"], "stepId": "run.complete", "status": "succeeded"}
    assert client.get(f"/runs/{run['id']}").json()["status"] == "succeeded"
    steps = client.get(f"/runs/{run['id']}/steps").json()
    assert [(s["step_id"], s["status"]) for s in steps] == [
        ("run.start", "succeeded"),
        ("run.complete", "succeeded"),
    ]


def test_run_step_unknown_run(client):
    """Test a delivery for a missing run is not_found."""
    response = client.post("/jobs/run-step", json={"runId": str(uuid.uuid4()), "stepId": "run.start"})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_run_step_unknown_step(client):
    """Test a delivery for an unregistered step is bad_request."""
    run = create_run(client)

    response = client.post("/jobs/run-step", json={"runId": run["id"], "stepId": "run.nope"})

    assert response.status_code == 400
    assert response.json()["error"] == {"code": "bad_request", "message": "Unknown step: run.nope"}


def test_run_step_failure_is_a_server_error(client, publisher):
    """Test a failing closure surfaces as 500 so the queue redelivers."""
    app.dependency_overrides[get_registry] = lambda: make_registry(
        RecordingStep(error=RuntimeError("secret detail")), RecordingStep()
    )
    run = create_run(client)

    response = client.post("/jobs/run-step", json={"runId": run["id"], "stepId": "run.start"})

    assert response.status_code == 500
    assert response.json()["error"] == {"code": "internal_error", "message": "Unexpected error."}
    assert client.get(f"/runs/{run['id']}").json()["status"] == "failed"


def test_get_run_not_found(client):
    """Test fetching a missing run."""
    response = client.get(f"/runs/{uuid.uuid4()}")

    assert response.status_code == 404


def test_start_run_enqueues_first_step(client, publisher):
    """Test starting a run publishes run.start."""
    run = create_run(client, kind="implementation")

    response = client.post(f"/runs/{run['id']}/start")

    assert response.status_code == 200
    assert response.json()["step_id"] == "run.start"
    assert publisher.calls == [(ORIGIN, run["id"], "run.start")]


def test_cancel_run_stops_further_steps(client, publisher, steps):
    """Test deliveries after cancel short-circuit."""
    run = create_run(client)

    response = client.post(f"/runs/{run['id']}/cancel")
    assert response.json()["status"] == "canceled"

    response = client.post("/jobs/run-step", json={"runId": run["id"], "stepId": "run.start"})

    assert response.json() == {"runId": run["id"], "stepId": "run.start", "status": "canceled"}
    assert steps["start"].calls == []

    response = client.post(f"/runs/{run['id']}/start")
    assert response.status_code == 400
    assert publisher.calls == []
