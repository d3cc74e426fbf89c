# tests/test_queue_endpoints.py
import importlib
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from queueflow.endpoints.queue import build_sequencer, get_orchestrator
from queueflow.main import app
from queueflow.services.assignment_service import AssignmentOrchestrator
from queueflow.services.queue_sequencer import InMemoryQueueSequencer, SqlQueueSequencer
from tests_support import FIXED_NOW


@pytest.fixture
def client(repository):
    orchestrator = AssignmentOrchestrator(repository, InMemoryQueueSequencer(), timeout=2, clock=lambda: FIXED_NOW)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    assert client.get("/").json() == {"message": "API is running"}


def test_assign_returns_record(client, add_clinician):
    add_clinician("neuro-1", "neurology")

    response = client.post("/assign", json={"patient_id": "p-1", "symptoms": "migraine"})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["assignment"]["chosen_doctor_id"] == "neuro-1"
    assert body["assignment"]["queue_slot"]["day_sequence_number"] == 1


def test_assign_failure_is_reported_with_reason(client):
    response = client.post("/assign", json={"patient_id": "p-1", "symptoms": "rash"})

    body = response.json()
    assert body["success"] is False
    assert body["reason"] == "no_available_clinician"


def test_check_in_and_list_queue(client, add_clinician):
    add_clinician("im-1", "internal-medicine")

    created = client.post("/queue/check-in", json={"patient_id": "p-1", "symptoms": "fever"})
    duplicate = client.post("/queue/check-in", json={"patient_id": "p-1", "symptoms": "fever"})
    listing = client.get("/queue", params={"doctor_id": "im-1"}).json()

    assert created.status_code == 201
    assert created.json()["queue_number"] == 1
    assert duplicate.status_code == 400
    assert listing["count"] == 1
    assert listing["data"][0]["patient_id"] == "p-1"


def test_status_update_errors(client, add_clinician):
    add_clinician("im-1", "internal-medicine")
    entry_id = client.post("/queue/check-in", json={"patient_id": "p-1", "symptoms": "cough"}).json()["queue_entry_id"]

    assert client.patch("/queue/9999/status", json={"status": "cancelled"}).status_code == 404
    assert client.patch(f"/queue/{entry_id}/status", json={"status": "completed"}).status_code == 400

    ok = client.patch(f"/queue/{entry_id}/status", json={"status": "in-progress"})
    assert ok.status_code == 200
    assert ok.json()["status"] == "in-progress"


def test_stats_cover_service_day(client, add_clinician):
    add_clinician("im-1", "internal-medicine")
    client.post("/queue/check-in", json={"patient_id": "p-1", "symptoms": "fatigue"})

    stats = client.get("/queue/stats").json()

    assert stats["service_day"] == "2026-10-17"
    assert stats["total_assignments"] == 1


def test_build_sequencer_backends():
    assert isinstance(build_sequencer("memory"), InMemoryQueueSequencer)
    assert isinstance(build_sequencer("sql"), SqlQueueSequencer)
    with pytest.raises(ValueError):
        build_sequencer("carrier-pigeon")


def test_concurrent_first_requests_share_one_orchestrator(monkeypatch):
    # the package re-exports the router under the module name
    queue_module = importlib.import_module("queueflow.endpoints.queue")

    def slow_build():
        time.sleep(0.1)
        return InMemoryQueueSequencer()

    monkeypatch.setattr(queue_module, "_orchestrator", None)
    monkeypatch.setattr(queue_module, "build_sequencer", slow_build)
    barrier = threading.Barrier(2)

    def resolve(_):
        barrier.wait()
        return get_orchestrator()

    with ThreadPoolExecutor(max_workers=2) as pool:
        first, second = pool.map(resolve, range(2))

    assert first is second
    assert [first.sequencer.next_sequence_number(FIXED_NOW.date()) for _ in range(2)] == [1, 2]
