"""
Tests for the batch import HTTP routes. The remote processor is replaced with
a scripted fake through a dependency override, so no network is used.
"""
import asyncio
import threading
import time

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import ImporterRegistry, get_importer_registry
from app.integrations.batch_processor import BatchResult
from app.main import app
from tests.utils.fakes import FakeProcessor, make_lines, transport_error

PROFILE = "import-user-migrations"


class RouteHarness:
    """Registry whose processors are fakes; optionally gated by a thread-safe event."""

    def __init__(self):
        self.gate = threading.Event()
        self.gate.set()
        self.outcomes = {}
        self.processors = []
        self.registry = ImporterRegistry(
            processor_factory=self._make_processor,
            importer_options={"pause_poll_interval": 0.001, "inter_batch_delay": 0},
        )

    def _make_processor(self, profile):
        async def wait_for_gate(batch_number):
            while not self.gate.is_set():
                await asyncio.sleep(0.001)

        processor = FakeProcessor(outcomes=self.outcomes, on_call=wait_for_gate)
        self.processors.append(processor)
        return processor


@pytest.fixture
def harness():
    return RouteHarness()


@pytest.fixture
def client(harness):
    """Client with a live event loop so background runs keep going between requests."""
    original_overrides = app.dependency_overrides.copy()
    app.dependency_overrides[get_importer_registry] = lambda: harness.registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = original_overrides


def wait_for_status(client, tenant_id, status, profile=PROFILE, timeout=2.0):
    deadline = time.monotonic() + timeout
    while True:
        progress = client.get(f"/importers/{profile}/runs/{tenant_id}").json()["progress"]
        if progress["status"] == status:
            return progress
        if time.monotonic() > deadline:
            raise AssertionError(f"status stayed {progress['status']!r}, expected {status!r}")
        time.sleep(0.005)


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Batch Import API"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["active_imports"] == 0


def test_list_importers(client):
    response = client.get("/importers")

    assert response.status_code == 200
    names = [importer["name"] for importer in response.json()["importers"]]
    assert PROFILE in names
    assert "import-daily-analytics" in names


def test_preview_counts_records_and_batches(client):
    response = client.post(
        f"/importers/{PROFILE}/preview",
        json={"csv_data": make_lines(250), "batch_size": 100},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["total_records"] == 250
    assert body["has_header"] is True
    assert body["header_line"] == "email,points"
    assert body["estimated_batches"] == 3
    assert body["rows"][0] == ["email", "points"]


def test_preview_rejects_unknown_header_mode(client):
    response = client.post(f"/importers/{PROFILE}/preview", json={"csv_data": "a", "header_mode": "guess"})

    assert response.status_code == 400


def test_unknown_importer_is_404(client):
    assert client.post("/importers/nope/preview", json={"csv_data": "a"}).status_code == 404
    assert client.post("/importers/nope/runs", json={"tenant_id": "t", "csv_data": "a"}).status_code == 404
    assert client.get("/importers/nope/runs/t").status_code == 404


def test_progress_for_unknown_run_is_404(client):
    assert client.get(f"/importers/{PROFILE}/runs/tenant-x").status_code == 404
    assert client.post(f"/importers/{PROFILE}/runs/tenant-x/stop").status_code == 404


def test_start_runs_to_completion(client, harness):
    harness.outcomes[2] = transport_error("Edge Function returned a non-2xx status code")

    response = client.post(
        f"/importers/{PROFILE}/runs",
        json={"tenant_id": "tenant-1", "csv_data": make_lines(250), "batch_size": 100},
    )

    assert response.status_code == 202
    assert response.json()["progress"]["total_batches"] == 3

    progress = wait_for_status(client, "tenant-1", "completed")
    assert progress["processed_records"] == 250
    assert progress["progress_percent"] == 100.0
    assert progress["inserted"] == 150
    assert progress["recent_errors"] == ["Batch 2: Edge Function returned a non-2xx status code"]
    assert harness.processors[0].calls[0][0] == "tenant-1"


@pytest.mark.parametrize(
    "payload",
    [
        {"tenant_id": "tenant-1", "csv_data": ""},
        {"tenant_id": "tenant-1", "csv_data": "email,points"},
        {"tenant_id": "tenant-1", "csv_data": "a@x.com,1", "header_mode": "guess"},
    ],
)
def test_start_preflight_failures_are_400(client, harness, payload):
    response = client.post(f"/importers/{PROFILE}/runs", json=payload)

    assert response.status_code == 400
    assert all(not processor.calls for processor in harness.processors)


def test_start_validates_request_body(client):
    response = client.post(f"/importers/{PROFILE}/runs", json={"tenant_id": "", "csv_data": "a"})
    assert response.status_code == 422

    response = client.post(f"/importers/{PROFILE}/runs", json={"tenant_id": "t", "csv_data": "a", "batch_size": 0})
    assert response.status_code == 422


def test_second_start_for_same_tenant_is_409(client, harness):
    harness.gate.clear()
    first = client.post(f"/importers/{PROFILE}/runs", json={"tenant_id": "tenant-1", "csv_data": make_lines(10)})
    assert first.status_code == 202

    second = client.post(f"/importers/{PROFILE}/runs", json={"tenant_id": "tenant-1", "csv_data": make_lines(5)})
    other_tenant = client.post(
        f"/importers/{PROFILE}/runs", json={"tenant_id": "tenant-2", "csv_data": make_lines(5)}
    )

    assert second.status_code == 409
    assert other_tenant.status_code == 202
    assert client.get("/health").json()["active_imports"] == 2

    harness.gate.set()
    wait_for_status(client, "tenant-1", "completed")
    wait_for_status(client, "tenant-2", "completed")


def test_pause_resume_and_stop(client, harness):
    harness.gate.clear()
    client.post(
        f"/importers/{PROFILE}/runs",
        json={"tenant_id": "tenant-1", "csv_data": make_lines(50), "batch_size": 10},
    )

    paused = client.post(f"/importers/{PROFILE}/runs/tenant-1/pause")
    assert paused.status_code == 200
    harness.gate.set()

    frozen = wait_for_status(client, "tenant-1", "paused")
    assert frozen["current_batch"] == 1
    time.sleep(0.05)
    still = client.get(f"/importers/{PROFILE}/runs/tenant-1").json()["progress"]
    assert (still["status"], still["processed_records"]) == ("paused", frozen["processed_records"])

    harness.gate.clear()
    client.post(f"/importers/{PROFILE}/runs/tenant-1/resume")
    client.post(f"/importers/{PROFILE}/runs/tenant-1/stop")
    harness.gate.set()

    stopped = wait_for_status(client, "tenant-1", "stopped")
    assert stopped["processed_records"] < 50
    assert len(harness.processors[0].calls) < 5


def test_restart_resets_progress(client, harness):
    harness.outcomes[1] = BatchResult(inserted=0, skipped=10, errors=["Row 1: bad"])
    client.post(f"/importers/{PROFILE}/runs", json={"tenant_id": "tenant-1", "csv_data": make_lines(10)})
    first = wait_for_status(client, "tenant-1", "completed")
    assert first["error_count"] == 1

    harness.outcomes.clear()
    harness.processors[0].calls.clear()
    response = client.post(f"/importers/{PROFILE}/runs", json={"tenant_id": "tenant-1", "csv_data": make_lines(4)})

    assert response.status_code == 202
    second = wait_for_status(client, "tenant-1", "completed")
    assert second["error_count"] == 0
    assert second["skipped"] == 0
    assert second["inserted"] == 4
