"""Tests for app factory and role-based routing."""

import time
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tasklane.api.deps import build_inline_worker, build_services
from tasklane.api.factory import create_app
from tasklane.tasks.client import TasksClient


@pytest.fixture
def services(store, sink):
    return build_services(store=store, tasks_client=TasksClient("inline"), sink=sink)


class TestPublicRole:
    """Tests for APP_ROLE=public."""

    def test_health_available(self, services):
        client = TestClient(create_app(role="public", services=services))
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_tasks_health_not_mounted(self, services):
        client = TestClient(create_app(role="public", services=services))
        response = client.get("/tasks/health")
        # Falls through to GET /tasks/{task_id}
        assert response.status_code == 404

    def test_process_not_mounted(self, services):
        """Worker delivery endpoints should NOT be available in public."""
        client = TestClient(create_app(role="public", services=services))
        response = client.post("/tasks/process", json={})
        assert response.status_code in (404, 405)

    def test_submit_mounted(self, services):
        client = TestClient(create_app(role="public", services=services))
        response = client.post("/tasks", json={"payload": {}})
        assert response.status_code == 200

    def test_role_from_env(self, services, monkeypatch):
        monkeypatch.setenv("APP_ROLE", "worker")
        client = TestClient(create_app(services=services))
        assert client.get("/tasks/health").status_code == 200


class TestWorkerRole:
    """Tests for APP_ROLE=worker."""

    def test_health_available(self, services):
        client = TestClient(create_app(role="worker", services=services))
        response = client.get("/health")
        assert response.status_code == 200

    def test_tasks_mounted(self, services):
        client = TestClient(create_app(role="worker", services=services))
        response = client.get("/tasks/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "subsystem": "tasks", "backend": "inline"}

    def test_process_mounted(self, services):
        with patch("tasklane.api.task_auth.verify_task_auth", return_value=True):
            client = TestClient(create_app(role="worker", services=services))
            # Empty body returns 400 (invalid message), not 404
            response = client.post("/tasks/process", json={})
            assert response.status_code == 400


class TestServicesFromEnv:
    def test_builds_services_when_not_given(self):
        app = create_app(role="public")
        assert app.state.services.tasks_client.backend in ("inline", "cloud_tasks")


class TestInlineWorkerLifespan:
    def test_submitted_task_consumed_in_process(self, services, monkeypatch):
        monkeypatch.setenv("INLINE_POLL_INTERVAL", "0.05")

        app = create_app(role="public", services=services)
        with TestClient(app) as client:
            assert app.state.inline_worker.running
            client.post("/tasks", json={"task_id": "t1", "payload": {}})

            deadline = time.monotonic() + 5
            status = None
            while time.monotonic() < deadline:
                status = client.get("/tasks/t1").json()["status"]
                if status == "COMPLETED":
                    break
                time.sleep(0.02)

            assert status == "COMPLETED"

        assert not app.state.inline_worker.running

    def test_no_worker_when_polling_disabled(self, services, monkeypatch):
        monkeypatch.setenv("INLINE_POLL_INTERVAL", "0")

        app = create_app(role="public", services=services)
        with TestClient(app):
            assert app.state.inline_worker is None

    def test_no_worker_for_cloud_tasks(self, services):
        services.tasks_client = MagicMock(backend="cloud_tasks")
        assert build_inline_worker(services) is None


class TestCorrelationId:
    """Tests for correlation ID middleware."""

    def test_generates_correlation_id(self, services):
        client = TestClient(create_app(role="public", services=services))
        response = client.get("/health")
        assert "X-Correlation-ID" in response.headers
        cid = response.headers["X-Correlation-ID"]
        assert len(cid) == 36  # UUID length

    def test_preserves_incoming_correlation_id(self, services):
        client = TestClient(create_app(role="public", services=services))
        response = client.get("/health", headers={"X-Correlation-ID": "test-123"})
        assert response.headers["X-Correlation-ID"] == "test-123"
