"""Tests for task ingress: POST /tasks and GET /tasks/{task_id}."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tasklane.api.deps import build_services
from tasklane.api.factory import create_app
from tasklane.domain.tasks import TaskStatus
from tasklane.tasks.client import TasksClient

from helpers import ScriptedUnitOfWork


@pytest.fixture
def tasks_client():
    return TasksClient("inline")


@pytest.fixture
def client(store, sink, tasks_client):
    services = build_services(
        store=store,
        tasks_client=tasks_client,
        unit_of_work=ScriptedUnitOfWork(),
        sink=sink,
    )
    return TestClient(create_app(role="public", services=services))


class TestSubmitTask:
    def test_success_persists_and_enqueues(self, client, store, tasks_client):
        response = client.post(
            "/tasks", json={"task_id": "t1", "payload": {"job": "resize"}}
        )

        assert response.status_code == 200
        assert response.json() == {
            "message": "Task submitted successfully",
            "task_id": "t1",
            "status": "SUBMITTED",
        }
        task = store.get("t1")
        assert task.status == TaskStatus.SUBMITTED
        assert task.attempts == 0
        assert task.payload == {"job": "resize"}
        assert [m["body"] for m in tasks_client.queue.peek()] == [
            {"version": "v1", "task_id": "t1", "payload": {"job": "resize"}}
        ]

    def test_task_id_generated_when_absent(self, client, store):
        response = client.post("/tasks", json={"payload": {}})

        assert response.status_code == 200
        task_id = response.json()["task_id"]
        assert len(task_id) == 36
        assert store.get(task_id) is not None

    def test_invalid_json(self, client):
        response = client.post(
            "/tasks", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON in request body"

    def test_body_not_an_object(self, client):
        response = client.post("/tasks", json=[1, 2])
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [{"task_id": "t1"}, {"task_id": "t1", "payload": "resize"}, {"payload": None}],
    )
    def test_invalid_payload(self, client, store, body):
        response = client.post("/tasks", json=body)

        assert response.status_code == 400
        assert "payload" in response.json()["message"]
        assert store.get("t1") is None

    def test_blank_task_id(self, client):
        response = client.post("/tasks", json={"task_id": "  ", "payload": {}})

        assert response.status_code == 400
        assert "task_id" in response.json()["message"]

    def test_duplicate_with_other_payload_returns_409(self, client, tasks_client):
        assert client.post("/tasks", json={"task_id": "t1", "payload": {}}).status_code == 200

        response = client.post("/tasks", json={"task_id": "t1", "payload": {"n": 2}})

        assert response.status_code == 409
        assert response.json()["task_id"] == "t1"
        assert len(tasks_client.queue) == 1

    def test_duplicate_of_delivered_task_returns_409(self, client, store, tasks_client):
        body = {"task_id": "t1", "payload": {}}
        client.post("/tasks", json=body)
        store.update("t1", status=TaskStatus.COMPLETED, attempts=1)

        response = client.post("/tasks", json=body)

        assert response.status_code == 409
        assert len(tasks_client.queue) == 1

    def test_resubmit_after_enqueue_failure_resends(self, client, store, tasks_client):
        body = {"task_id": "t1", "payload": {"job": "resize"}}
        with patch.object(tasks_client, "enqueue", side_effect=RuntimeError("queue down")):
            first = client.post("/tasks", json=body)

        assert first.status_code == 500
        assert store.get("t1").status == TaskStatus.SUBMITTED
        assert len(tasks_client.queue) == 0

        retry = client.post("/tasks", json=body)

        assert retry.status_code == 200
        assert retry.json()["status"] == "SUBMITTED"
        assert [m["body"]["task_id"] for m in tasks_client.queue.peek()] == ["t1"]

    def test_store_error_returns_500(self, sink, tasks_client):
        store = MagicMock()
        store.create.side_effect = RuntimeError("db down")
        services = build_services(
            store=store, tasks_client=tasks_client, unit_of_work=ScriptedUnitOfWork(), sink=sink
        )
        client = TestClient(create_app(role="public", services=services))

        response = client.post("/tasks", json={"task_id": "t1", "payload": {}})

        assert response.status_code == 500
        assert response.json()["error"] == "db down"
        assert len(tasks_client.queue) == 0


class TestGetTask:
    def test_returns_record(self, client):
        client.post("/tasks", json={"task_id": "t1", "payload": {"n": 1}})

        response = client.get("/tasks/t1")

        assert response.status_code == 200
        data = response.json()
        assert data["task_id"] == "t1"
        assert data["status"] == "SUBMITTED"
        assert data["attempts"] == 0
        assert data["payload"] == {"n": 1}
        assert data["last_error"] is None
        assert data["completed_at"] is None

    def test_missing_returns_404(self, client):
        response = client.get("/tasks/nope")
        assert response.status_code == 404
