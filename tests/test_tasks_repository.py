"""Tests for tasks repository SQL helpers (mocked cursor)."""

import json
from unittest.mock import MagicMock

import pytest

from tasklane.infra.repositories.tasks_repository import insert_task, update_task

from helpers import T0


class TestInsertTask:
    def test_insert_serializes_payload(self):
        cur = MagicMock()
        cur.rowcount = 1

        created = insert_task(
            cur,
            task_id="t1",
            payload={"a": [1, 2]},
            status="SUBMITTED",
            attempts=0,
            created_at=T0,
            updated_at=T0,
        )

        assert created is True
        query, params = cur.execute.call_args[0]
        assert "ON CONFLICT (task_id) DO NOTHING" in query
        assert params == ("t1", json.dumps({"a": [1, 2]}), "SUBMITTED", 0, T0, T0)

    def test_insert_conflict_returns_false(self):
        cur = MagicMock()
        cur.rowcount = 0
        assert insert_task(
            cur, task_id="t1", payload={}, status="SUBMITTED",
            attempts=0, created_at=T0, updated_at=T0,
        ) is False


class TestUpdateTask:
    def test_unguarded_update(self):
        cur = MagicMock()
        cur.rowcount = 1

        assert update_task(cur, "t1", {"last_error": "x", "status": "FAILED"}) == 1

        query, params = cur.execute.call_args[0]
        assert query == "UPDATE tasks SET status = %s, last_error = %s WHERE task_id = %s"
        assert params == ["FAILED", "x", "t1"]

    def test_empty_changes_rejected(self):
        with pytest.raises(ValueError, match="No columns"):
            update_task(MagicMock(), "t1", {})

    def test_unknown_column_rejected(self):
        with pytest.raises(ValueError, match="Unknown task columns"):
            update_task(MagicMock(), "t1", {"payload": "{}"})
