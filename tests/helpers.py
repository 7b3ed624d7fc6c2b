"""Shared test helpers for tasklane tests.

Regular classes and functions (not fixtures) importable from conftest.py
and individual test files.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from tasklane.domain.tasks import Task, TaskStatus

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingDelayRequester:
    """DelayRequester that records requests, optionally failing."""

    def __init__(self, error: Exception | None = None) -> None:
        self.requests: list[tuple[str, int]] = []
        self._error = error

    def request_delay(self, handle: str, seconds: int) -> None:
        if self._error is not None:
            raise self._error
        self.requests.append((handle, seconds))


class ListSink:
    """DiagnosticSink collecting records in a list."""

    def __init__(self) -> None:
        self.records = []

    def emit(self, record) -> None:
        self.records.append(record)


class ScriptedUnitOfWork:
    """Unit of work failing on the listed call numbers (1-based)."""

    def __init__(self, fail_on: set[int] | None = None, message: str = "boom") -> None:
        self.fail_on = fail_on or set()
        self.message = message
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, task_id: str, payload: dict[str, Any]) -> None:
        self.calls.append((task_id, payload))
        if len(self.calls) in self.fail_on:
            raise RuntimeError(f"{self.message} #{len(self.calls)}")


def make_task(
    task_id: str = "task-1",
    *,
    status: TaskStatus = TaskStatus.SUBMITTED,
    attempts: int = 0,
    payload: dict | None = None,
    last_error: str | None = None,
    created_at: datetime = T0,
) -> Task:
    return Task(
        task_id=task_id,
        payload=payload if payload is not None else {"job": "resize", "size": 3},
        status=status,
        attempts=attempts,
        created_at=created_at,
        updated_at=created_at,
        last_error=last_error,
    )
