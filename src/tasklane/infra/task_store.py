"""Task record store: point reads and writes keyed by task_id.

Two implementations share the TaskStore protocol:
- PostgresTaskStore: durable store backed by the tasks table
- InMemoryTaskStore: process-local store for dev runs and tests

Store selection via TASK_STORE env var ("postgres" or "memory"). When unset,
postgres is used if DATABASE_URL is configured, memory otherwise.
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from psycopg2 import errors as pg_errors

from tasklane.domain.tasks import Task, TaskStatus
from tasklane.infra.db import txn
from tasklane.infra.repositories import tasks_repository


class TaskStoreError(Exception):
    """Raised when the record store cannot complete an operation."""


class DuplicateTaskError(TaskStoreError):
    """Raised when creating a task whose task_id already exists."""


class StaleTaskUpdate(TaskStoreError):
    """Raised when a guarded update finds the task in an unexpected state."""


@dataclass(frozen=True)
class UpdateGuard:
    """Expected prior state for a compare-and-swap update.

    Attributes:
        statuses: Statuses the task may currently have.
        attempts: If set, the task's current attempts must equal this.
    """

    statuses: frozenset[TaskStatus]
    attempts: int | None = None

    def matches(self, task: Task) -> bool:
        if task.status not in self.statuses:
            return False
        return self.attempts is None or task.attempts == self.attempts


class TaskStore(Protocol):
    """Protocol for task record stores."""

    def create(self, task: Task) -> None:
        """Persist a new task. Raises DuplicateTaskError on id conflict."""
        ...

    def get(self, task_id: str) -> Task | None:
        """Return the task or None if absent."""
        ...

    def update(
        self, task_id: str, *, guard: UpdateGuard | None = None, **changes: Any
    ) -> bool:
        """Apply changes to a task.

        Returns:
            True if the task was updated, False if it does not exist
            (unguarded updates only).

        Raises:
            StaleTaskUpdate: If guard is given and does not match.
        """
        ...


def _apply(task: Task, changes: dict[str, Any]) -> Task:
    unknown = set(changes) - set(tasks_repository.UPDATABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown task columns: {sorted(unknown)}")
    return task.evolve(**changes)


class InMemoryTaskStore:
    """Thread-safe dict-backed task store."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def create(self, task: Task) -> None:
        with self._lock:
            if task.task_id in self._tasks:
                raise DuplicateTaskError(f"Task already exists: {task.task_id}")
            self._tasks[task.task_id] = task

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def update(
        self, task_id: str, *, guard: UpdateGuard | None = None, **changes: Any
    ) -> bool:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                if guard is not None:
                    raise StaleTaskUpdate(f"Task not found: {task_id}")
                return False
            if guard is not None and not guard.matches(current):
                raise StaleTaskUpdate(
                    f"Task {task_id} is {current.status.value} "
                    f"(attempts={current.attempts})"
                )
            self._tasks[task_id] = _apply(current, changes)
            return True

    def clear(self) -> None:
        """Drop all tasks (useful for testing)."""
        with self._lock:
            self._tasks.clear()


def _row_to_task(row: tuple) -> Task:
    task_id, payload, status, attempts, last_error, created_at, updated_at, completed_at = row
    if isinstance(payload, str):
        payload = json.loads(payload)
    return Task(
        task_id=task_id,
        payload=payload or {},
        status=TaskStatus(status),
        attempts=attempts,
        last_error=last_error,
        created_at=created_at,
        updated_at=updated_at,
        completed_at=completed_at,
    )


class PostgresTaskStore:
    """Task store backed by the Postgres tasks table."""

    def create(self, task: Task) -> None:
        try:
            with txn() as cur:
                created = tasks_repository.insert_task(
                    cur,
                    task_id=task.task_id,
                    payload=task.payload,
                    status=task.status.value,
                    attempts=task.attempts,
                    created_at=task.created_at,
                    updated_at=task.updated_at,
                )
        except pg_errors.UniqueViolation as e:
            raise DuplicateTaskError(f"Task already exists: {task.task_id}") from e
        if not created:
            raise DuplicateTaskError(f"Task already exists: {task.task_id}")

    def get(self, task_id: str) -> Task | None:
        with txn() as cur:
            row = tasks_repository.get_task(cur, task_id)
        return _row_to_task(row) if row is not None else None

    def update(
        self, task_id: str, *, guard: UpdateGuard | None = None, **changes: Any
    ) -> bool:
        if "status" in changes and isinstance(changes["status"], TaskStatus):
            changes["status"] = changes["status"].value

        with txn() as cur:
            updated = tasks_repository.update_task(
                cur,
                task_id,
                changes,
                expected_statuses=(
                    sorted(s.value for s in guard.statuses) if guard else None
                ),
                expected_attempts=guard.attempts if guard else None,
            )

        if updated == 0 and guard is not None:
            raise StaleTaskUpdate(f"Task {task_id} no longer matches expected state")
        return updated == 1


def build_task_store() -> TaskStore:
    """Build the task store selected by TASK_STORE / DATABASE_URL.

    Raises:
        ValueError: If TASK_STORE is unknown.
    """
    default = "postgres" if os.environ.get("DATABASE_URL") else "memory"
    kind = os.environ.get("TASK_STORE", default)
    if kind == "postgres":
        return PostgresTaskStore()
    if kind == "memory":
        return InMemoryTaskStore()
    raise ValueError(f"Unknown TASK_STORE: {kind}")
