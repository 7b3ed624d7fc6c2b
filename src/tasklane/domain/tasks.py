"""Task record, delivery envelope and processing outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Durable task lifecycle states."""

    SUBMITTED = "SUBMITTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    DEAD_LETTER = "DEAD_LETTER"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.DEAD_LETTER)


# Statuses a delivery may claim the task from. PROCESSING is included so a
# redelivery after a crashed handler can pick the task back up.
CLAIMABLE_STATUSES = frozenset(
    {TaskStatus.SUBMITTED, TaskStatus.FAILED, TaskStatus.PROCESSING}
)


@dataclass(frozen=True)
class Task:
    """Persisted task state.

    Attributes:
        task_id: Opaque unique identifier.
        payload: Opaque JSON object, never interpreted by the lifecycle.
        status: Current lifecycle status.
        attempts: Delivery count reported by the queue for the latest delivery.
        last_error: Most recent failure message (kept after later success).
        created_at: Creation timestamp (UTC).
        updated_at: Last mutation timestamp (UTC).
        completed_at: Set only when status is COMPLETED.
    """

    task_id: str
    payload: dict[str, Any]
    status: TaskStatus
    attempts: int
    created_at: datetime
    updated_at: datetime
    last_error: str | None = None
    completed_at: datetime | None = None

    def evolve(self, **changes: Any) -> "Task":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "task_id": self.task_id,
            "payload": self.payload,
            "status": self.status.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class Delivery:
    """One delivery of a task message by the queue.

    Attributes:
        task_id: Referenced task.
        attempt: Delivery count supplied by the queue (1 for the first delivery).
        handle: Opaque token used to ask the queue for a redelivery delay.
        payload: Message payload as carried on the queue.
    """

    task_id: str
    attempt: int
    handle: str
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {self.attempt}")


@dataclass(frozen=True)
class Outcome:
    """Base class for the result of handling one delivery."""

    task_id: str

    @property
    def should_ack(self) -> bool:
        """True when the queue should treat the delivery as done."""
        return True

    @property
    def kind(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Completed(Outcome):
    attempt: int = 0


@dataclass(frozen=True)
class Duplicate(Outcome):
    """Delivery for a task that already reached a terminal status."""

    status: TaskStatus = TaskStatus.COMPLETED


@dataclass(frozen=True)
class TaskMissing(Outcome):
    pass


@dataclass(frozen=True)
class FailedRetryable(Outcome):
    """Unit of work failed; the queue should redeliver after ``delay_seconds``.

    ``delay_seconds`` is None when the delay request could not be issued and
    the queue's default visibility applies.
    """

    attempt: int = 0
    error: str = ""
    delay_seconds: int | None = None

    @property
    def should_ack(self) -> bool:
        return False


@dataclass(frozen=True)
class FailedExhausted(Outcome):
    """Unit of work failed with the retry schedule used up.

    No delay is requested; the queue's maximum receive count decides when
    the message moves to the dead-letter channel.
    """

    attempt: int = 0
    error: str = ""

    @property
    def should_ack(self) -> bool:
        return False
