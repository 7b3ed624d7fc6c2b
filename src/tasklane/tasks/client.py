"""Tasks client - sends task messages to the configured queue backend.

Backend selection via TASKS_BACKEND env var:
- inline (default): in-process InlineQueue pair (task queue + dead-letter)
- cloud_tasks: Google Cloud Tasks pushing to the worker app
"""

import os

from tasklane.domain.lifecycle import DelayRequester
from tasklane.tasks.contracts import TaskMessageV1
from tasklane.tasks.inline_queue import DEFAULT_VISIBILITY_TIMEOUT, InlineQueue

TASKS_BACKEND = os.environ.get("TASKS_BACKEND", "inline")

PROCESS_PATH = "/tasks/process"
DEAD_LETTER_PATH = "/tasks/dead-letter"


def max_delivery_attempts() -> int:
    """Deliveries allowed before a message is routed to the dead-letter channel."""
    return int(os.environ.get("MAX_DELIVERY_ATTEMPTS", "3"))


class TasksClient:
    """Sends task messages to the task queue or the dead-letter queue.

    Args:
        backend: "inline" or "cloud_tasks"; defaults to TASKS_BACKEND.

    Raises:
        ValueError: If the backend is unknown.
    """

    def __init__(self, backend: str | None = None) -> None:
        self._backend = backend or TASKS_BACKEND
        if self._backend not in ("inline", "cloud_tasks"):
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")

        self.queue: InlineQueue | None = None
        self.dead_letter_queue: InlineQueue | None = None
        if self._backend == "inline":
            self.dead_letter_queue = InlineQueue("dead-letter")
            self.queue = InlineQueue(
                "tasks",
                visibility_timeout=int(
                    os.environ.get(
                        "INLINE_VISIBILITY_TIMEOUT", str(DEFAULT_VISIBILITY_TIMEOUT)
                    )
                ),
                max_receive_count=max_delivery_attempts(),
                dead_letter_queue=self.dead_letter_queue,
            )

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def forwards_dead_letters(self) -> bool:
        """True when the worker itself must route exhausted messages.

        The inline queue redrives on its own; Cloud Tasks has no dead-letter
        queue and simply drops a task after its last attempt.
        """
        return self._backend == "cloud_tasks"

    def delay_requester(self) -> DelayRequester:
        if self._backend == "inline":
            return self.queue
        from tasklane.tasks.cloud_tasks_backend import CloudTasksDelayRequester

        return CloudTasksDelayRequester()

    def enqueue(self, message: TaskMessageV1, correlation_id: str | None = None) -> bool:
        """Send a task message to the task queue.

        Returns:
            True if the message was enqueued (or already existed).
        """
        if self._backend == "inline":
            self.queue.send(message.to_dict())
            return True

        from tasklane.tasks.cloud_tasks_backend import enqueue_cloud_task

        return enqueue_cloud_task(
            message.task_id, PROCESS_PATH, message.to_dict(), correlation_id
        )

    def enqueue_dead_letter(
        self, message: TaskMessageV1, correlation_id: str | None = None
    ) -> bool:
        """Send a task message to the dead-letter channel."""
        if self._backend == "inline":
            self.dead_letter_queue.send(message.to_dict())
            return True

        from tasklane.tasks.cloud_tasks_backend import (
            dead_letter_queue_name,
            enqueue_cloud_task,
        )

        return enqueue_cloud_task(
            f"{message.task_id}-dead-letter",
            DEAD_LETTER_PATH,
            message.to_dict(),
            correlation_id,
            queue=dead_letter_queue_name(),
        )
