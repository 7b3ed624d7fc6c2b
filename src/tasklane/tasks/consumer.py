"""Inline queue consumer - feeds InlineQueue deliveries to the core.

consume_once and triage_once each handle exactly one delivery, the way one
push request to the worker app does in the Cloud Tasks deployment. drain()
loops over them; InlineWorker runs drain() on a background thread of the
app process.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from tasklane.domain.lifecycle import TaskLifecycleController
from tasklane.domain.tasks import Delivery, Outcome
from tasklane.domain.triage import DeadLetterMessage, DeadLetterTriage, DiagnosticRecord
from tasklane.observability.correlation import correlation_scope
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import safe_log_context
from tasklane.tasks.contracts import TaskMessageV1
from tasklane.tasks.inline_queue import InlineQueue, InvalidReceiptHandle

logger = get_logger(__name__)


@dataclass
class DrainSummary:
    """Counters for one drain() run."""

    deliveries: int = 0
    acked: int = 0
    failed: int = 0
    dead_lettered: int = 0


def consume_once(queue: InlineQueue, controller: TaskLifecycleController) -> Outcome | None:
    """Receive one message and run it through the lifecycle controller.

    Failed outcomes leave the message unacknowledged so the queue redelivers
    it (or redrives it to the dead-letter queue).

    Returns:
        The outcome, or None if nothing was delivered or the delivery errored.
    """
    received = queue.receive()
    if received is None:
        return None

    with correlation_scope():
        try:
            message = TaskMessageV1.from_dict(received.body)
        except ValueError as e:
            logger.error(
                "malformed task message left for redrive",
                extra={"extra_fields": safe_log_context(message_id=received.message_id, error=str(e))},
            )
            return None

        delivery = Delivery(
            task_id=message.task_id,
            attempt=received.receive_count,
            handle=received.receipt_handle,
            payload=message.payload,
        )
        try:
            outcome = controller.handle(delivery)
        except Exception:
            logger.exception(
                "task delivery errored",
                extra={"extra_fields": safe_log_context(task_id=message.task_id)},
            )
            return None

        if outcome.should_ack:
            try:
                queue.delete(received.receipt_handle)
            except InvalidReceiptHandle:
                # Visibility expired mid-work and the message was received again;
                # the newer delivery owns the acknowledgement.
                logger.warning(
                    "stale receipt handle, message left to its newer delivery",
                    extra={"extra_fields": safe_log_context(task_id=message.task_id, outcome=outcome.kind)},
                )
        return outcome


def triage_once(dead_letter_queue: InlineQueue, triage: DeadLetterTriage) -> DiagnosticRecord | None:
    """Receive one dead-letter message, triage it and acknowledge it."""
    received = dead_letter_queue.receive()
    if received is None:
        return None

    with correlation_scope():
        body = received.body if isinstance(received.body, dict) else {}
        payload = body.get("payload")
        record = triage.triage(
            DeadLetterMessage(
                task_id=str(body.get("task_id", "unknown")),
                payload=payload if isinstance(payload, dict) else {},
            )
        )
        dead_letter_queue.delete(received.receipt_handle)
        return record


def drain(
    queue: InlineQueue,
    dead_letter_queue: InlineQueue,
    controller: TaskLifecycleController,
    triage: DeadLetterTriage,
    *,
    max_deliveries: int = 1000,
) -> DrainSummary:
    """Process every currently visible message on both queues.

    Messages hidden by a visibility timeout are left for a later call.
    """
    summary = DrainSummary()
    while summary.deliveries < max_deliveries:
        if not len(queue) and not len(dead_letter_queue):
            break
        outcome = consume_once(queue, controller)
        record = triage_once(dead_letter_queue, triage)
        if outcome is None and record is None:
            break
        if outcome is not None:
            summary.deliveries += 1
            if outcome.should_ack:
                summary.acked += 1
            else:
                summary.failed += 1
        if record is not None:
            summary.dead_lettered += 1
    return summary


class InlineWorker:
    """Embedded thread draining the inline queues of one process.

    The inline backend keeps its queues in memory, so the process that
    accepts submissions is also the one that must consume them.

    Args:
        queue: Task queue.
        dead_letter_queue: Dead-letter queue fed by the task queue's redrive.
        controller: Lifecycle controller for task deliveries.
        triage: Triage for dead-letter deliveries.
        poll_interval: Seconds to wait when no message is visible.
    """

    def __init__(
        self,
        queue: InlineQueue,
        dead_letter_queue: InlineQueue,
        controller: TaskLifecycleController,
        triage: DeadLetterTriage,
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self._queue = queue
        self._dead_letter_queue = dead_letter_queue
        self._controller = controller
        self._triage = triage
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="tasklane-inline-worker"
        )
        self._thread.start()
        logger.info(
            "inline worker started",
            extra={"extra_fields": {"poll_interval": self._poll_interval}},
        )

    def stop(self, timeout: float = 15.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("inline worker stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                summary = drain(
                    self._queue, self._dead_letter_queue, self._controller, self._triage
                )
            except Exception:
                logger.exception("inline worker error")
                self._stop.wait(timeout=self._poll_interval)
                continue
            if summary.deliveries == 0 and summary.dead_lettered == 0:
                self._stop.wait(timeout=self._poll_interval)
