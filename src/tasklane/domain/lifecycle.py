"""Task lifecycle controller - one delivery at a time.

Drives SUBMITTED/FAILED -> PROCESSING -> COMPLETED | FAILED, and paces
redelivery of failed tasks through the queue. Dead-lettering is never
decided here: the queue's maximum receive count routes exhausted messages
to the dead-letter channel, handled by DeadLetterTriage.
"""

from __future__ import annotations

from typing import Protocol

from tasklane.domain import retry_policy
from tasklane.domain.tasks import (
    CLAIMABLE_STATUSES,
    Completed,
    Delivery,
    Duplicate,
    FailedExhausted,
    FailedRetryable,
    Outcome,
    TaskMissing,
    TaskStatus,
)
from tasklane.domain.units import UnitOfWork
from tasklane.infra.task_store import StaleTaskUpdate, TaskStore, UpdateGuard
from tasklane.infra.time import Clock, utc_now
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import error_summary, safe_log_context

logger = get_logger(__name__)


class DelayRequestError(Exception):
    """Raised by a delay requester when the queue refuses the request."""


class DelayRequester(Protocol):
    """Asks the queue to hold a delivered message back before redelivery."""

    def request_delay(self, handle: str, seconds: int) -> None:
        ...


class TaskLifecycleController:
    """Applies one delivery to a task's persisted state.

    Args:
        store: Task record store (re-read on every delivery).
        delay_requester: Queue binding used to pace redelivery.
        unit_of_work: Work invoked exactly once per accepted delivery.
        conditional_updates: When True every write is a compare-and-swap on
            the expected prior state; when False writes are last-writer-wins.
        clock: Source of UTC timestamps.
    """

    def __init__(
        self,
        store: TaskStore,
        delay_requester: DelayRequester,
        unit_of_work: UnitOfWork,
        *,
        conditional_updates: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._delay_requester = delay_requester
        self._unit_of_work = unit_of_work
        self._conditional = conditional_updates
        self._clock = clock

    def handle(self, delivery: Delivery) -> Outcome:
        """Process one delivery and report what the queue should do with it.

        Store failures before the unit of work runs propagate to the caller,
        which reports the delivery as failed so the queue redelivers it.
        """
        ctx = safe_log_context(task_id=delivery.task_id, attempt=delivery.attempt)
        logger.info("processing task delivery", extra={"extra_fields": ctx})

        task = self._store.get(delivery.task_id)
        if task is None:
            logger.error("task not found in store", extra={"extra_fields": ctx})
            return TaskMissing(task_id=delivery.task_id)

        if task.status.is_terminal:
            logger.warning(
                "duplicate delivery for terminal task",
                extra={"extra_fields": {**ctx, "status": task.status.value}},
            )
            return Duplicate(task_id=task.task_id, status=task.status)

        try:
            self._store.update(
                task.task_id,
                guard=self._guard(CLAIMABLE_STATUSES),
                status=TaskStatus.PROCESSING,
                attempts=delivery.attempt,
                updated_at=self._clock(),
            )
        except StaleTaskUpdate:
            current = self._store.get(delivery.task_id)
            if current is None:
                logger.error("task vanished before claim", extra={"extra_fields": ctx})
                return TaskMissing(task_id=delivery.task_id)
            logger.warning(
                "task reached terminal status before claim",
                extra={"extra_fields": {**ctx, "status": current.status.value}},
            )
            return Duplicate(task_id=current.task_id, status=current.status)

        try:
            self._unit_of_work(task.task_id, task.payload)
        except Exception as exc:
            return self._on_failure(delivery, exc)

        return self._on_success(delivery)

    def _guard(self, statuses, attempts: int | None = None) -> UpdateGuard | None:
        if not self._conditional:
            return None
        return UpdateGuard(statuses=frozenset(statuses), attempts=attempts)

    def _on_success(self, delivery: Delivery) -> Completed:
        now = self._clock()
        ctx = safe_log_context(task_id=delivery.task_id, attempt=delivery.attempt)
        try:
            self._store.update(
                delivery.task_id,
                guard=self._guard({TaskStatus.PROCESSING}, delivery.attempt),
                status=TaskStatus.COMPLETED,
                completed_at=now,
                updated_at=now,
            )
        except StaleTaskUpdate:
            # Another delivery claimed the task while this one was working.
            logger.warning(
                "completion superseded by concurrent delivery",
                extra={"extra_fields": ctx},
            )
        else:
            logger.info("task processed successfully", extra={"extra_fields": ctx})
        return Completed(task_id=delivery.task_id, attempt=delivery.attempt)

    def _on_failure(self, delivery: Delivery, exc: Exception) -> Outcome:
        error = error_summary(exc)
        ctx = safe_log_context(
            task_id=delivery.task_id, attempt=delivery.attempt, error=error
        )
        logger.warning("task processing failed", extra={"extra_fields": ctx})

        try:
            self._store.update(
                delivery.task_id,
                guard=self._guard({TaskStatus.PROCESSING}, delivery.attempt),
                status=TaskStatus.FAILED,
                last_error=error,
                updated_at=self._clock(),
            )
        except StaleTaskUpdate:
            logger.warning(
                "failure state superseded by concurrent delivery",
                extra={"extra_fields": ctx},
            )
        except Exception:
            logger.exception(
                "failed to persist FAILED state", extra={"extra_fields": ctx}
            )

        if retry_policy.is_exhausted(delivery.attempt):
            logger.warning(
                "retry schedule exhausted, next failure routes to dead-letter",
                extra={"extra_fields": ctx},
            )
            return FailedExhausted(
                task_id=delivery.task_id, attempt=delivery.attempt, error=error
            )

        delay = retry_policy.delay_for(delivery.attempt)
        try:
            self._delay_requester.request_delay(delivery.handle, delay)
        except Exception as delay_exc:
            logger.error(
                "failed to request redelivery delay",
                extra={
                    "extra_fields": {
                        **ctx,
                        **safe_log_context(
                            delay_seconds=delay, delay_error=error_summary(delay_exc)
                        ),
                    }
                },
            )
            return FailedRetryable(
                task_id=delivery.task_id, attempt=delivery.attempt, error=error
            )

        logger.info(
            "redelivery delay requested",
            extra={"extra_fields": {**ctx, "delay_seconds": delay}},
        )
        return FailedRetryable(
            task_id=delivery.task_id,
            attempt=delivery.attempt,
            error=error,
            delay_seconds=delay,
        )
