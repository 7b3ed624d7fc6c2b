"""Dead-letter triage - terminal audit of permanently failed tasks.

Runs once per message arriving on the dead-letter channel. The diagnostic
record is always emitted; record-store problems only reduce how much
context it carries.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol

from tasklane.domain.tasks import Task, TaskStatus
from tasklane.infra.task_store import TaskStore
from tasklane.infra.time import Clock, utc_now
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import error_summary, safe_log_context

logger = get_logger(__name__)

DEAD_LETTER_EVENT = "TASK_DEAD_LETTER"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class DeadLetterMessage:
    """Body of a dead-letter delivery."""

    task_id: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class DiagnosticRecord:
    """Structured audit record for a dead-lettered task.

    attempts, last_error and created_at hold "unknown" when the task record
    could not be read.
    """

    task_id: str
    payload: dict[str, Any]
    attempts: int | str
    last_error: str
    created_at: str
    failed_at: str
    context_complete: bool
    store_error: str | None = None
    event: str = DEAD_LETTER_EVENT

    @property
    def message(self) -> str:
        return (
            f"Task {self.task_id} has been moved to the dead-letter queue "
            f"after {self.attempts} attempts"
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["summary"] = self.message
        return data


class DiagnosticSink(Protocol):
    """Destination for diagnostic records (one atomic event each)."""

    def emit(self, record: DiagnosticRecord) -> None:
        ...


class DeadLetterTriage:
    """Marks dead-lettered tasks and emits their diagnostic record."""

    def __init__(
        self,
        store: TaskStore,
        sink: DiagnosticSink,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._sink = sink
        self._clock = clock

    def triage(self, message: DeadLetterMessage) -> DiagnosticRecord:
        ctx = safe_log_context(task_id=message.task_id)
        logger.info("processing dead-letter message", extra={"extra_fields": ctx})

        task: Task | None = None
        store_error: str | None = None
        try:
            task = self._store.get(message.task_id)
            if task is None:
                logger.warning(
                    "dead-letter task not found in store", extra={"extra_fields": ctx}
                )
            else:
                self._store.update(
                    task.task_id,
                    status=TaskStatus.DEAD_LETTER,
                    updated_at=self._clock(),
                )
        except Exception as exc:
            store_error = error_summary(exc)
            logger.exception(
                "error retrieving or updating dead-letter task",
                extra={"extra_fields": {**ctx, **safe_log_context(store_error=store_error)}},
            )

        record = self._build_record(message, task, store_error)
        self._sink.emit(record)
        return record

    def _build_record(
        self,
        message: DeadLetterMessage,
        task: Task | None,
        store_error: str | None,
    ) -> DiagnosticRecord:
        failed_at = self._clock().isoformat()
        if task is None:
            return DiagnosticRecord(
                task_id=message.task_id,
                payload=message.payload,
                attempts=UNKNOWN,
                last_error=UNKNOWN,
                created_at=UNKNOWN,
                failed_at=failed_at,
                context_complete=False,
                store_error=store_error,
            )
        return DiagnosticRecord(
            task_id=task.task_id,
            payload=message.payload or task.payload,
            attempts=task.attempts,
            last_error=task.last_error or UNKNOWN,
            created_at=task.created_at.isoformat(),
            failed_at=failed_at,
            # Record read but the DEAD_LETTER write failed.
            context_complete=store_error is None,
            store_error=store_error,
        )
