"""Unit of work contract invoked once per delivery."""

from typing import Any, Protocol

from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import safe_log_context

logger = get_logger(__name__)


class UnitOfWork(Protocol):
    """Protocol for the work performed on a task.

    Implementations raise any exception to report failure; returning
    normally means success.
    """

    def __call__(self, task_id: str, payload: dict[str, Any]) -> None:
        ...


def accept_payload(task_id: str, payload: dict[str, Any]) -> None:
    """Default unit of work: acknowledge the payload as processed."""
    logger.info(
        "task payload accepted",
        extra={"extra_fields": safe_log_context(task_id=task_id, payload=payload)},
    )
