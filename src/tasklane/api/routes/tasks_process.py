"""Worker routes for queue deliveries (APP_ROLE=worker).

POST /tasks/process      → one delivery through the lifecycle controller
POST /tasks/dead-letter  → one dead-letter delivery through triage
POST /tasks/drain        → consume the inline queues in-process (inline backend only)

Status codes are the failure signal for the queue: 2xx acknowledges the
delivery, 5xx makes the queue redeliver it.
"""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from tasklane.api.deps import Services, get_services
from tasklane.api.task_auth import require_task_auth
from tasklane.domain.tasks import Delivery, Outcome
from tasklane.domain.triage import DeadLetterMessage
from tasklane.observability.correlation import get_correlation_id
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import safe_log_context
from tasklane.tasks.consumer import drain
from tasklane.tasks.contracts import TaskMessageV1

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)

ATTEMPT_HEADER = "X-Task-Attempt"
CLOUD_TASKS_RETRY_COUNT_HEADER = "X-CloudTasks-TaskRetryCount"
CLOUD_TASKS_TASK_NAME_HEADER = "X-CloudTasks-TaskName"


class InvalidDeliveryHeaders(ValueError):
    """Raised when the delivery attempt headers cannot be parsed."""


def delivery_attempt(request: Request) -> int:
    """Delivery count for this request (1 for the first delivery).

    X-Task-Attempt wins when present; otherwise Cloud Tasks' retry count
    plus one.

    Raises:
        InvalidDeliveryHeaders: If a header is not a valid count.
    """
    explicit = request.headers.get(ATTEMPT_HEADER)
    retry_count = request.headers.get(CLOUD_TASKS_RETRY_COUNT_HEADER)
    try:
        if explicit is not None:
            attempt = int(explicit)
        elif retry_count is not None:
            attempt = int(retry_count) + 1
        else:
            attempt = 1
    except ValueError as e:
        raise InvalidDeliveryHeaders(str(e)) from e
    if attempt < 1:
        raise InvalidDeliveryHeaders(f"attempt must be >= 1, got {attempt}")
    return attempt


async def _read_message(request: Request) -> TaskMessageV1 | JSONResponse:
    try:
        body: Any = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})
    try:
        return TaskMessageV1.from_dict(body)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})


def _forward_dead_letter(
    services: Services, message: TaskMessageV1, correlation_id: str
) -> None:
    try:
        services.tasks_client.enqueue_dead_letter(message, correlation_id=correlation_id)
    except Exception:
        logger.exception(
            "failed to forward task to dead-letter queue",
            extra={"extra_fields": safe_log_context(task_id=message.task_id)},
        )


@router.post("/process")
async def handle_process(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Handle one task delivery pushed by the queue."""
    correlation_id = get_correlation_id()

    message = await _read_message(request)
    if isinstance(message, JSONResponse):
        return message

    try:
        attempt = delivery_attempt(request)
    except InvalidDeliveryHeaders as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    delivery = Delivery(
        task_id=message.task_id,
        attempt=attempt,
        handle=request.headers.get(CLOUD_TASKS_TASK_NAME_HEADER) or message.task_id,
        payload=message.payload,
    )

    # Cloud Tasks drops a task after its last attempt: any non-2xx answer to
    # that attempt forwards the message to the dead-letter queue.
    last_attempt = (
        services.tasks_client.forwards_dead_letters
        and attempt >= services.max_delivery_attempts
    )

    try:
        outcome: Outcome = services.controller.handle(delivery)
    except Exception:
        logger.exception(
            "task delivery errored",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, task_id=message.task_id)},
        )
        if last_attempt:
            _forward_dead_letter(services, message, correlation_id)
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    if not outcome.should_ack and last_attempt:
        _forward_dead_letter(services, message, correlation_id)

    return JSONResponse(
        status_code=200 if outcome.should_ack else 500,
        content={
            "ok": outcome.should_ack,
            "outcome": outcome.kind,
            "task_id": message.task_id,
            "attempt": attempt,
        },
    )


@router.post("/dead-letter")
async def handle_dead_letter(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Handle one dead-letter delivery.

    Always acknowledged once the diagnostic record has been emitted.
    """
    message = await _read_message(request)
    if isinstance(message, JSONResponse):
        return message

    record = services.triage.triage(
        DeadLetterMessage(task_id=message.task_id, payload=message.payload)
    )
    return JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "task_id": record.task_id,
            "context_complete": record.context_complete,
        },
    )


@router.post("/drain")
async def handle_drain(
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Process every visible message on the inline task and dead-letter queues.

    Cloud Tasks pushes deliveries to /tasks/process, so there is nothing to
    drain there (409).
    """
    tasks_client = services.tasks_client
    if tasks_client.backend != "inline":
        return JSONResponse(
            status_code=409,
            content={"ok": False, "error": f"drain not supported for backend {tasks_client.backend}"},
        )

    summary = drain(
        tasks_client.queue,
        tasks_client.dead_letter_queue,
        services.controller,
        services.triage,
    )
    logger.info(
        "inline queues drained",
        extra={"extra_fields": safe_log_context(**asdict(summary))},
    )
    return JSONResponse(status_code=200, content={"ok": True, **asdict(summary)})
