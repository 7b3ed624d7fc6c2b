"""Task ingress: submission and status read.

POST /tasks            → persist SUBMITTED task and enqueue it
GET  /tasks/{task_id}  → current task record
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

from tasklane.api.deps import Services, get_services
from tasklane.domain.tasks import Task, TaskStatus
from tasklane.infra.task_store import DuplicateTaskError
from tasklane.infra.time import utc_now
from tasklane.observability.correlation import get_correlation_id
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import safe_log_context
from tasklane.tasks.contracts import TaskMessageV1

router = APIRouter(tags=["tasks"])

logger = get_logger(__name__)


class SubmitTaskRequest(BaseModel):
    task_id: str | None = None
    payload: dict[str, Any]

    @field_validator("task_id")
    @classmethod
    def _task_id_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("task_id must be a non-empty string")
        return value


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"message": message})


def _validation_message(exc: ValidationError) -> str:
    fields = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
    if "payload" in fields:
        return "Invalid request: payload is required and must be an object"
    return "Invalid request: task_id must be a non-empty string"


def _is_undelivered_resubmission(existing: Task | None, task: Task) -> bool:
    """True when a stored record was never delivered and matches the resubmission.

    Covers a submission whose enqueue failed after the record was written.
    """
    return (
        existing is not None
        and existing.status == TaskStatus.SUBMITTED
        and existing.attempts == 0
        and existing.payload == task.payload
    )


def _submit_error(exc: Exception, ctx: dict) -> JSONResponse:
    """500 response for a store or queue failure; call from an except block."""
    logger.exception("error submitting task", extra={"extra_fields": ctx})
    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal server error while submitting task",
            "error": str(exc),
        },
    )


@router.post("/tasks")
async def submit_task(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Accept a task submission.

    Expected body:
    - payload: JSON object (required)
    - task_id: non-empty string (optional, generated when absent)
    """
    correlation_id = get_correlation_id()

    try:
        body = await request.json()
    except ValueError:
        return _bad_request("Invalid JSON in request body")
    if not isinstance(body, dict):
        return _bad_request("Invalid request: body must be an object")

    try:
        submission = SubmitTaskRequest.model_validate(body)
    except ValidationError as e:
        return _bad_request(_validation_message(e))

    now = utc_now()
    task = Task(
        task_id=submission.task_id or str(uuid.uuid4()),
        payload=submission.payload,
        status=TaskStatus.SUBMITTED,
        attempts=0,
        created_at=now,
        updated_at=now,
    )
    ctx = safe_log_context(correlationId=correlation_id, task_id=task.task_id)

    try:
        services.store.create(task)
    except DuplicateTaskError:
        try:
            existing = services.store.get(task.task_id)
        except Exception as e:
            return _submit_error(e, ctx)
        if not _is_undelivered_resubmission(existing, task):
            logger.warning("duplicate task submission", extra={"extra_fields": ctx})
            return JSONResponse(
                status_code=409,
                content={"message": "Task already exists", "task_id": task.task_id},
            )
        logger.info(
            "resubmission of undelivered task, re-sending message",
            extra={"extra_fields": ctx},
        )
    except Exception as e:
        return _submit_error(e, ctx)

    try:
        services.tasks_client.enqueue(
            TaskMessageV1(task_id=task.task_id, payload=task.payload),
            correlation_id=correlation_id,
        )
    except Exception as e:
        return _submit_error(e, ctx)

    logger.info("task submitted", extra={"extra_fields": ctx})
    return JSONResponse(
        status_code=200,
        content={
            "message": "Task submitted successfully",
            "task_id": task.task_id,
            "status": TaskStatus.SUBMITTED.value,
        },
    )


@router.get("/tasks/{task_id}")
def get_task(task_id: str, services: Services = Depends(get_services)) -> JSONResponse:
    """Return the persisted task record."""
    task = services.store.get(task_id)
    if task is None:
        return JSONResponse(status_code=404, content={"message": "Task not found"})
    return JSONResponse(status_code=200, content=task.to_dict())
