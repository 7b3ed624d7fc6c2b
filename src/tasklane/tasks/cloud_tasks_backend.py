"""Cloud Tasks backend for GCP deployment.

Cloud Tasks pushes each message to the worker over HTTP and retries on any
non-2xx response. Two gaps versus a visibility-timeout queue are covered
here:
- per-delivery delays are not supported, so the queue's RetryConfig is
  provisioned from the retry schedule (ensure_queue_retry_config)
- there is no dead-letter redrive, so the worker forwards exhausted
  messages to a second queue targeting /tasks/dead-letter
"""
import json
import os

from google.cloud import tasks_v2
from google.protobuf import duration_pb2, field_mask_pb2

from tasklane.domain import retry_policy
from tasklane.observability.logging import get_logger
from tasklane.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_TASKS_QUEUE = "tasklane-tasks"
DEFAULT_DLQ_QUEUE = "tasklane-dead-letter"


def _project() -> str:
    project = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID")
    if not project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID required")
    return project


def _location() -> str:
    return os.environ.get("GCP_LOCATION", "us-central1")


def tasks_queue_name() -> str:
    return os.environ.get("GCP_TASKS_QUEUE", DEFAULT_TASKS_QUEUE)


def dead_letter_queue_name() -> str:
    return os.environ.get("GCP_DLQ_QUEUE", DEFAULT_DLQ_QUEUE)


def safe_task_name(task_id: str) -> str:
    """Map a task_id to a valid Cloud Tasks task name segment."""
    return task_id.replace(":", "-").replace("/", "-")


def enqueue_cloud_task(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    queue: str | None = None,
) -> bool:
    """Enqueue a message via Google Cloud Tasks.

    Args:
        task_id: Unique name for the Cloud Task (dedupes re-submissions).
        url_path: Worker endpoint path (e.g., /tasks/process).
        payload: Message body.
        correlation_id: Optional correlation ID for tracing.
        queue: Queue name; defaults to GCP_TASKS_QUEUE.

    Returns:
        True if the task was enqueued or already existed.

    Raises:
        RuntimeError: If required env vars not set.
    """
    project = _project()
    worker_url = os.environ.get("WORKER_BASE_URL")
    oidc_service_account = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    audience = os.environ.get("TASKS_OIDC_AUDIENCE")

    if not worker_url:
        raise RuntimeError("WORKER_BASE_URL required for Cloud Tasks")
    if not oidc_service_account:
        raise RuntimeError("TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks")
    if not audience:
        raise RuntimeError("TASKS_OIDC_AUDIENCE required for Cloud Tasks")

    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(project, _location(), queue or tasks_queue_name())

    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id

    task = {
        "name": f"{parent}/tasks/{safe_task_name(task_id)}",
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{worker_url.rstrip('/')}{url_path}",
            "headers": headers,
            "body": json.dumps(payload).encode(),
            "oidc_token": {
                "service_account_email": oidc_service_account,
                "audience": audience,
            },
        },
    }

    try:
        response = client.create_task(parent=parent, task=task)
    except Exception as e:
        if "ALREADY_EXISTS" in str(e):
            logger.info(
                "cloud task already exists (dedupe)",
                extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
            )
            return True
        logger.exception(
            "failed to enqueue cloud task",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id, url_path=url_path, error=str(e)
                )
            },
        )
        raise

    logger.info(
        "cloud task enqueued",
        extra={"extra_fields": {"task_name": response.name, "url_path": url_path}},
    )
    return True


def build_retry_config(max_attempts: int) -> dict:
    """Queue RetryConfig reproducing the redelivery schedule.

    With min backoff = first delay, max backoff = last delay and one doubling
    per schedule step, Cloud Tasks waits 5s, 10s, 20s, 20s, ...
    """
    schedule = retry_policy.DELAY_SCHEDULE_SECONDS
    return {
        "max_attempts": max_attempts,
        "min_backoff": duration_pb2.Duration(seconds=schedule[0]),
        "max_backoff": duration_pb2.Duration(seconds=schedule[-1]),
        "max_doublings": len(schedule) - 1,
    }


def ensure_queue_retry_config(max_attempts: int, queue: str | None = None) -> str:
    """Apply build_retry_config to the task queue; returns the queue path."""
    client = tasks_v2.CloudTasksClient()
    name = client.queue_path(_project(), _location(), queue or tasks_queue_name())
    client.update_queue(
        queue={"name": name, "retry_config": build_retry_config(max_attempts)},
        update_mask=field_mask_pb2.FieldMask(paths=["retry_config"]),
    )
    logger.info(
        "cloud tasks retry config applied",
        extra={"extra_fields": {"queue": name, "max_attempts": max_attempts}},
    )
    return name


def list_queue_tasks(queue: str, limit: int = 10) -> list[dict]:
    """List pending tasks on a queue with their decoded bodies."""
    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(_project(), _location(), queue)
    request = tasks_v2.ListTasksRequest(
        parent=parent,
        response_view=tasks_v2.Task.View.FULL,
        page_size=limit,
    )

    result = []
    for task in client.list_tasks(request=request):
        raw = task.http_request.body
        try:
            body = json.loads(raw) if raw else None
        except ValueError:
            body = raw.decode(errors="replace")
        result.append(
            {
                "name": task.name,
                "dispatch_count": task.dispatch_count,
                "body": body,
            }
        )
        if len(result) >= limit:
            break
    return result


class CloudTasksDelayRequester:
    """DelayRequester for Cloud Tasks.

    Cloud Tasks cannot reschedule an in-flight task; the retry backoff set
    by ensure_queue_retry_config already matches the schedule, so the
    request is only recorded.
    """

    def request_delay(self, handle: str, seconds: int) -> None:
        logger.info(
            "redelivery pacing delegated to queue retry config",
            extra={"extra_fields": {"task_name": handle, "delay_seconds": seconds}},
        )
