"""Print messages waiting on the Cloud Tasks task queue and dead-letter queue.

Usage:
    GOOGLE_CLOUD_PROJECT=... uv run python scripts/check_queues.py [--limit N]
    GOOGLE_CLOUD_PROJECT=... uv run python scripts/check_queues.py --apply-retry-config

Requires:
    - GOOGLE_CLOUD_PROJECT (or GCP_PROJECT_ID) and credentials for Cloud Tasks
    - Optional GCP_LOCATION, GCP_TASKS_QUEUE, GCP_DLQ_QUEUE, MAX_DELIVERY_ATTEMPTS
"""

from __future__ import annotations

import argparse
import json
import os
import sys


def _print_queue(title: str, queue: str, limit: int) -> None:
    from tasklane.tasks.cloud_tasks_backend import list_queue_tasks

    print(f"Checking {title} ({queue})...")
    try:
        tasks = list_queue_tasks(queue, limit=limit)
    except Exception as e:
        print(f"ERROR: could not list {queue}: {e}")
        return

    if not tasks:
        print(f"No messages in queue: {queue}")
        return

    for task in tasks:
        print(f"Message received (dispatch_count={task['dispatch_count']}):")
        if isinstance(task["body"], dict):
            print(json.dumps(task["body"], indent=2))
        else:
            print(f"Cannot parse message body: {task['body']}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument(
        "--apply-retry-config",
        action="store_true",
        help="Set the task queue RetryConfig from the redelivery schedule first",
    )
    args = parser.parse_args()

    if not (os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID")):
        print("ERROR: GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID not set")
        sys.exit(1)

    # Import after env validation so a missing project doesn't blow up on import
    from tasklane.tasks.client import max_delivery_attempts
    from tasklane.tasks.cloud_tasks_backend import (
        dead_letter_queue_name,
        ensure_queue_retry_config,
        tasks_queue_name,
    )

    if args.apply_retry_config:
        name = ensure_queue_retry_config(max_delivery_attempts())
        print(f"Retry config applied to {name}")

    _print_queue("main task queue", tasks_queue_name(), args.limit)
    print()
    _print_queue("dead-letter queue", dead_letter_queue_name(), args.limit)


if __name__ == "__main__":
    main()
