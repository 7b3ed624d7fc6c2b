"""Tasks repository - persistence for task records.

Uses raw SQL with psycopg2 (no ORM).
"""

import json
from datetime import datetime
from typing import Any, Sequence

from psycopg2.extensions import cursor as PgCursor

# Columns callers may change through update_task, in SET clause order.
UPDATABLE_COLUMNS = ("status", "attempts", "last_error", "updated_at", "completed_at")

_SELECT_COLUMNS = """
    task_id, payload, status, attempts, last_error,
    created_at, updated_at, completed_at
"""


def insert_task(
    cur: PgCursor,
    *,
    task_id: str,
    payload: dict,
    status: str,
    attempts: int,
    created_at: datetime,
    updated_at: datetime,
) -> bool:
    """Insert a new task row.

    Args:
        cur: Database cursor (within transaction).
        task_id: Task identifier (primary key).
        payload: Opaque JSON payload.
        status: Initial status (normally SUBMITTED).
        attempts: Initial attempt count (normally 0).
        created_at: Creation timestamp.
        updated_at: Update timestamp.

    Returns:
        True if inserted, False if task_id already existed.
    """
    cur.execute(
        """
        INSERT INTO tasks (
            task_id, payload, status, attempts, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (task_id) DO NOTHING
        """,
        (task_id, json.dumps(payload), status, attempts, created_at, updated_at),
    )
    return cur.rowcount == 1


def get_task(cur: PgCursor, task_id: str) -> tuple[Any, ...] | None:
    """Fetch one task row by id.

    Returns:
        Row tuple in the order task_id, payload, status, attempts,
        last_error, created_at, updated_at, completed_at; or None.
    """
    cur.execute(
        f"SELECT {_SELECT_COLUMNS} FROM tasks WHERE task_id = %s",
        (task_id,),
    )
    return cur.fetchone()


def update_task(
    cur: PgCursor,
    task_id: str,
    changes: dict[str, Any],
    *,
    expected_statuses: Sequence[str] | None = None,
    expected_attempts: int | None = None,
) -> int:
    """Update selected columns of a task, optionally guarded.

    The guard turns the statement into a compare-and-swap: the row only
    changes when its current status is in expected_statuses and (if given)
    its attempts equals expected_attempts.

    Args:
        cur: Database cursor (within transaction).
        task_id: Task identifier.
        changes: Column -> new value; keys must be in UPDATABLE_COLUMNS.
        expected_statuses: Optional allowed current statuses.
        expected_attempts: Optional required current attempts.

    Returns:
        Number of rows updated (0 or 1).

    Raises:
        ValueError: If changes is empty or names an unknown column.
    """
    if not changes:
        raise ValueError("No columns to update")
    unknown = set(changes) - set(UPDATABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown task columns: {sorted(unknown)}")

    columns = [c for c in UPDATABLE_COLUMNS if c in changes]
    set_clause = ", ".join(f"{c} = %s" for c in columns)
    params: list[Any] = [changes[c] for c in columns]

    where = "task_id = %s"
    params.append(task_id)
    if expected_statuses is not None:
        where += " AND status = ANY(%s)"
        params.append(list(expected_statuses))
    if expected_attempts is not None:
        where += " AND attempts = %s"
        params.append(expected_attempts)

    cur.execute(f"UPDATE tasks SET {set_clause} WHERE {where}", params)
    return cur.rowcount
