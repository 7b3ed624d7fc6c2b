"""Tasks table (SQL-only).

Revision ID: 001_tasks
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_tasks"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE tasks (
            task_id      TEXT PRIMARY KEY,
            payload      JSONB NOT NULL,
            status       TEXT NOT NULL,
            attempts     INTEGER NOT NULL DEFAULT 0,
            last_error   TEXT,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at TIMESTAMPTZ,
            CONSTRAINT tasks_status_check CHECK (
                status IN ('SUBMITTED', 'PROCESSING', 'COMPLETED', 'FAILED', 'DEAD_LETTER')
            ),
            CONSTRAINT tasks_attempts_check CHECK (attempts >= 0)
        )
        """
    )
    op.execute("CREATE INDEX idx_tasks_status ON tasks (status)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS tasks")
