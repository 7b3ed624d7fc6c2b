"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL


def _dsn_to_url(dsn: str) -> URL:
    """Convert a libpq DSN (key=value or postgres:// URI) to a SQLAlchemy URL.

    A host starting with "/" is a Unix socket directory (Cloud SQL) and is
    passed as the ?host= query parameter. DB_PASSWORD fills in a missing
    password.
    """
    params = parse_dsn(dsn)
    password = params.get("password") or os.environ.get("DB_PASSWORD") or None
    host = params.get("host")
    port = params.get("port")

    query: dict[str, str] = {}
    if host and host.startswith("/"):
        query["host"] = host
        host = None

    return URL.create(
        "postgresql+psycopg2",
        username=params.get("user"),
        password=password,
        host=host,
        port=int(port) if port else None,
        database=params.get("dbname"),
        query=query,
    )


def _get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if url.startswith("postgresql+"):
        # Already a SQLAlchemy URL with an explicit driver.
        return url
    return _dsn_to_url(url).render_as_string(hide_password=False)
