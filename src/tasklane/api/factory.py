"""FastAPI application factory with role-based route mounting."""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal

from fastapi import FastAPI, Request, Response

from tasklane.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

from .deps import Services, build_inline_worker, build_services
from .routers import public, worker
from .routes import tasks_process, tasks_submit

AppRole = Literal["public", "worker"]


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the embedded inline worker for the lifetime of the app."""
    worker = build_inline_worker(app.state.services)
    app.state.inline_worker = worker
    if worker is not None:
        worker.start()
    try:
        yield
    finally:
        if worker is not None:
            worker.stop()


def create_app(role: AppRole | None = None, services: Services | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.
        services: Pre-built collaborators (tests); built from env when None.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(title="tasklane", docs_url=None, redoc_url=None, lifespan=_lifespan)
    app.state.services = services or build_services()

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)

    # Worker routes go before ingress so /tasks/health and /tasks/process
    # are not captured by GET /tasks/{task_id}.
    if role == "worker":
        app.include_router(worker.router)
        app.include_router(tasks_process.router)

    app.include_router(tasks_submit.router)

    return app
