"""Service composition for the API and worker apps.

Collaborators are built once per app and stored on app.state; routes get
them through the get_services dependency.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from fastapi import Request

from tasklane.domain.lifecycle import TaskLifecycleController
from tasklane.domain.triage import DeadLetterTriage, DiagnosticSink
from tasklane.domain.units import UnitOfWork, accept_payload
from tasklane.infra.task_store import TaskStore, build_task_store
from tasklane.observability.diagnostics import LogDiagnosticSink
from tasklane.tasks.client import TasksClient, max_delivery_attempts
from tasklane.tasks.consumer import InlineWorker

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def build_unit_of_work() -> UnitOfWork:
    """Production unit of work, or the fault injector when FAULT_INJECTION_RATE is set."""
    rate = os.environ.get("FAULT_INJECTION_RATE")
    if not rate:
        return accept_payload

    from tasklane.testing.fault_injection import RandomFailureUnitOfWork

    return RandomFailureUnitOfWork(float(rate))


@dataclass
class Services:
    """Collaborators shared by the routes of one app instance."""

    store: TaskStore
    tasks_client: TasksClient
    controller: TaskLifecycleController
    triage: DeadLetterTriage
    max_delivery_attempts: int


def build_services(
    *,
    store: TaskStore | None = None,
    tasks_client: TasksClient | None = None,
    unit_of_work: UnitOfWork | None = None,
    sink: DiagnosticSink | None = None,
) -> Services:
    """Wire store, queue client, controller and triage from the environment.

    Any collaborator passed explicitly overrides the env-selected one.
    """
    store = store if store is not None else build_task_store()
    tasks_client = tasks_client or TasksClient()
    controller = TaskLifecycleController(
        store,
        tasks_client.delay_requester(),
        unit_of_work or build_unit_of_work(),
        conditional_updates=_env_flag("LIFECYCLE_CONDITIONAL_UPDATES", True),
    )
    triage = DeadLetterTriage(store, sink or LogDiagnosticSink())
    return Services(
        store=store,
        tasks_client=tasks_client,
        controller=controller,
        triage=triage,
        max_delivery_attempts=max_delivery_attempts(),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's Services."""
    return request.app.state.services


def build_inline_worker(services: Services) -> InlineWorker | None:
    """Background consumer for the inline backend, or None.

    None for Cloud Tasks (deliveries are pushed to the worker routes) and
    when INLINE_POLL_INTERVAL is 0.
    """
    if services.tasks_client.backend != "inline":
        return None
    poll_interval = float(os.environ.get("INLINE_POLL_INTERVAL", "1.0"))
    if poll_interval <= 0:
        return None
    return InlineWorker(
        services.tasks_client.queue,
        services.tasks_client.dead_letter_queue,
        services.controller,
        services.triage,
        poll_interval=poll_interval,
    )
