"""Shared pytest fixtures for tasklane tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from tasklane.infra.task_store import InMemoryTaskStore  # noqa: E402

from helpers import FakeClock, ListSink, RecordingDelayRequester  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryTaskStore()


@pytest.fixture
def delays():
    return RecordingDelayRequester()


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture(autouse=True)
def _inline_backend_env(monkeypatch):
    """Keep tests on the in-process backends regardless of the host env."""
    monkeypatch.setenv("TASK_STORE", "memory")
    monkeypatch.delenv("FAULT_INJECTION_RATE", raising=False)
    monkeypatch.delenv("LIFECYCLE_CONDITIONAL_UPDATES", raising=False)
    monkeypatch.delenv("MAX_DELIVERY_ATTEMPTS", raising=False)
    monkeypatch.delenv("INLINE_POLL_INTERVAL", raising=False)
